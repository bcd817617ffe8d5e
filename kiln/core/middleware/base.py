import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from kiln.core.model.request import Request
from kiln.core.model.response import Response

NextHandler = Callable[[Request], Awaitable[Response]]


class Middleware(ABC):
    """
    A layer around the request handler.

    Implementations receive the request and the next handler in the chain;
    they may short-circuit by returning a response without calling it.
    """

    @abstractmethod
    async def __call__(self, request: Request, call_next: NextHandler) -> Response:
        ...

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """First added is outermost: it sees the request first and the response last."""

    def __init__(self) -> None:
        self._middleware: list[Middleware] = []
        self._logger = logging.getLogger("kiln.core.middleware")

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        self._logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        for middleware in reversed(self._middleware):
            handler = _bind(middleware, handler)
        return handler

    @property
    def names(self) -> list[str]:
        return [m.name for m in self._middleware]

    def __len__(self) -> int:
        return len(self._middleware)


def _bind(middleware: Middleware, call_next: NextHandler) -> NextHandler:
    async def call(request: Request) -> Response:
        return await middleware(request, call_next)

    return call
