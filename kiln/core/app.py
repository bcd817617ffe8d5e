import logging
from typing import Any

from kiln.core.middleware.base import Middleware, MiddlewarePipeline, NextHandler
from kiln.core.model.request import Request
from kiln.core.model.response import Response, error_response, handle_error
from kiln.core.router import Router, normalize


class App:
    def __init__(self, name: str = "kiln") -> None:
        self.name = name
        self.locals: dict[str, Any] = {}
        self._middleware = MiddlewarePipeline()
        self._mounts: list[tuple[str, Router]] = []
        self._handler: NextHandler | None = None
        self._logger = logging.getLogger("kiln.core.app")

    async def __call__(self, request: Request) -> Response:
        if self._handler is None:
            self._handler = self._middleware.wrap(self._dispatch)

        request.app = self
        try:
            return await self._handler(request)
        except Exception as exc:
            self._logger.error(f"Error in middleware chain for '{request.method} {request.path}': {exc}")
            return handle_error(exc)

    def use(self, middleware: Middleware) -> "App":
        self._middleware.add(middleware)
        self._handler = None
        return self

    def mount(self, prefix: str, router: Router) -> "App":
        self._mounts.append((normalize(prefix), router))
        return self

    @property
    def middleware(self) -> list[str]:
        return self._middleware.names

    async def _dispatch(self, request: Request) -> Response:
        allowed: list[str] = []

        for prefix, router in self._mounts:
            path = strip_prefix(prefix, request.path)
            if path is None:
                continue

            handler = router.resolve(request.method, path)
            if handler is not None:
                try:
                    return await handler(request)
                except Exception as exc:
                    return handle_error(exc)

            allowed.extend(router.allowed_methods(path))

        if allowed:
            response = error_response("Method Not Allowed", 405)
            response.set_header("Allow", ", ".join(sorted(set(allowed))))
            return response

        return error_response(f"Cannot {request.method} {request.path}", 404)


def strip_prefix(prefix: str, path: str) -> str | None:
    if prefix == "/":
        return path
    if path == prefix:
        return "/"
    if path.startswith(prefix + "/"):
        return path[len(prefix):]
    return None
