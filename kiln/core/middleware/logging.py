import logging
import time

from kiln.core.middleware.base import Middleware, NextHandler
from kiln.core.model.request import Request
from kiln.core.model.response import Response


class LoggingMiddleware(Middleware):
    """Access log in the compact ``dev`` layout: ``GET /path 200 1.234 ms - 27``."""

    def __init__(self, logger_name: str = "kiln.access", skip_paths: list[str] | None = None) -> None:
        self._logger = logging.getLogger(logger_name)
        self._skip_paths = set(skip_paths or [])

    async def __call__(self, request: Request, call_next: NextHandler) -> Response:
        if request.path in self._skip_paths:
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except BaseException:
            duration = (time.perf_counter() - started) * 1000
            self._logger.error(f"{request.method} {request.path} - {duration:.3f} ms - -")
            raise

        duration = (time.perf_counter() - started) * 1000
        length = response.header("content-length") or (str(len(response.body)) if response.body else "-")
        line = f"{request.method} {request.path} {response.status} {duration:.3f} ms - {length}"

        if response.status >= 500:
            self._logger.error(line)
        elif response.status >= 400:
            self._logger.warning(line)
        else:
            self._logger.info(line)
        return response
