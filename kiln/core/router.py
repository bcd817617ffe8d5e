import logging
from typing import Callable, Awaitable

from kiln.core.model.request import Request
from kiln.core.model.response import Response

RouteHandler = Callable[[Request], Awaitable[Response]]


class Router:
    def __init__(self) -> None:
        self._routes: dict[tuple[str, str], RouteHandler] = {}
        self._logger = logging.getLogger("kiln.core.router")

    def route(self, method: str, path: str) -> Callable[[RouteHandler], RouteHandler]:
        key = (method.upper(), normalize(path))

        def decorator(func: RouteHandler) -> RouteHandler:
            if key in self._routes:
                raise RuntimeError(f"Handler already registered for '{key[0]} {key[1]}'")

            self._routes[key] = func
            return func

        return decorator

    def get(self, path: str) -> Callable[[RouteHandler], RouteHandler]:
        return self.route("GET", path)

    def post(self, path: str) -> Callable[[RouteHandler], RouteHandler]:
        return self.route("POST", path)

    def put(self, path: str) -> Callable[[RouteHandler], RouteHandler]:
        return self.route("PUT", path)

    def patch(self, path: str) -> Callable[[RouteHandler], RouteHandler]:
        return self.route("PATCH", path)

    def delete(self, path: str) -> Callable[[RouteHandler], RouteHandler]:
        return self.route("DELETE", path)

    def resolve(self, method: str, path: str) -> RouteHandler | None:
        path = normalize(path)
        handler = self._routes.get((method.upper(), path))
        if handler is None and method.upper() == "HEAD":
            handler = self._routes.get(("GET", path))
        return handler

    def allowed_methods(self, path: str) -> list[str]:
        path = normalize(path)
        return sorted(method for method, route_path in self._routes if route_path == path)

    def routes(self) -> dict[tuple[str, str], RouteHandler]:
        return dict(self._routes)


def normalize(path: str) -> str:
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path
