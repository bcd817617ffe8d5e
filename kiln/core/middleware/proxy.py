from kiln.core.middleware.base import Middleware, NextHandler
from kiln.core.model.request import Request
from kiln.core.model.response import Response


class ProxyMiddleware(Middleware):
    """
    Resolve the client address behind ``hops`` trusted reverse proxies.

    With one hop the right-most ``X-Forwarded-For`` entry is the client the
    proxy saw; anything further left was supplied by the client itself.
    """

    def __init__(self, hops: int = 1) -> None:
        self.hops = hops

    async def __call__(self, request: Request, call_next: NextHandler) -> Response:
        if self.hops > 0:
            self._resolve(request)
        return await call_next(request)

    def _resolve(self, request: Request) -> None:
        forwarded = self._pick(request.header("x-forwarded-for"))
        if forwarded:
            port = request.client[1] if request.client else 0
            request.client = (forwarded, port)

        proto = self._pick(request.header("x-forwarded-proto"))
        if proto:
            request.scheme = proto.lower()

    def _pick(self, value: str | None) -> str | None:
        if not value:
            return None
        chain = [part.strip() for part in value.split(",") if part.strip()]
        if not chain:
            return None
        return chain[max(len(chain) - self.hops, 0)]
