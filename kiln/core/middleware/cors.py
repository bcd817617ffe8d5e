from dataclasses import dataclass, field

from kiln.core.middleware.base import Middleware, NextHandler
from kiln.core.model.request import Request
from kiln.core.model.response import Response


@dataclass
class CORSConfig:
    allow_origin: str = "*"
    allow_methods: list[str] = field(
        default_factory=lambda: ["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE"]
    )
    allow_headers: list[str] | None = None
    expose_headers: list[str] = field(default_factory=list)
    allow_credentials: bool = False
    max_age: int | None = None
    # some legacy browsers choke on 204
    options_success_status: int = 200


class CORSMiddleware(Middleware):
    def __init__(self, config: CORSConfig | None = None) -> None:
        self.config = config or CORSConfig()

    async def __call__(self, request: Request, call_next: NextHandler) -> Response:
        if request.method == "OPTIONS":
            return self._preflight(request)

        response = await call_next(request)
        self._add_origin_headers(response)
        if self.config.expose_headers:
            response.set_header("Access-Control-Expose-Headers", ",".join(self.config.expose_headers))
        return response

    def _preflight(self, request: Request) -> Response:
        response = Response(status=self.config.options_success_status)
        self._add_origin_headers(response)
        response.set_header("Access-Control-Allow-Methods", ",".join(self.config.allow_methods))

        if self.config.allow_headers is not None:
            response.set_header("Access-Control-Allow-Headers", ",".join(self.config.allow_headers))
        else:
            requested = request.header("access-control-request-headers")
            if requested:
                response.set_header("Access-Control-Allow-Headers", requested)
                response.append_vary("Access-Control-Request-Headers")

        if self.config.max_age is not None:
            response.set_header("Access-Control-Max-Age", str(self.config.max_age))
        return response

    def _add_origin_headers(self, response: Response) -> None:
        response.set_header("Access-Control-Allow-Origin", self.config.allow_origin)
        if self.config.allow_origin != "*":
            response.append_vary("Origin")
        if self.config.allow_credentials:
            response.set_header("Access-Control-Allow-Credentials", "true")
