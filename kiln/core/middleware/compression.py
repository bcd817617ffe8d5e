import gzip
import zlib

from kiln.core.middleware.base import Middleware, NextHandler
from kiln.core.model.request import Request
from kiln.core.model.response import Response

COMPRESSIBLE_PREFIXES = ("text/",)
COMPRESSIBLE_TYPES = (
    "application/json",
    "application/javascript",
    "application/xml",
    "image/svg+xml",
)


class CompressionMiddleware(Middleware):
    """gzip / deflate response bodies for clients that accept them."""

    def __init__(self, threshold: int = 0, level: int = 6) -> None:
        self.threshold = threshold
        self.level = level

    async def __call__(self, request: Request, call_next: NextHandler) -> Response:
        response = await call_next(request)

        if not is_compressible(response.content_type):
            return response

        response.append_vary("Accept-Encoding")

        if not response.body:
            return response
        if response.header("content-encoding"):
            return response
        if "no-transform" in (response.header("cache-control") or ""):
            return response
        if len(response.body) < self.threshold:
            return response

        encoding = negotiate(request.header("accept-encoding", "") or "")
        if encoding == "gzip":
            response.body = gzip.compress(response.body, compresslevel=self.level)
        elif encoding == "deflate":
            response.body = zlib.compress(response.body, self.level)
        else:
            return response

        response.set_header("Content-Encoding", encoding)
        response.remove_header("Content-Length")
        return response


def is_compressible(content_type: str) -> bool:
    mime = content_type.split(";", 1)[0].strip().lower()
    if not mime:
        return False
    return (
        mime.startswith(COMPRESSIBLE_PREFIXES)
        or mime in COMPRESSIBLE_TYPES
        or mime.endswith("+json")
    )


def negotiate(accept_encoding: str) -> str | None:
    """Pick gzip over deflate, honoring ``q=0`` exclusions."""
    accepted: dict[str, float] = {}
    for item in accept_encoding.split(","):
        name, _, params = item.strip().partition(";")
        name = name.strip().lower()
        if not name:
            continue
        quality = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                quality = float(params[2:])
            except ValueError:
                quality = 0.0
        accepted[name] = quality

    for encoding in ("gzip", "deflate"):
        quality = accepted.get(encoding, accepted.get("*", 0.0))
        if quality > 0:
            return encoding
    return None
