import json
import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

from kiln.core.exception import ServerError

_logger = logging.getLogger("kiln.core.response")


@dataclass
class Response:
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def reason(self) -> str:
        try:
            return HTTPStatus(self.status).phrase
        except ValueError:
            return ""

    @property
    def content_type(self) -> str:
        return self.header("content-type", "") or ""

    def header(self, name: str, default: str | None = None) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def set_header(self, name: str, value: str) -> "Response":
        self.remove_header(name)
        self.headers[name] = value
        return self

    def remove_header(self, name: str) -> None:
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            del self.headers[key]

    def append_vary(self, value: str) -> None:
        current = self.header("vary")
        if not current:
            self.set_header("Vary", value)
            return
        values = [v.strip() for v in current.split(",")]
        if value.lower() not in (v.lower() for v in values):
            self.set_header("Vary", f"{current}, {value}")


def json_response(data: Any, status: int = 200, headers: dict[str, str] | None = None) -> Response:
    body = json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    response = Response(status=status, headers=dict(headers or {}), body=body)
    response.set_header("Content-Type", "application/json; charset=utf-8")
    return response


def error_response(message: str, status: int) -> Response:
    return json_response({"success": False, "message": message}, status=status)


@dataclass
class ServiceResponse:
    success: bool
    status_code: int
    message: str | None = None
    data: Any = None


def handle_error(error: BaseException) -> Response:
    if isinstance(error, ServerError):
        return error_response(error.message, error.status_code)

    _logger.error(f"Unhandled error: {error!r}", exc_info=error)
    return error_response(f"Internal Server Error: {error}", 500)


def handle_response(response: ServiceResponse) -> Response:
    if response.success:
        body: dict[str, Any] = {"success": True}
        if response.data:
            body["data"] = response.data
        if response.message:
            body["message"] = response.message
    else:
        body = {"success": False, "message": response.message}

    return json_response(body, status=response.status_code)
