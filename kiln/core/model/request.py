from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING
from urllib.parse import parse_qs


if TYPE_CHECKING:
    from kiln.core.app import App


@dataclass
class Request:
    method: str
    path: str
    query: dict[str, list[str]] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    client: tuple[str, int] | None = None
    scheme: str = "http"

    # filled by the body parser
    json: Any = None
    form: dict[str, str | list[str]] | None = None

    app: "App | None" = None

    @classmethod
    def from_target(
        cls,
        method: str,
        target: str,
        headers: dict[str, str],
        body: bytes = b"",
        client: tuple[str, int] | None = None,
    ) -> "Request":
        path, _, query = target.partition("?")
        return cls(
            method=method.upper(),
            path=path or "/",
            query=parse_qs(query, keep_blank_values=True),
            headers=headers,
            body=body,
            client=client,
        )

    @property
    def ip(self) -> str | None:
        return self.client[0] if self.client else None

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "").split(";", 1)[0].strip().lower()

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)
