import json
from urllib.parse import parse_qs

from kiln.core.middleware.base import Middleware, NextHandler
from kiln.core.model.request import Request
from kiln.core.model.response import Response, error_response

JSON_TYPES = ("application/json",)
FORM_TYPES = ("application/x-www-form-urlencoded",)


class BodyParserMiddleware(Middleware):
    def __init__(self, limit: int = 100 * 1024) -> None:
        self.limit = limit

    async def __call__(self, request: Request, call_next: NextHandler) -> Response:
        if not request.body:
            return await call_next(request)

        content_type = request.content_type
        if content_type not in JSON_TYPES and content_type not in FORM_TYPES and not content_type.endswith("+json"):
            return await call_next(request)

        if len(request.body) > self.limit:
            return error_response("Request entity too large", 413)

        charset = _charset(request.headers.get("content-type", ""))
        try:
            text = request.body.decode(charset)
        except (LookupError, UnicodeDecodeError):
            return error_response(f"Unsupported charset '{charset}'", 415)

        if content_type in FORM_TYPES:
            request.form = parse_form(text)
        else:
            try:
                request.json = json.loads(text)
            except json.JSONDecodeError as exc:
                return error_response(f"Invalid JSON body: {exc.msg}", 400)

        return await call_next(request)


def parse_form(text: str) -> dict[str, str | list[str]]:
    form: dict[str, str | list[str]] = {}
    for key, values in parse_qs(text, keep_blank_values=True).items():
        form[key] = values[0] if len(values) == 1 else values
    return form


def _charset(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        name, _, value = param.strip().partition("=")
        if name.lower() == "charset" and value:
            return value.strip('"').lower()
    return "utf-8"
