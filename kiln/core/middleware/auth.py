import functools

from kiln.core.model.request import Request
from kiln.core.model.response import Response, error_response, handle_error
from kiln.core.router import RouteHandler


def bearer_token(request: Request) -> str | None:
    header = request.header("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def authenticated(handler: RouteHandler) -> RouteHandler:
    """
    Reject requests without a bearer credential.

    The token is only checked for presence; signature verification against
    ``APP_SECRET`` and the user lookup are left to the application.
    """

    @functools.wraps(handler)
    async def wrapper(request: Request) -> Response:
        try:
            if bearer_token(request) is None:
                return error_response("Invalid Credential", 401)
            return await handler(request)
        except Exception as exc:
            return handle_error(exc)

    return wrapper
