import logging

from kiln.core.database import Database
from kiln.core.middleware.auth import authenticated
from kiln.core.model.request import Request
from kiln.core.model.response import Response, ServiceResponse, handle_response
from kiln.core.router import Router


def create_router(name: str, database: Database | None) -> Router:
    router = Router()
    logger = logging.getLogger("kiln.bootstrap.routes")

    @router.get("/")
    async def index(request: Request) -> Response:
        return handle_response(ServiceResponse(success=True, status_code=200, message=f"{name} is running"))

    @router.get("/health")
    async def health(request: Request) -> Response:
        if database is None:
            return handle_response(ServiceResponse(success=True, status_code=200, data={"database": "disabled"}))

        try:
            await database.query("SELECT 1")
        except Exception as exc:
            logger.warning(f"Health check failed: {exc}")
            return handle_response(ServiceResponse(success=False, status_code=503, message="database is down"))

        return handle_response(ServiceResponse(success=True, status_code=200, data={"database": "up"}))

    @router.get("/session")
    @authenticated
    async def session(request: Request) -> Response:
        return handle_response(ServiceResponse(success=True, status_code=200))

    return router
