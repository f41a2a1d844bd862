"""Global exception handlers — map router errors to HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse
import structlog

from llm_router.domain.exceptions import (
    AdminAuthError,
    RouterError,
    UnknownKeyError,
    UnknownProviderError,
)

logger = structlog.get_logger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register all router-error → HTTP mappings."""

    @app.exception_handler(AdminAuthError)
    async def handle_admin_auth(request: Request, exc: AdminAuthError) -> ORJSONResponse:
        logger.warning("admin_auth_rejected", path=request.url.path)
        return ORJSONResponse(
            status_code=401,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(UnknownProviderError)
    async def handle_unknown_provider(
        request: Request, exc: UnknownProviderError
    ) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=404,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(UnknownKeyError)
    async def handle_unknown_key(request: Request, exc: UnknownKeyError) -> ORJSONResponse:
        return ORJSONResponse(
            status_code=404,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(RouterError)
    async def handle_router(request: Request, exc: RouterError) -> ORJSONResponse:
        logger.error("router_error_http", code=exc.code, message=exc.message)
        return ORJSONResponse(
            status_code=502,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("unhandled_exception", error=str(exc))
        return ORJSONResponse(
            status_code=500,
            content={
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )
