"""FastAPI application entry-point.

Assembles routers, middleware, exception handlers, and lifecycle hooks.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from llm_router.adapters.inbound.rest.routers import health_router, providers_router
from llm_router.config import Settings, get_settings
from llm_router.dependencies import RouterRuntime, build_runtime
from llm_router.shared.errors import register_exception_handlers
from llm_router.shared.middleware import RequestContextMiddleware
from llm_router.shared.observability import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifecycle — start the health checker, close HTTP clients."""
    settings: Settings = app.state.settings
    runtime: RouterRuntime = app.state.runtime
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.is_production,
    )
    logger.info(
        "application_starting",
        env=settings.app_env.value,
        providers=[p.id for p in runtime.state.providers],
        preferred=runtime.state.preferred_provider_id,
    )
    await runtime.start()

    yield

    await runtime.close()
    logger.info("application_shutdown")


def create_app(
    settings: Settings | None = None,
    runtime: RouterRuntime | None = None,
) -> FastAPI:
    """Application factory — creates a fully configured FastAPI instance."""
    settings = settings or get_settings()

    app = FastAPI(
        title="LLM Router",
        description=(
            "Operator API for the multi-provider LLM router: key health, "
            "manual recovery and provider preference."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.runtime = runtime or build_runtime(settings)

    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    api_v1 = "/api/v1"
    app.include_router(health_router, prefix=api_v1)
    app.include_router(providers_router, prefix=api_v1)

    return app


# Uvicorn entry-point
app = create_app()
