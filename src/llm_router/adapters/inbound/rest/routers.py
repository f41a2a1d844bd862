"""Health, metrics and operator REST routers."""

from __future__ import annotations

from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from llm_router.application.dtos import (
    ErrorResponse,
    HealthResponse,
    KeyResetResponse,
    KeyStatusResponse,
    PreferredProviderRequest,
    PreferredProviderResponse,
    RouterStatusResponse,
)
from llm_router.dependencies import RouterRuntime, get_runtime, require_admin

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════
#  Health
# ═══════════════════════════════════════════════════════════════
health_router = APIRouter(tags=["Health"])


@health_router.get("/health", response_model=HealthResponse)
async def health_check(runtime: RouterRuntime = Depends(get_runtime)) -> HealthResponse:
    state = runtime.state
    usable = [p for p in state.providers if p.keys.any_available]
    degraded = not usable and not state.local_available
    return HealthResponse(
        status="degraded" if degraded else "ok",
        environment=runtime.settings.app_env.value,
        providers=len(state.providers),
        local_available=state.local_available,
    )


@health_router.get("/metrics")
async def prometheus_metrics() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


# ═══════════════════════════════════════════════════════════════
#  Providers (operator)
# ═══════════════════════════════════════════════════════════════
providers_router = APIRouter(
    prefix="/providers",
    tags=["Providers"],
    dependencies=[Depends(require_admin)],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


@providers_router.get("/status", response_model=RouterStatusResponse)
async def provider_status(runtime: RouterRuntime = Depends(get_runtime)) -> RouterStatusResponse:
    """Per-provider and per-key health, local availability and router stats."""
    return RouterStatusResponse.model_validate(runtime.router.status())


@providers_router.post("/recheck", response_model=RouterStatusResponse)
async def recheck_providers(runtime: RouterRuntime = Depends(get_runtime)) -> RouterStatusResponse:
    """Run one health-check pass immediately."""
    status = await runtime.recheck_all()
    return RouterStatusResponse.model_validate(status)


@providers_router.post("/{provider_id}/keys/{index}/reset", response_model=KeyResetResponse)
async def reset_key(
    provider_id: str,
    index: int,
    runtime: RouterRuntime = Depends(get_runtime),
) -> KeyResetResponse:
    """Return one key to service, including keys disabled by an auth failure."""
    provider = runtime.state.get(provider_id)
    provider.keys.get(index).reset()
    logger.info("operator_key_reset", provider=provider_id, key_index=index)
    snapshot = provider.keys.snapshot()[index - 1]
    return KeyResetResponse(
        provider_id=provider_id,
        key=KeyStatusResponse.model_validate(asdict(snapshot)),
    )


@providers_router.put("/preferred", response_model=PreferredProviderResponse)
async def set_preferred_provider(
    body: PreferredProviderRequest,
    runtime: RouterRuntime = Depends(get_runtime),
) -> PreferredProviderResponse:
    """Change which provider new requests try first."""
    runtime.state.set_preferred(body.provider_id)
    return PreferredProviderResponse(provider_id=body.provider_id)
