"""Dependency injection root — wires adapters to the router core.

``build_runtime`` constructs the one shared ``RouterRuntime`` for a process;
``create_app`` stores it on ``app.state`` and route handlers receive it via
``Depends(get_runtime)``.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Any

from fastapi import Request

from llm_router.adapters.outbound.llm import (
    OllamaClient,
    OpenAICompatibleClient,
    build_provider_configs,
)
from llm_router.config import Settings
from llm_router.domain.exceptions import AdminAuthError
from llm_router.ports.outbound import CompletionPort, LocalModelPort
from llm_router.shared.providers import (
    KeyHealthChecker,
    KeyPolicy,
    LLMRouter,
    ResilientProviderGateway,
    RouterState,
    ToolExecutionLoop,
)


@dataclass
class RouterRuntime:
    """Everything that shares the process-wide provider/key pool."""

    settings: Settings
    state: RouterState
    client: CompletionPort
    local: LocalModelPort | None
    gateway: ResilientProviderGateway
    router: LLMRouter
    health_checker: KeyHealthChecker

    async def start(self) -> None:
        await self.health_checker.refresh_local()
        if self.settings.health_check_enabled:
            self.health_checker.start()

    async def stop(self) -> None:
        await self.health_checker.stop()

    async def close(self) -> None:
        await self.stop()
        await self.client.close()
        if self.local is not None:
            await self.local.close()

    async def recheck_all(self) -> dict[str, Any]:
        """Run one health-check pass now and return the fresh status."""
        await self.health_checker.run_once()
        return self.router.status()


def build_runtime(
    settings: Settings,
    *,
    client: CompletionPort | None = None,
    local: LocalModelPort | None = None,
) -> RouterRuntime:
    """Build RouterState, adapters and services from settings."""
    policy = KeyPolicy(
        breaker_threshold=settings.circuit_breaker_failure_threshold,
        breaker_reset_s=settings.circuit_breaker_reset_seconds,
        cooldown_base_s=settings.rate_limit_cooldown_base_seconds,
        cooldown_max_s=settings.rate_limit_cooldown_max_seconds,
        billing_disable_s=settings.billing_disable_seconds,
    )
    configs = build_provider_configs(
        kimi_api_key=settings.kimi_api_key,
        kimi_api_url=settings.kimi_api_url,
        kimi_model=settings.kimi_model,
        kimi_fallback_model=settings.kimi_fallback_model,
        groq_api_key=settings.groq_api_key,
        groq_api_url=settings.groq_api_url,
        groq_model=settings.groq_model,
        groq_fallback_model=settings.groq_fallback_model,
        timeout_s=settings.provider_timeout_seconds,
        priority_order=settings.llm_provider_priority,
    )
    state = RouterState.from_configs(
        configs,
        policy=policy,
        preferred_provider_id=settings.cloud_provider or None,
    )

    client = client or OpenAICompatibleClient(timeout=settings.provider_timeout_seconds)
    if local is None and settings.local_ai_enabled:
        local = OllamaClient(
            settings.local_ai_url,
            settings.local_ai_model,
            timeout=settings.local_ai_timeout_seconds,
        )

    gateway = ResilientProviderGateway(
        client,
        state,
        max_retries=settings.provider_max_retries,
        backoff_base=settings.provider_backoff_base,
        backoff_max=settings.provider_backoff_max,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
    tool_loop = ToolExecutionLoop(
        gateway,
        state,
        max_rounds=settings.max_tool_rounds,
        tool_timeout_s=settings.tool_timeout_seconds,
    )
    router = LLMRouter(state, gateway, tool_loop, local, temperature=settings.llm_temperature)
    checker = KeyHealthChecker(
        state,
        client,
        local,
        interval_s=settings.health_check_interval_seconds,
        probe_timeout_s=settings.health_probe_timeout_seconds,
        recover_auth_failures=settings.health_recover_auth_failures,
    )
    return RouterRuntime(
        settings=settings,
        state=state,
        client=client,
        local=local,
        gateway=gateway,
        router=router,
        health_checker=checker,
    )


# ── Request dependencies ─────────────────────────────────────
def get_runtime(request: Request) -> RouterRuntime:
    return request.app.state.runtime  # type: ignore[no-any-return]


async def require_admin(request: Request) -> None:
    """Constant-time check of the operator key; refused when none is configured."""
    settings: Settings = request.app.state.settings
    supplied = request.headers.get(settings.api_key_header, "")
    if not settings.admin_api_key:
        raise AdminAuthError("Operator API disabled: admin_api_key is not configured")
    if not hmac.compare_digest(supplied.encode(), settings.admin_api_key.encode()):
        raise AdminAuthError()
