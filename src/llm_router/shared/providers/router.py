"""LLM router — walks providers × models × keys and returns the first answer.

Order of attempts for one request:

    1. cloud providers (preferred first, then static priority), each model of
       the provider's fallback chain, through the tool loop when tools are in
       play or a single key-rotated call otherwise
    2. the local provider, without tools
    3. when tools were requested, any cloud provider's primary model without
       tools

Only ``RouterError`` is handled here; if every tier fails ``execute`` returns
``None`` and the caller decides what to tell the user.
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import structlog

from llm_router.domain.entities import Completion, ConversationMessage, ExecutionResult
from llm_router.domain.enums import Tier
from llm_router.domain.exceptions import RouterError
from llm_router.ports.outbound import LocalModelPort, ToolExecutor, ToolSchema
from llm_router.shared.observability.metrics import ROUTER_EXHAUSTED, ROUTER_REQUESTS
from llm_router.shared.providers.gateway import ResilientProviderGateway
from llm_router.shared.providers.registry import Provider, RouterState
from llm_router.shared.providers.tool_loop import ToolExecutionLoop
from llm_router.shared.providers.types import ModelSpec

logger = structlog.get_logger(__name__)

LOCAL_PROVIDER_ID = "ollama"
LOCAL_PROVIDER_NAME = "Ollama Local"


def _answered(completion: Completion | None) -> bool:
    if completion is None:
        return False
    return bool(completion.content and completion.content.strip()) or completion.has_tool_calls


class LLMRouter:
    """Orchestrates cloud, local and emergency tiers for one shared ``RouterState``."""

    def __init__(
        self,
        state: RouterState,
        gateway: ResilientProviderGateway,
        tool_loop: ToolExecutionLoop,
        local: LocalModelPort | None = None,
        *,
        temperature: float = 0.6,
    ) -> None:
        self._state = state
        self._gateway = gateway
        self._tool_loop = tool_loop
        self._local = local
        self._temperature = temperature

    @property
    def state(self) -> RouterState:
        return self._state

    # ── Chain building ───────────────────────────────────────
    def build_chain(
        self, preferred: str | None, *, needs_tools: bool = False
    ) -> list[tuple[Provider, ModelSpec]]:
        """(provider, model) pairs in attempt order."""
        chain: list[tuple[Provider, ModelSpec]] = []
        for provider in self._state.ordered(preferred, needs_tools=needs_tools):
            for model in provider.models:
                if needs_tools and not model.supports_tools:
                    continue
                chain.append((provider, model))
        return chain

    # ── Main entry-point ─────────────────────────────────────
    async def execute(
        self,
        messages: Sequence[ConversationMessage | Mapping[str, Any]],
        *,
        tools: Sequence[ToolSchema] | None = None,
        tool_executor: ToolExecutor | None = None,
        preferred_provider_id: str | None = None,
        system_prompt: str | None = None,
    ) -> ExecutionResult | None:
        """Answer a conversation, or return ``None`` when every tier failed.

        Args:
            messages: Conversation history, as entities or OpenAI-style dicts.
            tools: Tool schemas passed verbatim to the upstream model.
            tool_executor: ``async (name, args) -> result``; required to run tools.
            preferred_provider_id: Overrides the router-wide preference for this call.
            system_prompt: Prepended as a system message to every call.
        """
        # Preference is read once; operator changes apply to the next request.
        preferred = preferred_provider_id or self._state.preferred_provider_id
        needs_tools = bool(tools)
        history = [ConversationMessage.coerce(m) for m in messages]
        if system_prompt:
            history.insert(0, ConversationMessage.system(system_prompt))

        self._state.stats.incr("total")
        log = logger.bind(preferred=preferred, needs_tools=needs_tools)

        # ── Cloud providers ──
        for position, (provider, model) in enumerate(self.build_chain(preferred, needs_tools=needs_tools)):
            try:
                if needs_tools and tool_executor is not None:
                    completion = await self._tool_loop.run(
                        provider, model.id, history, tools or (), tool_executor
                    )
                else:
                    completion = await self._gateway.complete(
                        provider, model.id, history, tools=tools
                    )
            except RouterError as exc:
                self._state.stats.incr("rotations")
                log.warning("model_attempt_failed", provider=provider.id, model=model.id, error=exc.message)
                continue

            if not _answered(completion):
                self._state.stats.incr("rotations")
                log.info("model_empty_response", provider=provider.id, model=model.id)
                continue

            tier = Tier.PRIMARY if position == 0 else Tier.FALLBACK
            self._state.stats.incr("cloud")
            return self._finish(completion, tier=tier, provider=provider, model_id=model.id)

        # ── Local provider ──
        if self._local is not None:
            try:
                completion = await self._local.chat(history, temperature=self._temperature)
            except RouterError as exc:
                log.warning("local_attempt_failed", error=exc.message)
            else:
                if _answered(completion):
                    self._state.stats.incr("local")
                    self._state.mark_used(LOCAL_PROVIDER_ID, self._local.model)
                    ROUTER_REQUESTS.labels(tier=Tier.LOCAL.value, provider=LOCAL_PROVIDER_ID).inc()
                    log.info("request_served", tier=Tier.LOCAL.value, provider=LOCAL_PROVIDER_ID)
                    return ExecutionResult.from_completion(
                        completion,
                        tier=Tier.LOCAL,
                        provider_id=LOCAL_PROVIDER_ID,
                        provider_name=LOCAL_PROVIDER_NAME,
                    )

        # ── Cloud without tools ──
        if needs_tools:
            for provider in self._state.ordered(preferred):
                model = provider.primary_model
                if model is None:
                    continue
                try:
                    completion = await self._gateway.complete(provider, model.id, history)
                except RouterError as exc:
                    log.warning("emergency_attempt_failed", provider=provider.id, error=exc.message)
                    continue
                if _answered(completion):
                    self._state.stats.incr("cloud")
                    return self._finish(
                        completion, tier=Tier.EMERGENCY_NO_TOOLS, provider=provider, model_id=model.id
                    )

        ROUTER_EXHAUSTED.inc()
        log.error("router_exhausted")
        return None

    def _finish(
        self,
        completion: Completion,
        *,
        tier: Tier,
        provider: Provider,
        model_id: str,
    ) -> ExecutionResult:
        self._state.mark_used(provider.id, model_id)
        ROUTER_REQUESTS.labels(tier=tier.value, provider=provider.id).inc()
        logger.info("request_served", tier=tier.value, provider=provider.id, model=model_id)
        result = ExecutionResult.from_completion(
            completion, tier=tier, provider_id=provider.id, provider_name=provider.name
        )
        if not result.model:
            result.model = model_id
        return result

    # ── Observation ──────────────────────────────────────────
    def preview_provider(self, needs_tools: bool = False) -> dict[str, Any]:
        """Provider a request would start with; the rotation cursor is not moved."""
        for provider in self._state.ordered(self._state.preferred_provider_id, needs_tools=needs_tools):
            if provider.keys.any_available:
                return {
                    "id": provider.id,
                    "name": provider.name,
                    "type": "cloud",
                    "healthy": True,
                    "supports_tools": provider.supports_tools,
                }
        return {
            "id": LOCAL_PROVIDER_ID,
            "name": LOCAL_PROVIDER_NAME,
            "type": "local",
            "healthy": self._state.local_available,
            "supports_tools": False,
        }

    def status(self) -> dict[str, Any]:
        snapshot = self._state.describe()
        snapshot["local"] = {
            "available": self._state.local_available,
            "model": self._local.model if self._local is not None else None,
        }
        return snapshot
