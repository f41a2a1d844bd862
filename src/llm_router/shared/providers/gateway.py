"""Resilient provider gateway — key-level retry for one provider + model.

Walks the provider's candidate keys in rotation order and turns each typed
upstream outcome into a key-state transition and a rotation decision:

    RateLimitedError        → cooldown, next key
    BillingExhaustedError   → disabled for the billing window, next key
    AuthFailureError        → disabled until reset, next key
    TransientTransportError → transient failure, same key again after backoff
    any other UpstreamError → transient failure, next key

Only when every key has failed does the provider fail as a whole.
"""

from __future__ import annotations

import time
from typing import Sequence

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from llm_router.domain.entities import Completion, ConversationMessage
from llm_router.domain.exceptions import (
    AuthFailureError,
    BillingExhaustedError,
    ProviderExhaustedError,
    RateLimitedError,
    UpstreamError,
)
from llm_router.ports.outbound import CompletionPort, ToolSchema
from llm_router.shared.observability.metrics import KEY_EVENTS, UPSTREAM_LATENCY
from llm_router.shared.providers.key_state import KeyState
from llm_router.shared.providers.registry import Provider, RouterState

logger = structlog.get_logger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, UpstreamError) and exc.retryable


class ResilientProviderGateway:
    """Sends one completion through a provider's key pool.

    Usage::

        gateway = ResilientProviderGateway(client, state, max_retries=2)
        completion = await gateway.complete(provider, "kimi-k2.5", messages, tools=tools)

    Raises ``ProviderExhaustedError`` when no key produced a completion.
    """

    def __init__(
        self,
        client: CompletionPort,
        state: RouterState,
        *,
        max_retries: int = 2,
        backoff_base: float = 1.0,
        backoff_max: float = 4.0,
        temperature: float = 0.6,
        max_tokens: int = 4096,
    ) -> None:
        self._client = client
        self._state = state
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._temperature = temperature
        self._max_tokens = max_tokens

    # ── Main entry-point ─────────────────────────────────────
    async def complete(
        self,
        provider: Provider,
        model_id: str,
        messages: Sequence[ConversationMessage],
        *,
        tools: Sequence[ToolSchema] | None = None,
    ) -> Completion:
        errors: dict[str, str] = {}

        for attempt, key in enumerate(provider.keys.candidate_keys()):
            if attempt:
                self._state.stats.incr("key_rotations")
            log = logger.bind(
                provider=provider.id,
                model=model_id,
                key=key.label,
                key_masked=key.masked,
            )

            try:
                completion = await self._call_with_retry(provider, key, model_id, messages, tools)

            except RateLimitedError as exc:
                cooldown_s = key.on_rate_limited()
                KEY_EVENTS.labels(provider=provider.id, event="rate_limited").inc()
                log.warning("key_rate_limited", cooldown_s=cooldown_s)
                errors[key.label] = exc.message

            except BillingExhaustedError as exc:
                key.on_billing_exhausted()
                KEY_EVENTS.labels(provider=provider.id, event="billing").inc()
                log.warning("key_billing_exhausted", error=exc.message)
                errors[key.label] = exc.message

            except AuthFailureError as exc:
                key.on_auth_failure()
                KEY_EVENTS.labels(provider=provider.id, event="auth").inc()
                log.error("key_auth_failed", status_code=exc.status_code)
                errors[key.label] = exc.message

            except UpstreamError as exc:
                # Retryable errors were already counted per attempt.
                if not exc.retryable:
                    key.on_transient_failure()
                    KEY_EVENTS.labels(provider=provider.id, event="error").inc()
                log.warning("key_request_failed", kind=exc.kind.value, error=exc.message)
                errors[key.label] = exc.message

            else:
                key.on_success(completion.total_tokens)
                KEY_EVENTS.labels(provider=provider.id, event="success").inc()
                log.debug("key_request_success", tokens=completion.total_tokens)
                return completion

        logger.warning("provider_exhausted", provider=provider.id, model=model_id, errors=errors)
        raise ProviderExhaustedError(provider.id, errors)

    # ── Same-key retry ───────────────────────────────────────
    async def _call_with_retry(
        self,
        provider: Provider,
        key: KeyState,
        model_id: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSchema] | None,
    ) -> Completion:
        def _before_sleep(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.info(
                "key_retry_scheduled",
                provider=provider.id,
                key=key.label,
                attempt=retry_state.attempt_number,
                sleep_s=retry_state.next_action.sleep if retry_state.next_action else 0,
                error=str(exc) if exc else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_max),
            retry=retry_if_exception(_is_retryable),
            before_sleep=_before_sleep,
            reraise=True,
        )

        async def _attempt() -> Completion:
            try:
                return await self._call_once(provider, key, model_id, messages, tools)
            except UpstreamError as exc:
                if exc.retryable:
                    key.on_transient_failure()
                    KEY_EVENTS.labels(provider=provider.id, event="transient").inc()
                raise

        return await retrying(_attempt)

    async def _call_once(
        self,
        provider: Provider,
        key: KeyState,
        model_id: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSchema] | None,
    ) -> Completion:
        start = time.monotonic()
        try:
            return await self._client.complete(
                base_url=provider.base_url,
                api_key=key.secret,
                model=model_id,
                messages=messages,
                tools=tools,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                timeout=provider.config.timeout_s,
            )
        finally:
            UPSTREAM_LATENCY.labels(provider=provider.id).observe(time.monotonic() - start)
