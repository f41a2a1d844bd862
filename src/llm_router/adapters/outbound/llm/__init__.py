"""LLM upstream adapters — httpx clients for cloud and local providers.

``OpenAICompatibleClient`` performs exactly one request per call and turns
every failure into a typed ``UpstreamError``.  Rotation, retries and key
state live in ``llm_router.shared.providers``; nothing here is stateful
beyond the connection pool.
"""

from __future__ import annotations

from typing import Any, Sequence

import httpx
import structlog

from llm_router.domain.entities import Completion, ConversationMessage, ToolCall
from llm_router.domain.exceptions import (
    AuthFailureError,
    BillingExhaustedError,
    LocalModelError,
    ProtocolError,
    RateLimitedError,
    TransientTransportError,
    TransportError,
)
from llm_router.ports.outbound import CompletionPort, LocalModelPort, ToolSchema
from llm_router.shared.providers.types import ModelSpec, ProviderConfig

logger = structlog.get_logger(__name__)

_TRANSIENT_STATUSES = frozenset({502, 503, 504})


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _text_content(raw: Any) -> str | None:
    """Flatten message content to text; ``None`` when the shape is not understood.

    Some OpenAI-compatible vendors return content as a list of typed parts
    (``[{"type": "text", "text": "..."}]``); only the text parts are kept.
    """
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    if not isinstance(raw, list):
        return None
    parts: list[str] = []
    for part in raw:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            parts.append(part["text"])
    return "".join(parts)


def _clean_usage(raw: Any) -> dict[str, int] | None:
    """Keep only integer-valued counters (nested detail objects are dropped)."""
    if not isinstance(raw, dict):
        return None
    usage: dict[str, int] = {}
    for name, value in raw.items():
        count = _as_int(value)
        if count is not None:
            usage[str(name)] = count
    return usage


def parse_keys(raw: str) -> tuple[str, ...]:
    """Split a comma-separated credential list; ``placeholder`` means unset."""
    if not raw or raw.strip() == "placeholder":
        return ()
    return tuple(k.strip() for k in raw.split(",") if k.strip() and k.strip() != "placeholder")


def build_provider_configs(
    *,
    kimi_api_key: str = "",
    kimi_api_url: str = "https://api.moonshot.ai/v1",
    kimi_model: str = "kimi-k2.5",
    kimi_fallback_model: str = "kimi-k2-0905-preview",
    groq_api_key: str = "",
    groq_api_url: str = "https://api.groq.com/openai/v1",
    groq_model: str = "llama-3.3-70b-versatile",
    groq_fallback_model: str = "llama-3.1-8b-instant",
    timeout_s: float = 60.0,
    priority_order: str = "kimi,groq",
) -> list[ProviderConfig]:
    """Build ProviderConfig list from settings values."""

    priority_map: dict[str, int] = {}
    for idx, name in enumerate(priority_order.split(",")):
        if name.strip():
            priority_map[name.strip().lower()] = idx + 1

    def _models(primary: str, fallback: str) -> tuple[ModelSpec, ...]:
        ids = [m for m in (primary, fallback) if m]
        return tuple(ModelSpec(m) for m in dict.fromkeys(ids))

    return [
        ProviderConfig(
            provider_id="kimi",
            display_name="Kimi K2.5",
            base_url=kimi_api_url.rstrip("/"),
            models=_models(kimi_model, kimi_fallback_model),
            api_keys=parse_keys(kimi_api_key),
            priority=priority_map.get("kimi", 10),
            timeout_s=timeout_s,
        ),
        ProviderConfig(
            provider_id="groq",
            display_name="Groq Llama",
            base_url=groq_api_url.rstrip("/"),
            models=_models(groq_model, groq_fallback_model),
            api_keys=parse_keys(groq_api_key),
            priority=priority_map.get("groq", 10),
            timeout_s=timeout_s,
        ),
    ]


# ═══════════════════════════════════════════════════════════════
#  Cloud: OpenAI-compatible chat completions
# ═══════════════════════════════════════════════════════════════
class OpenAICompatibleClient(CompletionPort):
    """One HTTP request/response cycle against ``{base_url}/chat/completions``."""

    def __init__(self, *, timeout: float = 60.0) -> None:
        self._timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout)

    async def complete(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSchema] | None = None,
        temperature: float = 0.6,
        max_tokens: int = 4096,
        timeout: float | None = None,
    ) -> Completion:
        body: dict[str, Any] = {
            "model": model,
            "messages": [m.to_wire() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if tools:
            body["tools"] = list(tools)
            body["tool_choice"] = "auto"

        try:
            response = await self._client.post(
                f"{base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
                timeout=timeout or self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransientTransportError(f"Timeout calling {model}: {type(exc).__name__}") from exc
        except httpx.TransportError as exc:
            raise TransientTransportError(f"Connection error calling {model}: {exc}") from exc

        self._raise_for_status(response)
        return self._parse(response, model)

    async def probe(
        self, *, base_url: str, api_key: str, timeout: float | None = None
    ) -> bool:
        try:
            response = await self._client.get(
                f"{base_url}/models",
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=timeout or 5.0,
            )
        except httpx.HTTPError as exc:
            logger.debug("probe_failed", base_url=base_url, error=type(exc).__name__)
            return False
        return response.is_success

    async def close(self) -> None:
        await self._client.aclose()

    # ── Response handling ────────────────────────────────────
    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if response.is_success:
            return
        if status == 429:
            raise RateLimitedError(f"429: {response.text[:150]}", status_code=status)
        if status == 402:
            raise BillingExhaustedError("Billing/quota exceeded", status_code=status)
        if status in (401, 403):
            raise AuthFailureError("Auth failed", status_code=status)
        if status in _TRANSIENT_STATUSES:
            raise TransientTransportError(f"HTTP {status}", status_code=status)
        raise TransportError(status, response.text)

    @staticmethod
    def _parse(response: httpx.Response, model: str) -> Completion:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProtocolError("Invalid JSON body", status_code=response.status_code) from exc

        if not isinstance(data, dict) or not data:
            raise ProtocolError("Empty response")
        if data.get("error"):
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else None
            raise ProtocolError(message or str(err)[:200])

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ProtocolError("No choices")
        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        if not isinstance(message, dict):
            raise ProtocolError("No message")

        content = _text_content(message.get("content"))
        if content is None:
            raise ProtocolError(f"Unsupported content type {type(message.get('content')).__name__}")
        raw_calls = message.get("tool_calls")
        tool_calls = [
            ToolCall.from_wire(tc)
            for tc in (raw_calls if isinstance(raw_calls, list) else [])
            if isinstance(tc, dict)
        ]
        upstream_model = data.get("model")
        return Completion(
            content=content,
            tool_calls=tool_calls,
            usage=_clean_usage(data.get("usage")),
            model=upstream_model if isinstance(upstream_model, str) and upstream_model else model,
        )


# ═══════════════════════════════════════════════════════════════
#  Local: Ollama
# ═══════════════════════════════════════════════════════════════
class OllamaClient(LocalModelPort):
    """Offline provider speaking the Ollama ``/api/chat`` protocol."""

    def __init__(self, base_url: str, model: str, *, timeout: float = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = httpx.AsyncClient(timeout=timeout)

    async def chat(
        self,
        messages: Sequence[ConversationMessage],
        *,
        temperature: float = 0.6,
    ) -> Completion:
        try:
            response = await self._client.post(
                f"{self.base_url}/api/chat",
                json={
                    "model": self.model,
                    "messages": [m.to_wire() for m in messages],
                    "stream": False,
                    "options": {"temperature": temperature},
                },
            )
        except httpx.HTTPError as exc:
            raise LocalModelError(f"Local AI unreachable: {type(exc).__name__}") from exc

        if not response.is_success:
            raise LocalModelError(f"Local AI error {response.status_code}: {response.text[:200]}")
        try:
            data = response.json()
        except ValueError as exc:
            raise LocalModelError("Local AI returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise LocalModelError("Local AI returned an unexpected body")
        message = data.get("message")
        if not isinstance(message, dict):
            raise LocalModelError("Local AI response has no message")
        content = _text_content(message.get("content"))
        prompt_tokens = _as_int(data.get("prompt_eval_count") or 0)
        completion_tokens = _as_int(data.get("eval_count") or 0)
        if content is None or prompt_tokens is None or completion_tokens is None:
            raise LocalModelError("Local AI response has an unexpected shape")

        upstream_model = data.get("model")
        return Completion(
            content=content,
            usage={
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
            model=upstream_model if isinstance(upstream_model, str) and upstream_model else self.model,
        )

    async def is_available(self) -> bool:
        try:
            response = await self._client.get(f"{self.base_url}/api/tags", timeout=5.0)
        except httpx.HTTPError:
            return False
        return response.is_success

    async def close(self) -> None:
        await self._client.aclose()
