"""Core types for the multi-provider router."""

from __future__ import annotations

from dataclasses import dataclass, field

from llm_router.domain.enums import KeyStatus


@dataclass(frozen=True)
class ModelSpec:
    """One entry of a provider's model fallback chain."""

    id: str
    supports_tools: bool = True


@dataclass(frozen=True)
class ProviderConfig:
    """Static configuration for a single upstream provider.

    Attributes:
        provider_id:  Unique identifier (e.g. "kimi", "groq").
        display_name: Human-readable name for logs and status.
        base_url:     Root of the OpenAI-compatible API.
        models:       Fallback chain; the first entry is the primary model.
        api_keys:     Pool of API keys to rotate through.
        priority:     Lower = tried earlier (after the preferred provider).
        timeout_s:    Per-request timeout for completion calls.
    """

    provider_id: str
    display_name: str
    base_url: str
    models: tuple[ModelSpec, ...] = ()
    api_keys: tuple[str, ...] = ()
    priority: int = 10
    timeout_s: float = 60.0

    @property
    def has_keys(self) -> bool:
        return bool(self.api_keys) and any(k.strip() for k in self.api_keys)

    @property
    def supports_tools(self) -> bool:
        return any(m.supports_tools for m in self.models)


@dataclass
class KeyHealth:
    """Read-only snapshot of one key."""

    index: int
    masked: str
    status: KeyStatus
    consecutive_failures: int = 0
    circuit_open: bool = False
    disabled: bool = False
    auth_failed: bool = False
    cooldown_remaining_s: float = 0.0
    calls: int = 0
    tokens: int = 0
    errors: int = 0


@dataclass
class ProviderHealth:
    """Read-only snapshot of a provider and its key pool."""

    provider_id: str
    display_name: str
    models: list[str] = field(default_factory=list)
    supports_tools: bool = False
    keys: list[KeyHealth] = field(default_factory=list)

    @property
    def available_keys(self) -> int:
        return sum(1 for k in self.keys if k.status == KeyStatus.AVAILABLE)
