"""Shared provider registry — one pool of providers and keys per process.

``RouterState`` is constructed once by the dependency-injection root and
passed by reference to the gateway, tool loop, router and health checker.
Nothing here is module-global.
"""

from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Sequence

import structlog

from llm_router.domain.exceptions import UnknownProviderError
from llm_router.shared.providers.key_manager import KeyManager
from llm_router.shared.providers.key_state import Clock, KeyPolicy
from llm_router.shared.providers.types import ModelSpec, ProviderConfig, ProviderHealth

logger = structlog.get_logger(__name__)


@dataclass
class Provider:
    """A configured provider: static descriptor plus its live key pool."""

    config: ProviderConfig
    keys: KeyManager

    @property
    def id(self) -> str:
        return self.config.provider_id

    @property
    def name(self) -> str:
        return self.config.display_name

    @property
    def base_url(self) -> str:
        return self.config.base_url

    @property
    def models(self) -> tuple[ModelSpec, ...]:
        return self.config.models

    @property
    def supports_tools(self) -> bool:
        return self.config.supports_tools

    @property
    def primary_model(self) -> ModelSpec | None:
        return self.config.models[0] if self.config.models else None

    def health(self) -> ProviderHealth:
        return ProviderHealth(
            provider_id=self.id,
            display_name=self.name,
            models=[m.id for m in self.models],
            supports_tools=self.supports_tools,
            keys=self.keys.snapshot(),
        )


class RouterStats:
    """Thread-safe monotonically increasing counters."""

    FIELDS = (
        "total",
        "cloud",
        "local",
        "rotations",
        "key_rotations",
        "health_checks",
        "recoveries",
    )

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts = dict.fromkeys(self.FIELDS, 0)

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] += amount

    def __getitem__(self, name: str) -> int:
        return self._counts[name]

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counts)


class RouterState:
    """Providers in static priority order, preference, local flag and stats."""

    def __init__(
        self,
        providers: Sequence[Provider],
        *,
        preferred_provider_id: str | None = None,
        local_available: bool = False,
    ) -> None:
        self._providers = sorted(providers, key=lambda p: p.config.priority)
        self._by_id = {p.id: p for p in self._providers}
        self._preferred = preferred_provider_id
        self._lock = threading.Lock()
        self.local_available = local_available
        self.last_used: dict[str, str] | None = None
        self.stats = RouterStats()

    @classmethod
    def from_configs(
        cls,
        configs: Sequence[ProviderConfig],
        *,
        policy: KeyPolicy | None = None,
        clock: Clock = time.monotonic,
        preferred_provider_id: str | None = None,
    ) -> RouterState:
        providers: list[Provider] = []
        for cfg in configs:
            # Absence of credentials excludes a provider from rotation.
            if not cfg.has_keys:
                logger.info("provider_not_configured", provider=cfg.provider_id)
                continue
            secrets = [k.strip() for k in cfg.api_keys if k.strip()]
            providers.append(
                Provider(cfg, KeyManager(cfg.provider_id, secrets, policy=policy, clock=clock))
            )
        return cls(providers, preferred_provider_id=preferred_provider_id)

    @property
    def providers(self) -> list[Provider]:
        return list(self._providers)

    def get(self, provider_id: str) -> Provider:
        try:
            return self._by_id[provider_id]
        except KeyError:
            raise UnknownProviderError(provider_id) from None

    # ── Preference (read once per request) ───────────────────
    @property
    def preferred_provider_id(self) -> str | None:
        with self._lock:
            return self._preferred

    def set_preferred(self, provider_id: str) -> None:
        self.get(provider_id)
        with self._lock:
            self._preferred = provider_id
        logger.info("preferred_provider_changed", provider=provider_id)

    def ordered(self, preferred: str | None, *, needs_tools: bool = False) -> list[Provider]:
        """Preferred provider first, the rest by priority; tool-capable only if asked."""
        chain = list(self._providers)
        if preferred:
            chain.sort(key=lambda p: p.id != preferred)
        if needs_tools:
            chain = [p for p in chain if p.supports_tools]
        return chain

    def mark_used(self, provider_id: str, model: str) -> None:
        self.last_used = {"provider": provider_id, "model": model}

    def describe(self) -> dict[str, Any]:
        return {
            "providers": [
                {**asdict(h), "available_keys": h.available_keys}
                for h in (p.health() for p in self._providers)
            ],
            "preferred": self.preferred_provider_id,
            "last_used": self.last_used,
            "stats": self.stats.snapshot(),
        }
