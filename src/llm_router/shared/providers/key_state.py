"""Per-credential health tracker — circuit breaker, rate-limit cooldown, disable.

Three independent mechanisms, because they recover differently:

    consecutive transient failures ≥ threshold → circuit OPEN for ``breaker_reset_s``
    HTTP 429                                   → cooldown, 30s · 2^(n-1) capped at 5 min
    HTTP 402                                   → disabled for ``billing_disable_s``
    HTTP 401/403                               → disabled with no expiry

Status is derived from the fields and the clock on every read; only the
outcome methods mutate, each under the key's own lock.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

import structlog

from llm_router.domain.enums import KeyStatus

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class KeyPolicy:
    """Thresholds shared by every key of a router."""

    breaker_threshold: int = 5
    breaker_reset_s: float = 60.0
    cooldown_base_s: float = 30.0
    cooldown_max_s: float = 300.0
    billing_disable_s: float = 3600.0

    def cooldown_for(self, escalation: int) -> float:
        return min(self.cooldown_base_s * (2 ** max(escalation - 1, 0)), self.cooldown_max_s)


def mask_secret(secret: str) -> str:
    if len(secret) <= 8:
        return "****"
    return f"{secret[:4]}…{secret[-4:]}"


class KeyState:
    """Health and usage of one API key."""

    def __init__(
        self,
        secret: str,
        *,
        label: str = "",
        policy: KeyPolicy | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.secret = secret
        self.label = label
        self._policy = policy or KeyPolicy()
        self._clock = clock
        self._lock = threading.Lock()

        self.consecutive_failures = 0
        self.circuit_open = False
        self.circuit_opened_at = 0.0
        self.cooldown_until = 0.0
        self.cooldown_escalation = 0
        self.disabled = False
        # None while disabled means "until an operator resets it".
        self.disabled_until: float | None = None
        self.auth_failed = False

        self.calls = 0
        self.tokens_consumed = 0
        self.errors = 0

    @property
    def masked(self) -> str:
        return mask_secret(self.secret)

    # ── Status derivation ────────────────────────────────────
    @property
    def status(self) -> KeyStatus:
        with self._lock:
            return self._status(self._clock())

    @property
    def is_available(self) -> bool:
        return self.status == KeyStatus.AVAILABLE

    def cooldown_remaining(self) -> float:
        with self._lock:
            return max(0.0, self.cooldown_until - self._clock())

    def _expire_circuit(self, now: float) -> None:
        """Caller must hold lock. A breaker past its reset window closes with a clean count."""
        if self.circuit_open and now - self.circuit_opened_at >= self._policy.breaker_reset_s:
            self.circuit_open = False
            self.consecutive_failures = 0

    def _status(self, now: float) -> KeyStatus:
        """Caller must hold lock."""
        self._expire_circuit(now)
        if self.disabled and (self.disabled_until is None or now < self.disabled_until):
            return KeyStatus.DISABLED
        if self.circuit_open:
            return KeyStatus.CIRCUIT_OPEN
        if now < self.cooldown_until:
            return KeyStatus.COOLING_DOWN
        return KeyStatus.AVAILABLE

    # ── Outcomes ─────────────────────────────────────────────
    def on_success(self, tokens: int = 0) -> None:
        with self._lock:
            was_open = self.circuit_open
            self.consecutive_failures = 0
            self.circuit_open = False
            self.cooldown_escalation = 0
            self.calls += 1
            self.tokens_consumed += max(tokens, 0)
        if was_open:
            logger.info("key_circuit_closed", key=self.label)

    def on_transient_failure(self) -> None:
        with self._lock:
            self._expire_circuit(self._clock())
            self.consecutive_failures += 1
            self.errors += 1
            if self.consecutive_failures < self._policy.breaker_threshold:
                return
            self.circuit_open = True
            self.circuit_opened_at = self._clock()
            failures = self.consecutive_failures
        logger.warning(
            "key_circuit_opened",
            key=self.label,
            failures=failures,
            reset_s=self._policy.breaker_reset_s,
        )

    def on_rate_limited(self) -> float:
        """Start (or escalate) a cooldown; returns its length in seconds."""
        with self._lock:
            self.cooldown_escalation += 1
            self.errors += 1
            seconds = self._policy.cooldown_for(self.cooldown_escalation)
            self.cooldown_until = self._clock() + seconds
        return seconds

    def on_billing_exhausted(self) -> None:
        with self._lock:
            self.disabled = True
            self.disabled_until = self._clock() + self._policy.billing_disable_s
            self.errors += 1

    def on_auth_failure(self) -> None:
        with self._lock:
            self.disabled = True
            self.disabled_until = None
            self.auth_failed = True
            self.errors += 1

    def reset(self) -> None:
        """Return the key to service (health-check recovery or operator override)."""
        with self._lock:
            self.consecutive_failures = 0
            self.circuit_open = False
            self.circuit_opened_at = 0.0
            self.cooldown_until = 0.0
            self.cooldown_escalation = 0
            self.disabled = False
            self.disabled_until = None
            self.auth_failed = False
        logger.info("key_reset", key=self.label)
