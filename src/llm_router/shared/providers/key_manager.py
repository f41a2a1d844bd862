"""Key manager — round-robin rotation over one provider's key pool.

Each key carries its own ``KeyState``; the manager only owns the rotation
cursor.  Selection is fair: the cursor advances past whichever key was
handed out, so consecutive requests start on different keys.
"""

from __future__ import annotations

import threading
import time
from typing import Sequence

import structlog

from llm_router.domain.enums import KeyStatus
from llm_router.domain.exceptions import UnknownKeyError
from llm_router.shared.providers.key_state import Clock, KeyPolicy, KeyState
from llm_router.shared.providers.types import KeyHealth

logger = structlog.get_logger(__name__)


class KeyManager:
    """Manages a pool of API keys for a single provider."""

    def __init__(
        self,
        provider_id: str,
        secrets: Sequence[str],
        *,
        policy: KeyPolicy | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.provider_id = provider_id
        self._keys = [
            KeyState(secret, label=f"{provider_id}#{idx + 1}", policy=policy, clock=clock)
            for idx, secret in enumerate(secrets)
        ]
        self._cursor = 0
        self._lock = threading.Lock()

    @property
    def keys(self) -> list[KeyState]:
        return list(self._keys)

    @property
    def key_count(self) -> int:
        return len(self._keys)

    @property
    def any_available(self) -> bool:
        return any(ks.is_available for ks in self._keys)

    def get(self, index: int) -> KeyState:
        if not 1 <= index <= len(self._keys):
            raise UnknownKeyError(self.provider_id, index)
        return self._keys[index - 1]

    # ── Selection ────────────────────────────────────────────
    def next_key(self) -> KeyState | None:
        """Next available key after the cursor, or None when none is usable."""
        with self._lock:
            count = len(self._keys)
            for i in range(count):
                idx = (self._cursor + i) % count
                if self._keys[idx].is_available:
                    self._cursor = (idx + 1) % count
                    return self._keys[idx]
            return None

    def candidate_keys(self) -> list[KeyState]:
        """Keys to try for one call, in rotation order.

        Starts at ``next_key()`` and continues with the other available keys.
        When nothing is available the whole pool is returned from the cursor:
        status is time-based and a breaker may have just reached its reset
        boundary.
        """
        first = self.next_key()
        with self._lock:
            count = len(self._keys)
            if count == 0:
                return []
            start = self._keys.index(first) if first is not None else self._cursor
            ordered = [self._keys[(start + i) % count] for i in range(count)]
        if first is not None:
            return [first] + [ks for ks in ordered[1:] if ks.is_available]
        logger.debug("no_available_keys", provider=self.provider_id, keys=count)
        return ordered

    # ── Observation ──────────────────────────────────────────
    def snapshot(self) -> list[KeyHealth]:
        out: list[KeyHealth] = []
        for idx, ks in enumerate(self._keys, start=1):
            status = ks.status
            out.append(
                KeyHealth(
                    index=idx,
                    masked=ks.masked,
                    status=status,
                    consecutive_failures=ks.consecutive_failures,
                    circuit_open=status == KeyStatus.CIRCUIT_OPEN,
                    disabled=status == KeyStatus.DISABLED,
                    auth_failed=ks.auth_failed,
                    cooldown_remaining_s=round(ks.cooldown_remaining(), 1),
                    calls=ks.calls,
                    tokens=ks.tokens_consumed,
                    errors=ks.errors,
                )
            )
        return out
