"""Background key health checker.

Every ``interval_s`` seconds each unavailable key is probed with a models-list
call.  A successful probe returns the key to service.  Keys disabled by an
auth failure are left alone unless ``recover_auth_failures`` is set; the
operator reset endpoint is their way back.
"""

from __future__ import annotations

import asyncio
import contextlib

import structlog

from llm_router.ports.outbound import CompletionPort, LocalModelPort
from llm_router.shared.observability.metrics import KEY_RECOVERIES
from llm_router.shared.providers.key_state import KeyState
from llm_router.shared.providers.registry import Provider, RouterState

logger = structlog.get_logger(__name__)


class KeyHealthChecker:
    """Single periodic task that heals keys independently of request traffic."""

    def __init__(
        self,
        state: RouterState,
        client: CompletionPort,
        local: LocalModelPort | None = None,
        *,
        interval_s: float = 300.0,
        probe_timeout_s: float = 5.0,
        recover_auth_failures: bool = False,
    ) -> None:
        self._state = state
        self._client = client
        self._local = local
        self._interval_s = interval_s
        self._probe_timeout_s = probe_timeout_s
        self._recover_auth = recover_auth_failures
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── One pass ─────────────────────────────────────────────
    async def run_once(self) -> int:
        """Probe every unavailable key once; returns how many recovered."""
        self._state.stats.incr("health_checks")

        probes = [
            self._probe(provider, key)
            for provider in self._state.providers
            for key in provider.keys.keys
            if self._should_probe(key)
        ]
        results = await asyncio.gather(*probes)
        recovered = sum(1 for ok in results if ok)

        await self.refresh_local()
        logger.info(
            "health_check_completed",
            probed=len(probes),
            recovered=recovered,
            local_available=self._state.local_available,
        )
        return recovered

    async def refresh_local(self) -> bool:
        if self._local is None:
            self._state.local_available = False
        else:
            self._state.local_available = await self._local.is_available()
        return self._state.local_available

    def _should_probe(self, key: KeyState) -> bool:
        if key.is_available:
            return False
        return self._recover_auth or not key.auth_failed

    async def _probe(self, provider: Provider, key: KeyState) -> bool:
        ok = await self._client.probe(
            base_url=provider.base_url,
            api_key=key.secret,
            timeout=self._probe_timeout_s,
        )
        if not ok:
            logger.debug("key_still_unavailable", provider=provider.id, key=key.label)
            return False

        previous = key.status
        key.reset()
        self._state.stats.incr("recoveries")
        KEY_RECOVERIES.labels(provider=provider.id).inc()
        logger.info(
            "key_recovered",
            provider=provider.id,
            key=key.label,
            key_masked=key.masked,
            previous_status=previous.value,
        )
        return True

    # ── Lifecycle ────────────────────────────────────────────
    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="llm-router-health-check")
        logger.info("health_checker_started", interval_s=self._interval_s)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("health_checker_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                await self.run_once()
            except Exception:
                logger.exception("health_check_failed")
