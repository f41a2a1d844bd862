"""Tests for the background key health checker."""

from __future__ import annotations

import asyncio

import pytest

from fakes import FakeClock, FakeCompletionClient, FakeLocalModel, RouterHarness, provider_config
from llm_router.shared.providers import KeyHealthChecker


@pytest.fixture
def harness(clock: FakeClock) -> RouterHarness:
    return RouterHarness(
        [provider_config("x", ["x-key-one-aaaa", "x-key-two-bbbb", "x-key-three-cc"])],
        clock=clock,
        local=FakeLocalModel(),
    )


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_only_unavailable_keys_are_probed(self, harness: RouterHarness) -> None:
        keys = harness.state.get("x").keys
        keys.get(2).on_rate_limited()

        await harness.checker.run_once()

        assert harness.client.probed == ["x-key-two-bbbb"]

    @pytest.mark.asyncio
    async def test_successful_probe_restores_key(self, harness: RouterHarness) -> None:
        keys = harness.state.get("x").keys
        keys.get(1).on_billing_exhausted()
        for _ in range(5):
            keys.get(3).on_transient_failure()
        harness.client.probe_results = {"x-key-one-aaaa": True, "x-key-three-cc": False}

        recovered = await harness.checker.run_once()

        assert recovered == 1
        assert keys.get(1).is_available
        assert not keys.get(3).is_available
        assert harness.state.stats["recoveries"] == 1
        assert harness.state.stats["health_checks"] == 1

    @pytest.mark.asyncio
    async def test_auth_failed_keys_are_skipped(self, harness: RouterHarness) -> None:
        keys = harness.state.get("x").keys
        keys.get(1).on_auth_failure()
        harness.client.probe_results = {"x-key-one-aaaa": True}

        assert await harness.checker.run_once() == 0
        assert harness.client.probed == []
        assert keys.get(1).auth_failed

    @pytest.mark.asyncio
    async def test_auth_failed_keys_probed_when_enabled(self, harness: RouterHarness) -> None:
        keys = harness.state.get("x").keys
        keys.get(1).on_auth_failure()
        harness.client.probe_results = {"x-key-one-aaaa": True}
        checker = KeyHealthChecker(harness.state, harness.client, recover_auth_failures=True)

        assert await checker.run_once() == 1
        assert keys.get(1).is_available
        assert not keys.get(1).auth_failed

    @pytest.mark.asyncio
    async def test_refreshes_local_availability(self, harness: RouterHarness) -> None:
        harness.local.available = False  # type: ignore[union-attr]
        await harness.checker.run_once()
        assert harness.state.local_available is False

        harness.local.available = True  # type: ignore[union-attr]
        await harness.checker.run_once()
        assert harness.state.local_available is True

    @pytest.mark.asyncio
    async def test_no_local_model_means_unavailable(self, clock: FakeClock) -> None:
        h = RouterHarness([provider_config("x", ["x-key-one-aaaa"])], clock=clock)
        h.state.local_available = True

        assert await h.checker.refresh_local() is False


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, harness: RouterHarness) -> None:
        checker = KeyHealthChecker(harness.state, FakeCompletionClient(), interval_s=0.01)

        checker.start()
        assert checker.running
        await asyncio.sleep(0.05)
        await checker.stop()

        assert not checker.running
        assert harness.state.stats["health_checks"] >= 1

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, harness: RouterHarness) -> None:
        await harness.checker.stop()
        assert not harness.checker.running
