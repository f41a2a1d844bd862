"""Tests for per-key circuit breaker, rate-limit cooldown and disable logic."""

from __future__ import annotations

import threading

import pytest

from fakes import FakeClock
from llm_router.domain.enums import KeyStatus
from llm_router.shared.providers.key_state import KeyPolicy, KeyState, mask_secret


@pytest.fixture
def key(clock: FakeClock) -> KeyState:
    return KeyState("sk-test-0123456789", label="kimi#1", clock=clock)


class TestKeyPolicy:
    def test_cooldown_escalates_and_caps(self) -> None:
        policy = KeyPolicy()
        assert [policy.cooldown_for(n) for n in range(1, 7)] == [30, 60, 120, 240, 300, 300]


class TestCircuitBreaker:
    def test_starts_available(self, key: KeyState) -> None:
        assert key.status == KeyStatus.AVAILABLE
        assert key.is_available

    def test_below_threshold_stays_available(self, key: KeyState) -> None:
        for _ in range(4):
            key.on_transient_failure()
        assert key.is_available
        assert key.consecutive_failures == 4

    def test_trips_at_threshold(self, key: KeyState) -> None:
        for _ in range(5):
            key.on_transient_failure()
        assert key.status == KeyStatus.CIRCUIT_OPEN
        assert not key.is_available

    def test_auto_resets_after_window(self, key: KeyState, clock: FakeClock) -> None:
        for _ in range(5):
            key.on_transient_failure()
        clock.advance(59)
        assert not key.is_available
        clock.advance(1)
        assert key.is_available

    def test_success_after_reset_clears_failures(self, key: KeyState, clock: FakeClock) -> None:
        for _ in range(5):
            key.on_transient_failure()
        clock.advance(60)
        key.on_success(tokens=42)
        assert key.consecutive_failures == 0
        assert key.circuit_open is False
        assert key.calls == 1
        assert key.tokens_consumed == 42

    def test_reset_window_clears_failure_count(self, key: KeyState, clock: FakeClock) -> None:
        for _ in range(5):
            key.on_transient_failure()
        clock.advance(60)
        assert key.is_available
        assert key.consecutive_failures == 0
        assert key.circuit_open is False

        for _ in range(4):
            key.on_transient_failure()
        assert key.is_available
        key.on_transient_failure()
        assert key.status == KeyStatus.CIRCUIT_OPEN

    def test_failure_after_window_counts_from_zero(self, key: KeyState, clock: FakeClock) -> None:
        for _ in range(5):
            key.on_transient_failure()
        clock.advance(61)
        # No status read in between; the failure itself must see the expired window.
        key.on_transient_failure()
        assert key.consecutive_failures == 1
        assert key.status == KeyStatus.AVAILABLE


class TestRateLimit:
    def test_sets_cooldown_without_counting_failures(self, key: KeyState, clock: FakeClock) -> None:
        seconds = key.on_rate_limited()
        assert seconds == 30
        assert key.consecutive_failures == 0
        assert key.errors == 1
        assert key.status == KeyStatus.COOLING_DOWN
        clock.advance(30)
        assert key.is_available

    def test_repeated_hits_escalate(self, key: KeyState, clock: FakeClock) -> None:
        until = []
        for _ in range(6):
            key.on_rate_limited()
            until.append(key.cooldown_until - clock.now)
        assert until == [30, 60, 120, 240, 300, 300]

    def test_success_resets_escalation(self, key: KeyState, clock: FakeClock) -> None:
        key.on_rate_limited()
        key.on_rate_limited()
        clock.advance(61)
        key.on_success()
        assert key.on_rate_limited() == 30

    def test_cooldown_remaining(self, key: KeyState, clock: FakeClock) -> None:
        key.on_rate_limited()
        clock.advance(10)
        assert key.cooldown_remaining() == pytest.approx(20)


class TestDisable:
    def test_billing_disables_for_an_hour(self, key: KeyState, clock: FakeClock) -> None:
        key.on_billing_exhausted()
        assert key.consecutive_failures == 0
        assert key.status == KeyStatus.DISABLED
        clock.advance(3599)
        assert not key.is_available
        clock.advance(1)
        assert key.is_available

    def test_auth_failure_never_expires(self, key: KeyState, clock: FakeClock) -> None:
        key.on_auth_failure()
        clock.advance(30 * 24 * 3600)
        assert key.status == KeyStatus.DISABLED
        assert key.auth_failed

    def test_reset_returns_key_to_service(self, key: KeyState) -> None:
        key.on_auth_failure()
        key.on_rate_limited()
        key.reset()
        assert key.is_available
        assert key.auth_failed is False
        assert key.cooldown_escalation == 0

    def test_disabled_takes_precedence_over_cooldown(self, key: KeyState) -> None:
        key.on_rate_limited()
        key.on_billing_exhausted()
        assert key.status == KeyStatus.DISABLED


class TestConcurrency:
    def test_parallel_failures_are_all_counted(self, clock: FakeClock) -> None:
        key = KeyState("sk-xyz", clock=clock, policy=KeyPolicy(breaker_threshold=10_000))

        def hammer() -> None:
            for _ in range(500):
                key.on_transient_failure()

        threads = [threading.Thread(target=hammer) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert key.errors == 4000
        assert key.consecutive_failures == 4000


class TestMasking:
    def test_long_secret(self) -> None:
        assert mask_secret("sk-abcdefghijwxyz") == "sk-a…wxyz"

    def test_short_secret(self) -> None:
        assert mask_secret("short") == "****"

    def test_masked_property(self, key: KeyState) -> None:
        assert key.secret not in key.masked
