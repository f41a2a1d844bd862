"""Tests for round-robin key rotation and the provider registry."""

from __future__ import annotations

import pytest

from fakes import FakeClock, provider_config
from llm_router.domain.enums import KeyStatus
from llm_router.domain.exceptions import UnknownKeyError, UnknownProviderError
from llm_router.shared.providers import KeyManager, RouterState


@pytest.fixture
def manager(clock: FakeClock) -> KeyManager:
    return KeyManager("kimi", ["k1-secret-aaaa", "k2-secret-bbbb", "k3-secret-cccc"], clock=clock)


class TestKeyManager:
    def test_labels_are_one_based(self, manager: KeyManager) -> None:
        assert [k.label for k in manager.keys] == ["kimi#1", "kimi#2", "kimi#3"]

    def test_next_key_round_robins(self, manager: KeyManager) -> None:
        picked = [manager.next_key().secret for _ in range(4)]  # type: ignore[union-attr]
        assert picked == ["k1-secret-aaaa", "k2-secret-bbbb", "k3-secret-cccc", "k1-secret-aaaa"]

    def test_next_key_skips_unavailable(self, manager: KeyManager) -> None:
        manager.get(2).on_rate_limited()
        picked = [manager.next_key().label for _ in range(3)]  # type: ignore[union-attr]
        assert picked == ["kimi#1", "kimi#3", "kimi#1"]

    def test_next_key_none_when_all_unavailable(self, manager: KeyManager) -> None:
        for key in manager.keys:
            key.on_billing_exhausted()
        assert manager.next_key() is None
        assert not manager.any_available

    def test_candidate_keys_start_after_cursor(self, manager: KeyManager) -> None:
        first = manager.candidate_keys()
        second = manager.candidate_keys()
        assert [k.label for k in first] == ["kimi#1", "kimi#2", "kimi#3"]
        assert [k.label for k in second] == ["kimi#2", "kimi#3", "kimi#1"]

    def test_candidate_keys_only_available(self, manager: KeyManager) -> None:
        manager.get(1).on_auth_failure()
        assert [k.label for k in manager.candidate_keys()] == ["kimi#2", "kimi#3"]

    def test_candidate_keys_share_cursor_with_next_key(self, manager: KeyManager) -> None:
        assert manager.next_key().label == "kimi#1"  # type: ignore[union-attr]
        manager.get(3).on_rate_limited()

        assert [k.label for k in manager.candidate_keys()] == ["kimi#2", "kimi#1"]
        assert manager.next_key().label == "kimi#1"  # type: ignore[union-attr]

    def test_candidate_keys_fall_back_to_whole_pool(self, manager: KeyManager) -> None:
        for key in manager.keys:
            key.on_rate_limited()
        assert len(manager.candidate_keys()) == 3

    def test_get_rejects_out_of_range(self, manager: KeyManager) -> None:
        with pytest.raises(UnknownKeyError):
            manager.get(0)
        with pytest.raises(UnknownKeyError):
            manager.get(4)

    def test_snapshot_masks_secrets(self, manager: KeyManager) -> None:
        manager.get(3).on_rate_limited()
        snap = manager.snapshot()
        assert [s.index for s in snap] == [1, 2, 3]
        assert snap[2].status == KeyStatus.COOLING_DOWN
        assert snap[2].cooldown_remaining_s == 30.0
        assert all("secret" not in s.masked for s in snap)


class TestRouterState:
    def test_providers_without_keys_are_excluded(self, clock: FakeClock) -> None:
        state = RouterState.from_configs(
            [provider_config("kimi", ["a-key-123456"]), provider_config("groq", [])],
            clock=clock,
        )
        assert [p.id for p in state.providers] == ["kimi"]
        with pytest.raises(UnknownProviderError):
            state.get("groq")

    def test_ordered_puts_preferred_first(self, clock: FakeClock) -> None:
        state = RouterState.from_configs(
            [
                provider_config("kimi", ["a-key-123456"], priority=1),
                provider_config("groq", ["b-key-123456"], priority=2),
            ],
            clock=clock,
        )
        assert [p.id for p in state.ordered(None)] == ["kimi", "groq"]
        assert [p.id for p in state.ordered("groq")] == ["groq", "kimi"]

    def test_ordered_filters_tool_support(self, clock: FakeClock) -> None:
        state = RouterState.from_configs(
            [
                provider_config("kimi", ["a-key-123456"], supports_tools=False),
                provider_config("groq", ["b-key-123456"], priority=2),
            ],
            clock=clock,
        )
        assert [p.id for p in state.ordered(None, needs_tools=True)] == ["groq"]

    def test_set_preferred_validates(self, clock: FakeClock) -> None:
        state = RouterState.from_configs([provider_config("kimi", ["a-key-123456"])], clock=clock)
        with pytest.raises(UnknownProviderError):
            state.set_preferred("nope")
        state.set_preferred("kimi")
        assert state.preferred_provider_id == "kimi"

    def test_describe_contains_stats_and_keys(self, clock: FakeClock) -> None:
        state = RouterState.from_configs([provider_config("kimi", ["a-key-123456"])], clock=clock)
        state.stats.incr("total")
        desc = state.describe()
        assert desc["stats"]["total"] == 1
        assert desc["providers"][0]["available_keys"] == 1
        assert desc["providers"][0]["keys"][0]["index"] == 1
