"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from fakes import FakeClock
from llm_router.domain.entities import ConversationMessage


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def user_messages() -> list[ConversationMessage]:
    return [ConversationMessage.user("How many bookings today?")]


@pytest.fixture
def bookings_tool() -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": "get_bookings",
            "description": "List today's bookings",
            "parameters": {"type": "object", "properties": {}},
        },
    }
