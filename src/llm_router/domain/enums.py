"""Domain enumerations for the LLM router."""

from __future__ import annotations

import enum


class Role(str, enum.Enum):
    """Author of a conversation message (OpenAI chat roles)."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Tier(str, enum.Enum):
    """Which fallback level satisfied a request."""

    PRIMARY = "primary"
    FALLBACK = "fallback"
    LOCAL = "local"
    EMERGENCY_NO_TOOLS = "emergency-no-tools"


class UpstreamErrorKind(str, enum.Enum):
    """Typed outcome of a failed upstream call.

    Each kind drives a different key-state transition and rotation decision.
    """

    RATE_LIMITED = "rate_limited"
    BILLING_EXHAUSTED = "billing_exhausted"
    AUTH_FAILURE = "auth_failure"
    TRANSIENT = "transient"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"


class KeyStatus(str, enum.Enum):
    """Mutually exclusive availability states of a single credential."""

    AVAILABLE = "available"
    CIRCUIT_OPEN = "circuit_open"
    COOLING_DOWN = "cooling_down"
    DISABLED = "disabled"
