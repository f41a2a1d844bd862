"""Domain entities — conversation messages, tool calls and router results.

Messages and tool calls are immutable: the tool loop only ever appends new
messages to a history, it never rewrites existing ones.  They round-trip to
the OpenAI chat wire format via ``to_wire`` / ``from_wire``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping

from llm_router.domain.enums import Role, Tier


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode tool-call arguments, defaulting to ``{}`` when missing or malformed."""
    if isinstance(raw, dict):
        return raw
    if not raw or not isinstance(raw, str):
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


# ═══════════════════════════════════════════════════════════════
#  Tool call
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True, slots=True)
class ToolCall:
    """A structured function invocation requested by the model.

    ``id`` is ``None`` when the upstream omitted it; the tool loop assigns one
    before the call is recorded in history.
    """

    id: str | None
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def with_id(self, call_id: str) -> ToolCall:
        return ToolCall(id=call_id, name=self.name, arguments=self.arguments)

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": json.dumps(self.arguments, ensure_ascii=False),
            },
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> ToolCall:
        fn = data.get("function") or {}
        if not isinstance(fn, Mapping):
            fn = {}
        return cls(
            id=data.get("id") or None,
            name=fn.get("name") or "unknown",
            arguments=parse_arguments(fn.get("arguments")),
        )


# ═══════════════════════════════════════════════════════════════
#  Conversation message
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True, slots=True)
class ConversationMessage:
    """One role-tagged entry of a conversation."""

    role: Role
    content: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    @property
    def is_text_only(self) -> bool:
        """True for messages that survive stripping of tool traffic."""
        if self.role in (Role.SYSTEM, Role.USER):
            return True
        return self.role == Role.ASSISTANT and not self.has_tool_calls

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        return data

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> ConversationMessage:
        raw_calls = data.get("tool_calls") or []
        return cls(
            role=Role(data.get("role", Role.USER.value)),
            content=data.get("content"),
            tool_calls=tuple(
                ToolCall.from_wire(tc) for tc in raw_calls if isinstance(tc, Mapping)
            ),
            tool_call_id=data.get("tool_call_id"),
        )

    @classmethod
    def coerce(cls, message: ConversationMessage | Mapping[str, Any]) -> ConversationMessage:
        if isinstance(message, ConversationMessage):
            return message
        return cls.from_wire(message)

    # ── Convenience constructors ─────────────────────────────
    @classmethod
    def system(cls, content: str) -> ConversationMessage:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> ConversationMessage:
        return cls(role=Role.USER, content=content)

    @classmethod
    def tool_result(cls, call_id: str, content: str) -> ConversationMessage:
        return cls(role=Role.TOOL, content=content, tool_call_id=call_id)


def text_only(messages: list[ConversationMessage]) -> list[ConversationMessage]:
    """Drop tool results and tool-requesting assistant turns."""
    return [m for m in messages if m.is_text_only]


# ═══════════════════════════════════════════════════════════════
#  Results
# ═══════════════════════════════════════════════════════════════
@dataclass(slots=True)
class Completion:
    """Normalised first choice of one completion response."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, int] | None = None
    model: str = ""
    error: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    @property
    def total_tokens(self) -> int:
        if not self.usage:
            return 0
        try:
            return int(self.usage.get("total_tokens", 0) or 0)
        except (TypeError, ValueError):
            return 0


@dataclass(slots=True)
class ExecutionResult:
    """The only object returned across the router's boundary."""

    content: str
    tier: Tier
    provider_id: str
    model: str = ""
    provider_name: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, int] | None = None
    error: str | None = None

    @classmethod
    def from_completion(
        cls,
        completion: Completion,
        *,
        tier: Tier,
        provider_id: str,
        provider_name: str = "",
    ) -> ExecutionResult:
        return cls(
            content=completion.content,
            tier=tier,
            provider_id=provider_id,
            provider_name=provider_name,
            model=completion.model,
            tool_calls=list(completion.tool_calls),
            usage=completion.usage,
            error=completion.error,
        )
