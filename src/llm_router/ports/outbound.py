"""Outbound ports — interfaces that infrastructure adapters must implement.

The router core depends only on these abstractions, never on a concrete
HTTP client.  Tests substitute scripted fakes for both ports.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Sequence

from llm_router.domain.entities import Completion, ConversationMessage

ToolSchema = dict[str, Any]

# Supplied by the business layer; opaque to the router apart from its timeout.
ToolExecutor = Callable[[str, dict[str, Any]], Awaitable[Any]]


class CompletionPort(ABC):
    """One request/response cycle against an OpenAI-compatible endpoint."""

    @abstractmethod
    async def complete(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSchema] | None = None,
        temperature: float = 0.6,
        max_tokens: int = 4096,
        timeout: float | None = None,
    ) -> Completion:
        """Return the normalised completion or raise an ``UpstreamError`` subclass."""

    @abstractmethod
    async def probe(
        self, *, base_url: str, api_key: str, timeout: float | None = None
    ) -> bool:
        """Lightweight credential check (models list).  Never raises."""

    async def close(self) -> None:
        return None


class LocalModelPort(ABC):
    """Offline provider — never rate limited, no tool support."""

    model: str

    @abstractmethod
    async def chat(
        self,
        messages: Sequence[ConversationMessage],
        *,
        temperature: float = 0.6,
    ) -> Completion:
        """Return a completion or raise ``LocalModelError``."""

    @abstractmethod
    async def is_available(self) -> bool: ...

    async def close(self) -> None:
        return None
