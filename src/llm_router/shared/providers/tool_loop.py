"""Bounded tool-calling loop against one provider + model.

Each round sends the history with tools attached.  A reply without tool calls
ends the loop; otherwise the requested tools run (each under its own timeout)
and their results are appended before the next round.  The loop always
terminates with one of:

  * a tool-call-free completion,
  * a forced text-only answer once ``max_rounds`` are used up,
  * a canned message when the upstream fails mid-loop and nothing recovers.

A failure on round 0 propagates so the router can move on to the next model.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import uuid
from typing import Any, Sequence

import structlog

from llm_router.domain.entities import (
    Completion,
    ConversationMessage,
    ToolCall,
    text_only,
)
from llm_router.domain.enums import Role
from llm_router.domain.exceptions import RouterError
from llm_router.ports.outbound import ToolExecutor, ToolSchema
from llm_router.shared.observability.metrics import TOOL_CALLS
from llm_router.shared.providers.gateway import ResilientProviderGateway
from llm_router.shared.providers.registry import Provider, RouterState

logger = structlog.get_logger(__name__)

COMPLEXITY_LIMIT_REPLY = (
    "I processed your request but hit complexity limits. Please try a simpler question."
)
DATA_SERVICE_REPLY = (
    "I had trouble processing your request: the data service did not respond. "
    "Please try again in a moment."
)


def tool_error_marker(name: str, reason: str) -> str:
    return (
        f"[TOOL ERROR: {name} failed: {reason}. "
        "Do NOT guess or invent data. Tell the user the tool failed.]"
    )


def _serialise_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    if result is None:
        result = {"error": "no result"}
    return json.dumps(result, ensure_ascii=False, default=str)


class ToolExecutionLoop:
    """Drives a multi-round tool conversation for a single request."""

    def __init__(
        self,
        gateway: ResilientProviderGateway,
        state: RouterState,
        *,
        max_rounds: int = 5,
        tool_timeout_s: float = 45.0,
    ) -> None:
        self._gateway = gateway
        self._state = state
        self._max_rounds = max_rounds
        self._tool_timeout_s = tool_timeout_s

    async def run(
        self,
        provider: Provider,
        model_id: str,
        messages: Sequence[ConversationMessage],
        tools: Sequence[ToolSchema],
        tool_executor: ToolExecutor,
    ) -> Completion:
        history = list(messages)
        call_ids = itertools.count(1)
        request_tag = uuid.uuid4().hex[:8]

        for round_no in range(self._max_rounds):
            try:
                completion = await self._gateway.complete(provider, model_id, history, tools=tools)
            except RouterError as exc:
                if round_no == 0:
                    raise
                logger.warning(
                    "tool_loop_round_failed",
                    provider=provider.id,
                    model=model_id,
                    round=round_no,
                    error=exc.message,
                )
                return await self._recover(provider, model_id, history, exc)

            if not completion.has_tool_calls:
                return completion

            # Every call gets an id before it enters history so results stay addressable.
            calls = tuple(
                tc if tc.id else tc.with_id(f"call_{request_tag}_{next(call_ids)}")
                for tc in completion.tool_calls
            )
            history.append(
                ConversationMessage(
                    role=Role.ASSISTANT,
                    content=completion.content or None,
                    tool_calls=calls,
                )
            )
            for call in calls:
                output = await self._execute_tool(call, tool_executor)
                history.append(ConversationMessage.tool_result(call.id or "", output))

            logger.debug(
                "tool_round_completed",
                provider=provider.id,
                round=round_no,
                tools=[c.name for c in calls],
            )

        logger.info("tool_rounds_exhausted", provider=provider.id, rounds=self._max_rounds)
        try:
            return await self._gateway.complete(provider, model_id, text_only(history))
        except RouterError as exc:
            logger.warning("forced_text_answer_failed", provider=provider.id, error=exc.message)
            return Completion(content=COMPLEXITY_LIMIT_REPLY, model=model_id)

    # ── Tool execution ───────────────────────────────────────
    async def _execute_tool(self, call: ToolCall, tool_executor: ToolExecutor) -> str:
        try:
            result = await asyncio.wait_for(
                tool_executor(call.name, call.arguments),
                timeout=self._tool_timeout_s,
            )
        except asyncio.TimeoutError:
            TOOL_CALLS.labels(status="timeout").inc()
            logger.warning("tool_timed_out", tool=call.name, timeout_s=self._tool_timeout_s)
            return tool_error_marker(call.name, f"timed out after {self._tool_timeout_s:g}s")
        except Exception as exc:
            TOOL_CALLS.labels(status="error").inc()
            logger.warning("tool_failed", tool=call.name, error=str(exc))
            return tool_error_marker(call.name, str(exc) or type(exc).__name__)

        TOOL_CALLS.labels(status="ok").inc()
        return _serialise_result(result)

    # ── Mid-loop recovery ladder ─────────────────────────────
    async def _recover(
        self,
        provider: Provider,
        model_id: str,
        history: list[ConversationMessage],
        original: RouterError,
    ) -> Completion:
        # Tool-call ids do not survive a provider switch, so only text is resent.
        stripped = text_only(history)

        try:
            return await self._gateway.complete(provider, model_id, stripped)
        except RouterError as exc:
            logger.warning("text_only_same_provider_failed", provider=provider.id, error=exc.message)

        for alt in self._state.providers:
            if alt.id == provider.id or alt.primary_model is None:
                continue
            try:
                return await self._gateway.complete(alt, alt.primary_model.id, stripped)
            except RouterError as exc:
                logger.warning("text_only_alt_provider_failed", provider=alt.id, error=exc.message)

        logger.error("tool_loop_recovery_failed", provider=provider.id, error=original.message)
        return Completion(content=DATA_SERVICE_REPLY, model=model_id, error=original.message)
