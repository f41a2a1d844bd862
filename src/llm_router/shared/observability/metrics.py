"""Prometheus metrics for the LLM router."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


# ── Request outcomes ─────────────────────────────────────────
ROUTER_REQUESTS = Counter(
    "llm_router_requests_total",
    "Requests answered by the router",
    ["tier", "provider"],
)

ROUTER_EXHAUSTED = Counter(
    "llm_router_exhausted_total",
    "Requests for which every tier failed",
)

# ── Upstream calls ───────────────────────────────────────────
UPSTREAM_LATENCY = Histogram(
    "llm_router_upstream_latency_seconds",
    "Upstream completion latency",
    ["provider"],
    buckets=(0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0),
)

KEY_EVENTS = Counter(
    "llm_router_key_events_total",
    "Key state transitions caused by upstream outcomes",
    ["provider", "event"],
)

KEY_RECOVERIES = Counter(
    "llm_router_key_recoveries_total",
    "Keys returned to service by the health checker",
    ["provider"],
)

# ── Tool loop ────────────────────────────────────────────────
TOOL_CALLS = Counter(
    "llm_router_tool_calls_total",
    "Tool executions by outcome",
    ["status"],  # ok / error / timeout
)
