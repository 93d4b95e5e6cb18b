from __future__ import annotations

from prometheus_client import Counter, Histogram


RESEARCH_SESSIONS = Counter(
    "research_sessions_total",
    "Research sessions finished, by terminal status",
    ["status"],
)

RESEARCH_SESSION_DURATION = Histogram(
    "research_session_duration_seconds",
    "Wall-clock duration of research sessions",
    buckets=(5, 15, 30, 60, 120, 180, 300, 600),
)

AGENT_RUNS = Counter(
    "research_agent_runs_total",
    "Agents that reached a terminal status",
    ["role", "status"],
)

TOOL_CALLS = Counter(
    "research_tool_calls_total",
    "Completed tool calls",
    ["tool_name", "success"],
)

LLM_TOKENS = Counter(
    "research_llm_tokens_total",
    "LLM tokens consumed",
    ["model", "kind"],
)

LLM_COST = Counter(
    "research_llm_cost_usd_total",
    "Estimated LLM spend in USD",
    ["model"],
)
