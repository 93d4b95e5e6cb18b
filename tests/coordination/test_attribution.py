from __future__ import annotations

from app.coordination.attribution import infer_agent_id, resolve_agent_id
from app.models.domain.agent_activity import AgentActivity, AgentRole, ToolCall


def _activities():
    orchestrator = AgentActivity(
        agent_id="ORCHESTRATOR",
        role=AgentRole.ORCHESTRATOR,
        task="Research: X",
        tool_calls=[ToolCall(id="spawn-1", tool_name="spawn_searcher")],
    )
    searcher = AgentActivity(
        agent_id="SEARCHER-1",
        role=AgentRole.SEARCHER,
        task="History",
        tool_calls=[ToolCall(id="search-1", tool_name="search")],
    )
    return [orchestrator, searcher]


def test_explicit_agent_id_wins():
    assert resolve_agent_id(_activities(), agent_id="WRITER-1", parent_call_id="search-1") == "WRITER-1"


def test_parent_call_owner_is_used():
    assert infer_agent_id(_activities(), "search-1") == "SEARCHER-1"
    assert resolve_agent_id(_activities(), parent_call_id="spawn-1") == "ORCHESTRATOR"


def test_falls_back_to_orchestrator():
    assert infer_agent_id(_activities(), None) == "ORCHESTRATOR"
    assert infer_agent_id(_activities(), "nobody-owns-this") == "ORCHESTRATOR"
    assert infer_agent_id([], "search-1") == "ORCHESTRATOR"
