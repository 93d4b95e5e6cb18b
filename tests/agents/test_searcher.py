from __future__ import annotations

import pytest

from app.agents.base import SearcherConfig
from app.agents.searcher import SYSTEM_PROMPT, SearcherAgent, build_research_prompt, summarize_findings
from app.core.errors import LLMError
from app.llm.base_client import ToolUseBlock
from app.models.domain.agent_activity import AgentRole, AgentStatus
from tests.fakes import FakeSearchBackend, ScriptedLLMClient, text_response, tool_response


FINDINGS = "\n".join(f"Finding line {n}" for n in range(1, 9))


def test_prompt_lists_focus_areas():
    prompt = build_research_prompt("Fusion history", ["Early reactors", "Tokamaks"])

    assert "**Subtopic**: Fusion history" in prompt
    assert "1. Early reactors\n2. Tokamaks" in prompt
    assert "1. General overview" in build_research_prompt("X", [])


def test_summary_keeps_first_five_lines():
    assert summarize_findings(FINDINGS) == "\n".join(f"Finding line {n}" for n in range(1, 6))
    assert len(summarize_findings("x" * 2000)) == 500


@pytest.mark.asyncio
async def test_searcher_researches_and_writes_note(context_factory, tracker, artifacts):
    backend = FakeSearchBackend()
    client = ScriptedLLMClient(
        [
            tool_response(ToolUseBlock(id="call-1", name="search", input={"query": "fusion history"})),
            text_response(FINDINGS),
        ]
    )
    context = context_factory(client, search_backend=backend)
    tracker.register_agent("SEARCHER-1", AgentRole.SEARCHER, "Fusion history")

    result = await SearcherAgent(context).run(
        SearcherConfig(agent_id="SEARCHER-1", subtopic="Fusion history", focus_areas=["Tokamaks"])
    )

    assert result.output_path == "research_notes/SEARCHER-1.md"
    assert result.full_findings == FINDINGS
    assert result.summary.count("\n") == 4
    assert await artifacts.read_notes() == [("SEARCHER-1.md", FINDINGS)]

    assert client.calls[0]["system"] == SYSTEM_PROMPT
    assert client.calls[0]["model"] == "gpt-4.1-mini"
    assert backend.calls[0]["query"] == "fusion history"

    activity = tracker.get_activity("SEARCHER-1")
    assert activity.status == AgentStatus.COMPLETED
    assert [(c.id, c.tool_name, c.success) for c in activity.tool_calls] == [("call-1", "search", True)]
    assert tracker.get_enhanced_statistics().costs.tool_cost > 0


@pytest.mark.asyncio
async def test_searcher_failure_is_reported_not_raised(context_factory, tracker, artifacts):
    context = context_factory(ScriptedLLMClient([LLMError("provider down")]))
    tracker.register_agent("SEARCHER-2", AgentRole.SEARCHER, "Costs")

    result = await SearcherAgent(context).run(SearcherConfig(agent_id="SEARCHER-2", subtopic="Costs"))

    assert result.summary == "Research failed: provider down"
    assert result.output_path == ""
    assert tracker.get_activity("SEARCHER-2").status == AgentStatus.FAILED
    assert await artifacts.read_notes() == []
