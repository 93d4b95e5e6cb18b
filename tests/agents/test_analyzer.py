from __future__ import annotations

import pytest

from app.agents.analyzer import (
    CONSENSUS_HEADING,
    INSIGHTS_HEADING,
    KEY_THEMES_HEADING,
    AnalyzerAgent,
    extract_bullet_points,
)
from app.agents.base import AnalyzerConfig
from app.core.errors import LLMError
from app.models.domain.agent_activity import AgentRole, AgentStatus
from tests.fakes import ScriptedLLMClient, text_response


SYNTHESIS = """## Executive Summary

Fusion is hard.

## Key Themes

### Confinement keeps improving
- Private funding is accelerating
---
* Materials remain the bottleneck

## Cross-Subtopic Insights

- Funding tracks milestone announcements

## Areas of Consensus

- Commercial power is decades away
"""


def test_extract_between_headings():
    assert extract_bullet_points(SYNTHESIS, KEY_THEMES_HEADING, INSIGHTS_HEADING) == [
        "Confinement keeps improving",
        "Private funding is accelerating",
        "Materials remain the bottleneck",
    ]
    assert extract_bullet_points(SYNTHESIS, INSIGHTS_HEADING, CONSENSUS_HEADING) == [
        "Funding tracks milestone announcements",
    ]


def test_extract_with_missing_headings():
    assert extract_bullet_points(SYNTHESIS, "## Nowhere", INSIGHTS_HEADING) == []
    assert extract_bullet_points(SYNTHESIS, CONSENSUS_HEADING, "## Areas of Debate") == [
        "Commercial power is decades away",
    ]


@pytest.mark.asyncio
async def test_analyzer_reads_notes_and_writes_synthesis(context_factory, tracker, artifacts):
    await artifacts.write_note("SEARCHER-1", "notes one")
    await artifacts.write_note("SEARCHER-2", "notes two")
    client = ScriptedLLMClient([text_response(SYNTHESIS)])
    tracker.register_agent("ANALYZER-1", AgentRole.ANALYZER, "Synthesize research findings")

    result = await AnalyzerAgent(context_factory(client)).run(AnalyzerConfig(agent_id="ANALYZER-1", searcher_count=2))

    prompt = client.calls[0]["messages"][0].content
    assert "analyzing research findings from 2 Searcher agents" in prompt
    assert "## Research Note: SEARCHER-1.md\n\nnotes one" in prompt
    assert "## Research Note: SEARCHER-2.md\n\nnotes two" in prompt
    assert client.calls[0]["tools"] is None

    assert result.output_path == "analysis/synthesis.md"
    assert len(result.insights) == 3
    assert result.themes == ["Funding tracks milestone announcements"]
    assert await artifacts.read_synthesis() == SYNTHESIS
    assert tracker.get_activity("ANALYZER-1").status == AgentStatus.COMPLETED


@pytest.mark.asyncio
async def test_analyzer_caps_extracted_items(context_factory, tracker):
    themes = "\n".join(f"- Theme {n}" for n in range(15))
    synthesis = f"## Key Themes\n{themes}\n## Cross-Subtopic Insights\n"
    tracker.register_agent("ANALYZER-1", AgentRole.ANALYZER, "Synthesize")

    result = await AnalyzerAgent(context_factory(ScriptedLLMClient([text_response(synthesis)]))).run(
        AnalyzerConfig(agent_id="ANALYZER-1", searcher_count=0)
    )

    assert len(result.insights) == 10


@pytest.mark.asyncio
async def test_analyzer_failure_returns_empty_result(context_factory, tracker):
    tracker.register_agent("ANALYZER-1", AgentRole.ANALYZER, "Synthesize")

    result = await AnalyzerAgent(context_factory(ScriptedLLMClient([LLMError("nope")]))).run(
        AnalyzerConfig(agent_id="ANALYZER-1", searcher_count=1)
    )

    assert result.insights == []
    assert result.themes == []
    assert result.output_path == ""
    assert tracker.get_activity("ANALYZER-1").status == AgentStatus.FAILED
