from __future__ import annotations

import json

import pytest

from app.models.api.responses import AgentEventEnvelope, ErrorEvent, StatusEvent, ToolUseEvent
from app.models.domain.agent_activity import AgentEvent, AgentRole
from app.models.domain.messages import (
    AssistantMessage,
    CompleteMessage,
    ToolResultMessage,
    ToolUseMessage,
    UnrecognizedMessage,
)
from app.services.sse import (
    DONE_FRAME,
    DONE_SENTINEL,
    encode_sse,
    iter_sse_payloads,
    summarize_tool_result,
    to_stream_event,
)


def test_frames_decode_in_order_even_when_split():
    events = [
        StatusEvent(status="started", message="Starting research on: X", topic="X"),
        AgentEventEnvelope(event=AgentEvent(type="agent_started", agent_id="SEARCHER-1", role=AgentRole.SEARCHER, task="t")),
        ToolUseEvent(tool_name="spawn_writer", tool_input={"topic": "X"}),
        ErrorEvent(error="boom"),
    ]
    stream = "".join(encode_sse(e) for e in events) + DONE_FRAME

    payloads = list(iter_sse_payloads([stream.encode("utf-8")]))
    assert payloads == list(iter_sse_payloads([stream[i:i + 7] for i in range(0, len(stream), 7)]))

    assert [p["type"] if isinstance(p, dict) else p for p in payloads] == [
        "status",
        "agent_event",
        "tool_use",
        "error",
        DONE_SENTINEL,
    ]
    assert payloads[1]["event"]["agentId"] == "SEARCHER-1"
    assert "toolName" not in payloads[1]["event"]
    assert payloads[2] == {"type": "tool_use", "tool_name": "spawn_writer", "tool_input": {"topic": "X"}}


def test_encode_plain_dict():
    assert encode_sse({"type": "status"}) == 'data: {"type": "status"}\n\n'


@pytest.mark.parametrize(
    "tool_name, payload, expected",
    [
        ("search", {"total": 4, "results": []}, "Found 4 results"),
        ("search_news", {"results": []}, "Found 0 results"),
        ("get_contents", {"documents": [{}, {}]}, "Retrieved content from 2 source(s)"),
        ("find_similar", {"similar": [{}]}, "Found 1 similar sources"),
        (
            "spawn_searcher",
            {"agent_id": "SEARCHER-2", "status": "completed", "subtopic": "Costs"},
            'SEARCHER-2 completed research on "Costs"',
        ),
        ("spawn_searcher", {"agent_id": "SEARCHER-3", "status": "failed"}, "SEARCHER-3 failed"),
        ("spawn_analyzer", {"status": "completed", "key_insights": ["a", "b"]}, "Analyzer completed synthesis with 2 key insights"),
        ("spawn_writer", {"status": "completed", "word_count": 1800}, "Writer completed 1800-word research report"),
        ("spawn_writer", {"status": "failed"}, "Writer failed"),
        ("mystery_tool", {"anything": 1}, "Results received"),
        ("read_file", {"message": "Read notes.md"}, "Results received"),
    ],
)
def test_summarize_tool_result(tool_name, payload, expected):
    assert summarize_tool_result(tool_name, json.dumps(payload)) == expected


def test_summarize_non_json_result():
    assert summarize_tool_result("search", "Error: rate limited") == "Results received"


def test_message_to_event_mapping():
    assert to_stream_event(AssistantMessage(content="")) is None
    assert to_stream_event(AssistantMessage(content="Planning")).content == "Planning"

    tool_use = to_stream_event(ToolUseMessage(tool_use_id="c1", tool_name="spawn_searcher", tool_input={"a": 1}))
    assert tool_use.type == "tool_use"
    assert tool_use.tool_input == {"a": 1}

    result = to_stream_event(
        ToolResultMessage(tool_use_id="c1", tool_name="search", content=json.dumps({"total": 2}))
    )
    assert result.result_summary == "Found 2 results"

    assert to_stream_event(CompleteMessage(content="done")).type == "result"
    assert to_stream_event(UnrecognizedMessage(raw={"type": "system"})) is None
