from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Union

import pytest
from fastapi.testclient import TestClient

from app.agents import analyzer, orchestrator, searcher, writer
from app.api.routes_research import get_research_service
from app.core.errors import LLMError
from app.llm.base_client import LLMResponse, ToolUseBlock
from app.main import create_app
from app.services.artifact_store import ArtifactStore
from app.services.research_service import REPORT_UNAVAILABLE, SESSION_TIMEOUT_MESSAGE, ResearchService
from app.services.sse import DONE_SENTINEL, iter_sse_payloads
from tests.fakes import (
    FakeSearchBackend,
    RoutingLLMClient,
    ScriptedLLMClient,
    assistant_rounds,
    make_settings,
    text_response,
    tool_response,
)


LINKS = " ".join(f"[S{n}](https://source{n}.example.com/paper)" for n in range(16))
# 2 heading tokens + 2482 filler words + 16 links
REPORT = "# Report\n\n" + " ".join(["word"] * 2482) + "\n\n" + LINKS

SYNTHESIS = (
    "## Executive Summary\n\nShort.\n\n"
    "## Key Themes\n- Confinement\n- Funding\n- Materials\n\n"
    "## Cross-Subtopic Insights\n- Links\n\n"
    "## Areas of Consensus\n- Slow\n"
)


def _orchestrator(model, messages) -> LLMResponse:
    rounds = assistant_rounds(messages)
    if rounds == 0:
        return tool_response(
            ToolUseBlock(
                id="s-1",
                name="spawn_searcher",
                input={"agent_id": "SEARCHER-1", "subtopic": "History", "focus_areas": ["origins"]},
            ),
            ToolUseBlock(
                id="s-2",
                name="spawn_searcher",
                input={"agent_id": "SEARCHER-2", "subtopic": "Economics", "focus_areas": ["costs"]},
            ),
            text="I will split the topic in two.",
        )
    if rounds == 1:
        return tool_response(ToolUseBlock(id="a-1", name="spawn_analyzer", input={"searcher_count": 2}))
    if rounds == 2:
        return tool_response(ToolUseBlock(id="w-1", name="spawn_writer", input={"topic": "Fusion energy"}))
    return text_response("All done.")


def _routing_client() -> RoutingLLMClient:
    return RoutingLLMClient(
        {
            orchestrator.SYSTEM_PROMPT: _orchestrator,
            searcher.SYSTEM_PROMPT: lambda model, messages: text_response("# Findings\n- [A](https://a.example.com)"),
            analyzer.SYSTEM_PROMPT: lambda model, messages: text_response(SYNTHESIS),
            writer.SYSTEM_PROMPT: lambda model, messages: text_response(REPORT),
        }
    )


class HangingLLMClient:
    async def generate(self, **kwargs: Any) -> LLMResponse:
        await asyncio.sleep(30)
        raise AssertionError("should have been cancelled")


def _client_for(service: ResearchService) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_research_service] = lambda: service
    return TestClient(app)


def _service(tmp_path, llm_client, **overrides: Any) -> ResearchService:
    return ResearchService(
        make_settings(tmp_path, **overrides),
        llm_client_factory=lambda: llm_client,
        search_tool_factory=FakeSearchBackend,
    )


def _payloads(text: str) -> List[Union[Dict[str, Any], str]]:
    return list(iter_sse_payloads([text]))


def test_research_streams_full_session(tmp_path):
    client = _client_for(_service(tmp_path, _routing_client()))

    response = client.post("/research", json={"topic": "Fusion energy"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["x-session-id"]

    payloads = _payloads(response.text)
    assert payloads[0]["type"] == "status"
    assert payloads[0]["status"] == "started"
    assert payloads[0]["topic"] == "Fusion energy"
    assert payloads[-1] == DONE_SENTINEL

    events = [p for p in payloads if isinstance(p, dict)]
    summaries = [e["result_summary"] for e in events if e["type"] == "tool_result"]
    assert 'SEARCHER-1 completed research on "History"' in summaries
    assert 'SEARCHER-2 completed research on "Economics"' in summaries
    assert "Analyzer completed synthesis with 3 key insights" in summaries
    assert "Writer completed 2500-word research report" in summaries

    assert [e["content"] for e in events if e["type"] == "result"] == ["I will split the topic in two.\n\nAll done."]
    assert any(e["type"] == "agent_stats" for e in events)

    started = [e["event"]["agentId"] for e in events if e["type"] == "agent_event" and e["event"]["type"] == "agent_started"]
    assert started[0] == "ORCHESTRATOR"
    assert set(started) == {"ORCHESTRATOR", "SEARCHER-1", "SEARCHER-2", "ANALYZER-1", "WRITER-1"}

    [completed] = [e for e in events if e["type"] == "status" and e["status"] == "completed"]
    assert completed["report"] == REPORT
    assert completed["stats"]["agents"]["totalAgents"] == 5
    assert completed["stats"]["agents"]["completedAgents"] == 5
    assert completed["stats"]["costs"]["llmCost"] > 0
    assert len(completed["activities"]) == 5
    assert not any(e["type"] == "error" for e in events)

    session_id = response.headers["x-session-id"]
    reports = list((tmp_path / "logs" / "sessions" / "markdown").glob(f"session_{session_id}_*.md"))
    assert len(reports) == 1


@pytest.mark.parametrize(
    "kwargs",
    [
        {"json": {"topic": ""}},
        {"json": {"topic": "   "}},
        {"json": {}},
        {"json": {"topic": 42}},
        {"json": ["Fusion"]},
        {"content": b"not json", "headers": {"content-type": "application/json"}},
    ],
)
def test_invalid_topic_is_rejected(tmp_path, kwargs):
    client = _client_for(_service(tmp_path, ScriptedLLMClient([])))

    response = client.post("/research", **kwargs)

    assert response.status_code == 400
    assert response.json() == {"error": "Topic is required"}


def test_orchestrator_failure_ends_with_single_error(tmp_path):
    client = _client_for(_service(tmp_path, ScriptedLLMClient([LLMError("upstream unavailable")])))

    response = client.post("/research", json={"topic": "Fusion energy"})

    assert response.status_code == 200
    payloads = _payloads(response.text)
    errors = [p for p in payloads if isinstance(p, dict) and p["type"] == "error"]
    assert errors == [{"type": "error", "error": "upstream unavailable"}]
    assert payloads[-1] == DONE_SENTINEL
    assert payloads[-2]["type"] == "error"
    assert not any(isinstance(p, dict) and p.get("status") == "completed" for p in payloads)

    orchestrator_done = [
        p["event"]
        for p in payloads
        if isinstance(p, dict) and p["type"] == "agent_event" and p["event"]["type"] == "agent_completed"
    ]
    assert orchestrator_done[0]["agentId"] == "ORCHESTRATOR"
    assert orchestrator_done[0]["status"] == "failed"


def test_session_timeout_emits_error(tmp_path):
    client = _client_for(_service(tmp_path, HangingLLMClient(), session_timeout_seconds=0.2))

    response = client.post("/research", json={"topic": "Fusion energy"})

    payloads = _payloads(response.text)
    errors = [p["error"] for p in payloads if isinstance(p, dict) and p["type"] == "error"]
    assert errors == [SESSION_TIMEOUT_MESSAGE]
    assert payloads[-1] == DONE_SENTINEL


def test_start_failure_returns_500(tmp_path):
    def broken_factory():
        raise RuntimeError("no credentials")

    service = ResearchService(
        make_settings(tmp_path),
        llm_client_factory=broken_factory,
        search_tool_factory=FakeSearchBackend,
    )
    client = _client_for(service)

    response = client.post("/research", json={"topic": "Fusion energy"})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to start research"}


def test_health_and_request_id():
    client = TestClient(create_app())

    response = client.get("/health", headers={"X-Request-Id": "req-123"})

    assert response.status_code == 200
    assert response.text.startswith("ok | env=")
    assert response.headers["x-request-id"] == "req-123"


def test_metrics_endpoint():
    client = TestClient(create_app())

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "research_sessions_total" in response.text


def _label(payload: Union[Dict[str, Any], str]) -> str:
    if not isinstance(payload, dict):
        return payload
    if payload["type"] == "agent_event":
        event = payload["event"]
        return f"{event['type']}:{event.get('toolName') or event['agentId']}"
    return f"{payload['type']}:{payload.get('tool_name', '')}"


def test_stream_keeps_production_order(tmp_path):
    client = _client_for(_service(tmp_path, _routing_client()))

    labels = [_label(p) for p in _payloads(client.post("/research", json={"topic": "Fusion energy"}).text)]

    assert labels[:4] == ["status:", "agent_started:ORCHESTRATOR", "assistant:", "tool_use:spawn_searcher"]
    tool_uses = [i for i, label in enumerate(labels) if label.startswith("tool_use:")]
    tool_results = [i for i, label in enumerate(labels) if label.startswith("tool_result:")]
    assert len(tool_uses) == len(tool_results) == 4
    for index in tool_uses:
        tool_name = labels[index].split(":", 1)[1]
        assert labels[index + 1] == f"tool_started:{tool_name}"
    for index in tool_results:
        tool_name = labels[index].split(":", 1)[1]
        assert labels[index - 1] == f"tool_completed:{tool_name}"

    complete = labels.index("agent_completed:ORCHESTRATOR")
    assert labels[complete + 1 :] == ["result:", "agent_stats:", "status:", DONE_SENTINEL]


def test_unreadable_report_falls_back_to_placeholder(tmp_path, monkeypatch):
    async def unreadable(self):
        raise PermissionError("report unreadable")

    monkeypatch.setattr(ArtifactStore, "read_report", unreadable)
    client = _client_for(_service(tmp_path, _routing_client()))

    response = client.post("/research", json={"topic": "Fusion energy"})

    payloads = _payloads(response.text)
    [completed] = [p for p in payloads if isinstance(p, dict) and p.get("status") == "completed"]
    assert completed["report"] == REPORT_UNAVAILABLE
    assert not any(isinstance(p, dict) and p["type"] == "error" for p in payloads)
    assert payloads[-1] == DONE_SENTINEL
    assert list((tmp_path / "logs" / "sessions" / "markdown").glob("session_*.md"))
