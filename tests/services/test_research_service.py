from __future__ import annotations

import asyncio
from typing import Any

import pytest

from app.llm.base_client import LLMResponse
from app.models.domain.agent_activity import AgentStatus
from app.models.domain.session import SessionStatus
from app.services.research_service import ResearchService
from app.services.sse import iter_sse_payloads
from tests.fakes import FakeSearchBackend, make_settings


class SlowLLMClient:
    def __init__(self) -> None:
        self.cancelled = asyncio.Event()

    async def generate(self, **kwargs: Any) -> LLMResponse:
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled.set()
            raise
        raise AssertionError("generate should have been cancelled")


@pytest.mark.asyncio
async def test_client_disconnect_cancels_and_finalizes(tmp_path):
    llm = SlowLLMClient()
    service = ResearchService(
        make_settings(tmp_path),
        llm_client_factory=lambda: llm,
        search_tool_factory=FakeSearchBackend,
    )
    handle = service.start_session("Fusion energy")
    stream = service.stream(handle)

    first = await stream.__anext__()
    [payload] = list(iter_sse_payloads([first]))
    assert payload["status"] == "started"

    await stream.aclose()

    assert handle.tracker.finalized
    assert handle.tracker.status == SessionStatus.FAILED

    await asyncio.wait_for(llm.cancelled.wait(), timeout=1)
    await asyncio.sleep(0)
    assert handle.tracker.get_activity("ORCHESTRATOR").status == AgentStatus.FAILED
