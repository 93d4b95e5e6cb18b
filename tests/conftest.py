from __future__ import annotations

from pathlib import Path

import pytest

from app.coordination.tracker import AgentActivityTracker
from app.core.config import Settings
from app.llm.gateway import ModelGateway
from app.llm.tools.search_tools import SearchToolExecutor
from app.agents.base import AgentContext
from app.services.artifact_store import ArtifactStore
from tests.fakes import FakeSearchBackend, RecordingSleep, make_settings


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def tracker() -> AgentActivityTracker:
    return AgentActivityTracker("test-session", "Test Topic")


@pytest.fixture
def artifacts(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "files", "test-session")


@pytest.fixture
def context_factory(settings: Settings, tracker: AgentActivityTracker, artifacts: ArtifactStore):
    def _factory(llm_client, *, search_backend=None) -> AgentContext:
        gateway = ModelGateway(llm_client, max_retries=3, base_delay_seconds=1.0, sleep=RecordingSleep())
        return AgentContext(
            tracker=tracker,
            gateway=gateway,
            artifacts=artifacts,
            settings=settings,
            search_tools=SearchToolExecutor(search_backend or FakeSearchBackend()),
            session_id="test-session",
        )

    return _factory
