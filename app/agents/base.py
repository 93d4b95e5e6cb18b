from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from app.core.config import Settings
from app.coordination.tracker import AgentActivityTracker
from app.llm.base_client import LLMUsage
from app.llm.gateway import ModelGateway, ToolUseHandler, UsageHandler
from app.llm.tools.search_tools import SearchToolExecutor, ToolExecution
from app.services.artifact_store import ArtifactStore


@dataclass
class AgentContext:
    """Everything one research session shares between its agents."""

    tracker: AgentActivityTracker
    gateway: ModelGateway
    artifacts: ArtifactStore
    settings: Settings
    search_tools: Optional[SearchToolExecutor] = None
    session_id: str = ""


@dataclass
class SearcherConfig:
    agent_id: str
    subtopic: str
    focus_areas: List[str] = field(default_factory=list)


@dataclass
class AnalyzerConfig:
    agent_id: str
    searcher_count: int


@dataclass
class WriterConfig:
    agent_id: str
    topic: str


@dataclass
class OrchestratorConfig:
    topic: str


class BaseAgent(Protocol):
    name: str

    async def run(self, config: Any) -> Any: ...


ToolExecutor = Callable[[str, Dict[str, Any]], Awaitable[ToolExecution]]


def tracked_tool_handler(tracker: AgentActivityTracker, agent_id: str, execute: ToolExecutor) -> ToolUseHandler:
    """
    Wrap a tool executor so every call is bracketed by the tracker hooks and
    attributed to ``agent_id``.
    """

    async def handle(call_id: str, tool_name: str, tool_input: Dict[str, Any]) -> str:
        tracker.pre_tool_use_hook(call_id=call_id, tool_name=tool_name, tool_input=tool_input, agent_id=agent_id)
        try:
            execution = await execute(tool_name, tool_input)
        except Exception as exc:
            tracker.post_tool_use_hook(
                call_id=call_id,
                tool_name=tool_name,
                output=str(exc),
                success=False,
                agent_id=agent_id,
            )
            raise
        tracker.post_tool_use_hook(
            call_id=call_id,
            tool_name=tool_name,
            output=execution.content,
            success=execution.success,
            agent_id=agent_id,
        )
        return execution.content

    return handle


def usage_recorder(tracker: AgentActivityTracker, agent_id: str, model: str) -> UsageHandler:
    def record(usage: LLMUsage) -> None:
        tracker.track_usage(agent_id, model, usage)

    return record
