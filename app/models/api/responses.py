from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.models.domain.agent_activity import ActivitySummary, AgentEvent, AgentStats
from app.models.domain.session import EnhancedStatistics


class ResearchErrorResponse(BaseModel):
    error: str


class StatusEvent(BaseModel):
    type: Literal["status"] = "status"
    status: Literal["started", "completed"]
    message: str
    topic: Optional[str] = None
    report: Optional[str] = None
    stats: Optional[EnhancedStatistics] = None
    activities: Optional[List[ActivitySummary]] = None


class AgentEventEnvelope(BaseModel):
    type: Literal["agent_event"] = "agent_event"
    event: AgentEvent


class AgentStatsEvent(BaseModel):
    type: Literal["agent_stats"] = "agent_stats"
    stats: AgentStats


class AssistantEvent(BaseModel):
    type: Literal["assistant"] = "assistant"
    content: str


class ToolUseEvent(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    tool_name: str
    tool_input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_name: str
    result_summary: str


class ResultEvent(BaseModel):
    type: Literal["result"] = "result"
    content: str


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    error: str


StreamEvent = Union[
    StatusEvent,
    AgentEventEnvelope,
    AgentStatsEvent,
    AssistantEvent,
    ToolUseEvent,
    ToolResultEvent,
    ResultEvent,
    ErrorEvent,
]
