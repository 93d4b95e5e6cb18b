from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.core.utils import utc_now


ORCHESTRATOR_AGENT_ID = "ORCHESTRATOR"


class AgentRole(str, Enum):
    ORCHESTRATOR = "orchestrator"
    SEARCHER = "searcher"
    ANALYZER = "analyzer"
    WRITER = "writer"


class AgentStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolCall(CamelModel):
    id: str
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[str] = None
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    success: bool = False


class AgentActivity(CamelModel):
    agent_id: str
    role: AgentRole
    task: str
    tool_calls: List[ToolCall] = Field(default_factory=list)
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    status: AgentStatus = AgentStatus.ACTIVE

    def owns_call(self, call_id: str) -> bool:
        return any(call.id == call_id for call in self.tool_calls)


AgentEventType = Literal["agent_started", "agent_completed", "tool_started", "tool_completed"]


class AgentEvent(CamelModel):
    type: AgentEventType
    agent_id: str
    role: Optional[AgentRole] = None
    task: Optional[str] = None
    tool_name: Optional[str] = None
    input: Optional[Dict[str, Any]] = None
    success: Optional[bool] = None
    status: Optional[AgentStatus] = None
    duration: Optional[int] = None
    timestamp: datetime = Field(default_factory=utc_now)


class AgentStats(CamelModel):
    total_agents: int = 0
    active_agents: int = 0
    completed_agents: int = 0
    failed_agents: int = 0
    total_tool_calls: int = 0
    search_calls: int = 0
    content_fetches: int = 0


class ActivitySummary(CamelModel):
    agent_id: str
    role: AgentRole
    task: str
    status: AgentStatus
    tool_call_count: int
    duration: Optional[int] = None
