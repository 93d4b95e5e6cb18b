from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from app.core.utils import utc_now
from app.models.domain.agent_activity import AgentActivity, AgentStats, CamelModel
from app.models.domain.memory import MemorySnapshot
from app.models.domain.usage import AgentUsage, CostBreakdown, ToolCostMetrics


class SessionStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class EnhancedStatistics(CamelModel):
    agents: AgentStats
    costs: CostBreakdown
    memory: Optional[MemorySnapshot] = None


class ResearchSession(CamelModel):
    session_id: str
    topic: str = ""
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    status: Optional[SessionStatus] = None
    agents: List[AgentActivity] = Field(default_factory=list)
    usage: List[AgentUsage] = Field(default_factory=list)
    tool_costs: List[ToolCostMetrics] = Field(default_factory=list)
    memory_snapshots: List[MemorySnapshot] = Field(default_factory=list)

    @property
    def finalized(self) -> bool:
        return self.end_time is not None
