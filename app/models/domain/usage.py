from __future__ import annotations

from app.models.domain.agent_activity import CamelModel


class UsageMetrics(CamelModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    model: str = ""


class AgentUsage(UsageMetrics):
    agent_id: str


class ToolCostMetrics(CamelModel):
    tool_name: str
    call_count: int = 0
    cost: float = 0.0


class CostBreakdown(CamelModel):
    llm_cost: float = 0.0
    tool_cost: float = 0.0
    total_cost: float = 0.0
