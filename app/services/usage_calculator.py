from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from app.core import metrics
from app.core.logging import get_logger
from app.llm.base_client import LLMUsage
from app.models.domain.usage import AgentUsage, CostBreakdown, ToolCostMetrics


@dataclass(frozen=True)
class ModelPrice:
    input_per_token: float
    output_per_token: float


def _per_million(input_usd: float, output_usd: float) -> ModelPrice:
    return ModelPrice(input_usd / 1_000_000, output_usd / 1_000_000)


# USD list prices per million tokens.
MODEL_PRICING: Dict[str, ModelPrice] = {
    "gpt-4.1": _per_million(2.00, 8.00),
    "gpt-4.1-mini": _per_million(0.40, 1.60),
    "gpt-4.1-nano": _per_million(0.10, 0.40),
    "gpt-4o": _per_million(2.50, 10.00),
    "gpt-4o-mini": _per_million(0.15, 0.60),
    "o3": _per_million(2.00, 8.00),
    "o4-mini": _per_million(1.10, 4.40),
    "claude-sonnet-4": _per_million(3.00, 15.00),
    "claude-opus-4": _per_million(15.00, 75.00),
    "claude-haiku-4": _per_million(0.80, 4.00),
    "gemini-2.0-flash": _per_million(0.10, 0.40),
    "gemini-1.5-pro": _per_million(1.25, 5.00),
}

DEFAULT_MODEL = "gpt-4.1"

# USD per call for search-provider tools (one Tavily credit each).
TOOL_PRICING: Dict[str, float] = {
    "search": 0.008,
    "get_contents": 0.008,
    "find_similar": 0.008,
    "search_papers": 0.008,
    "search_news": 0.008,
}


def resolve_model_price(model: str) -> Optional[ModelPrice]:
    """Exact match first, then the longest table key the model id starts with."""
    normalized = (model or "").lower().strip()
    if normalized in MODEL_PRICING:
        return MODEL_PRICING[normalized]
    candidates = [key for key in MODEL_PRICING if normalized.startswith(key)]
    if not candidates:
        return None
    return MODEL_PRICING[max(candidates, key=len)]


class UsageCalculator:
    def __init__(self) -> None:
        self._usage: Dict[str, AgentUsage] = {}
        self._tool_costs: Dict[str, ToolCostMetrics] = {}
        self.logger = get_logger("UsageCalculator")

    def track_llm_usage(self, agent_id: str, model: str, usage: Optional[LLMUsage]) -> float:
        if usage is None:
            return 0.0

        input_tokens = usage.prompt_tokens or 0
        output_tokens = usage.completion_tokens or 0

        price = resolve_model_price(model)
        if price is None:
            self.logger.warning(
                "UsageCalculator.unknown_model",
                model=model,
                default_model=DEFAULT_MODEL,
            )
            price = MODEL_PRICING[DEFAULT_MODEL]

        cost = input_tokens * price.input_per_token + output_tokens * price.output_per_token

        existing = self._usage.get(agent_id)
        if existing is None:
            existing = AgentUsage(agent_id=agent_id, model=model)
            self._usage[agent_id] = existing
        existing.input_tokens += input_tokens
        existing.output_tokens += output_tokens
        existing.total_tokens += input_tokens + output_tokens
        existing.cost += cost

        metrics.LLM_TOKENS.labels(model, "input").inc(input_tokens)
        metrics.LLM_TOKENS.labels(model, "output").inc(output_tokens)
        metrics.LLM_COST.labels(model).inc(cost)

        self.logger.info(
            "UsageCalculator.llm_usage",
            agent_id=agent_id,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=round(cost, 6),
        )
        return cost

    @staticmethod
    def is_billable(tool_name: str) -> bool:
        return tool_name in TOOL_PRICING

    def track_tool_cost(self, tool_name: str) -> float:
        price = TOOL_PRICING.get(tool_name)
        if price is None:
            return 0.0

        existing = self._tool_costs.get(tool_name)
        if existing is None:
            existing = ToolCostMetrics(tool_name=tool_name)
            self._tool_costs[tool_name] = existing
        existing.call_count += 1
        existing.cost += price

        self.logger.debug("UsageCalculator.tool_cost", tool_name=tool_name, cost=price)
        return price

    def get_total_cost(self) -> CostBreakdown:
        llm_cost = sum(u.cost for u in self._usage.values())
        tool_cost = sum(t.cost for t in self._tool_costs.values())
        return CostBreakdown(llm_cost=llm_cost, tool_cost=tool_cost, total_cost=llm_cost + tool_cost)

    def get_agent_breakdown(self) -> List[AgentUsage]:
        return [u.model_copy() for u in self._usage.values()]

    def get_tool_breakdown(self) -> List[ToolCostMetrics]:
        return [t.model_copy() for t in self._tool_costs.values()]

    def reset(self) -> None:
        self._usage.clear()
        self._tool_costs.clear()

    def log_session_summary(self, session_id: str) -> None:
        totals = self.get_total_cost()
        breakdown = self.get_agent_breakdown()

        self.logger.info(
            "UsageCalculator.session_summary",
            session_id=session_id,
            llm_cost=round(totals.llm_cost, 4),
            tool_cost=round(totals.tool_cost, 4),
            total_cost=round(totals.total_cost, 4),
            agent_count=len(breakdown),
            total_tokens=sum(u.total_tokens for u in breakdown),
        )
        for usage in breakdown:
            self.logger.debug(
                "UsageCalculator.agent_breakdown",
                session_id=session_id,
                agent_id=usage.agent_id,
                input_tokens=usage.input_tokens,
                output_tokens=usage.output_tokens,
                cost=round(usage.cost, 4),
            )
        for tool in self.get_tool_breakdown():
            self.logger.debug(
                "UsageCalculator.tool_breakdown",
                session_id=session_id,
                tool_name=tool.tool_name,
                call_count=tool.call_count,
                cost=round(tool.cost, 4),
            )
