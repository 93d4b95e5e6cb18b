from __future__ import annotations

import pytest

from app.llm.base_client import LLMUsage
from app.services.usage_calculator import MODEL_PRICING, UsageCalculator, resolve_model_price


def test_price_lookup_prefers_exact_then_longest_prefix():
    assert resolve_model_price("gpt-4.1-mini") is MODEL_PRICING["gpt-4.1-mini"]
    assert resolve_model_price("gpt-4.1-mini-2025-04-14") is MODEL_PRICING["gpt-4.1-mini"]
    assert resolve_model_price("gpt-4.1-2025-04-14") is MODEL_PRICING["gpt-4.1"]
    assert resolve_model_price("totally-unknown") is None


def test_unknown_models_fall_back_to_default_price():
    calculator = UsageCalculator()

    cost = calculator.track_llm_usage("A", "mystery-model", LLMUsage(1_000_000, 0, 1_000_000))

    assert cost == pytest.approx(2.00)


def test_usage_accumulates_per_agent():
    calculator = UsageCalculator()
    calculator.track_llm_usage("SEARCHER-1", "gpt-4.1-mini", LLMUsage(1000, 200, 1200))
    calculator.track_llm_usage("SEARCHER-1", "gpt-4.1-mini", LLMUsage(500, 100, 600))
    calculator.track_llm_usage("SEARCHER-1", "gpt-4.1-mini", None)

    [usage] = calculator.get_agent_breakdown()

    assert usage.input_tokens == 1500
    assert usage.output_tokens == 300
    assert usage.total_tokens == 1800
    assert usage.cost == pytest.approx(1500 * 0.4e-6 + 300 * 1.6e-6)


def test_only_search_provider_tools_are_billable():
    calculator = UsageCalculator()

    assert calculator.track_tool_cost("spawn_searcher") == 0.0
    calculator.track_tool_cost("search")
    calculator.track_tool_cost("search")
    calculator.track_tool_cost("get_contents")

    breakdown = {t.tool_name: t for t in calculator.get_tool_breakdown()}
    assert breakdown["search"].call_count == 2
    assert "spawn_searcher" not in breakdown

    totals = calculator.get_total_cost()
    assert totals.tool_cost == pytest.approx(3 * 0.008)
    assert totals.total_cost == pytest.approx(totals.llm_cost + totals.tool_cost)


def test_reset_clears_totals():
    calculator = UsageCalculator()
    calculator.track_llm_usage("WRITER-1", "gpt-4.1", LLMUsage(1000, 1000, 2000))
    calculator.track_tool_cost("search")

    calculator.reset()

    assert calculator.get_agent_breakdown() == []
    assert calculator.get_tool_breakdown() == []
    assert calculator.get_total_cost().total_cost == 0.0
