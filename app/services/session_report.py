from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from app.core.logging import get_logger
from app.core.utils import elapsed_ms, utc_now
from app.models.domain.agent_activity import AgentActivity, AgentStatus
from app.models.domain.usage import AgentUsage, CostBreakdown, ToolCostMetrics


logger = get_logger("SessionReport")


@dataclass
class AgentSummary:
    agent_id: str
    role: str
    task: str
    status: str
    duration_ms: int
    tool_call_count: int
    memory_delta: Optional[str] = None


@dataclass
class ToolUsageSummary:
    tool_name: str
    call_count: int
    success_rate: float
    avg_duration_ms: float
    total_cost: float


@dataclass
class SessionSummary:
    session_id: str
    topic: str
    start_time: datetime
    end_time: datetime
    status: str
    agents: List[AgentSummary] = field(default_factory=list)
    tools: List[ToolUsageSummary] = field(default_factory=list)
    costs: CostBreakdown = field(default_factory=CostBreakdown)
    usage: List[AgentUsage] = field(default_factory=list)
    peak_memory: str = "N/A"

    @property
    def duration_ms(self) -> int:
        return elapsed_ms(self.start_time, self.end_time)


def summarize_agents(
    activities: Sequence[AgentActivity],
    memory_deltas: Optional[Dict[str, str]] = None,
) -> List[AgentSummary]:
    memory_deltas = memory_deltas or {}
    summaries = []
    for activity in activities:
        duration = elapsed_ms(activity.start_time, activity.end_time)
        summaries.append(
            AgentSummary(
                agent_id=activity.agent_id,
                role=activity.role.value,
                task=activity.task,
                status=activity.status.value,
                duration_ms=duration,
                tool_call_count=len(activity.tool_calls),
                memory_delta=memory_deltas.get(activity.agent_id),
            )
        )
    return summaries


def summarize_tools(
    activities: Sequence[AgentActivity],
    tool_costs: Sequence[ToolCostMetrics],
) -> List[ToolUsageSummary]:
    """Per-tool call counts, success rate and latency, most used first."""
    costs = {t.tool_name: t.cost for t in tool_costs}
    counts: Dict[str, int] = {}
    successes: Dict[str, int] = {}
    durations: Dict[str, List[int]] = {}

    for activity in activities:
        for call in activity.tool_calls:
            counts[call.tool_name] = counts.get(call.tool_name, 0) + 1
            finished = durations.setdefault(call.tool_name, [])
            if call.end_time is not None:
                finished.append(elapsed_ms(call.start_time, call.end_time))
            if call.success:
                successes[call.tool_name] = successes.get(call.tool_name, 0) + 1

    summaries = []
    for tool_name, count in counts.items():
        finished = durations[tool_name]
        summaries.append(
            ToolUsageSummary(
                tool_name=tool_name,
                call_count=count,
                success_rate=successes.get(tool_name, 0) / count * 100,
                avg_duration_ms=sum(finished) / len(finished) if finished else 0.0,
                total_cost=costs.get(tool_name, 0.0),
            )
        )
    summaries.sort(key=lambda t: t.call_count, reverse=True)
    return summaries


def format_duration(ms: float) -> str:
    if ms < 1000:
        return f"{int(ms)}ms"
    if ms < 60000:
        return f"{ms / 1000:.1f}s"
    return f"{ms / 60000:.1f}m"


def progress_bar(percentage: float, width: int = 20) -> str:
    clamped = max(0.0, min(100.0, percentage))
    filled = round(clamped / 100 * width)
    return f"[{'█' * filled}{'░' * (width - filled)}] {percentage:.1f}%"


def markdown_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return "\n".join(lines)


def _share(part: float, total: float) -> float:
    return part / total * 100 if total > 0 else 0.0


def _cost_chart(costs: CostBreakdown) -> str:
    llm_bar = progress_bar(_share(costs.llm_cost, costs.total_cost), 30)
    tool_bar = progress_bar(_share(costs.tool_cost, costs.total_cost), 30)
    return "\n".join(
        [
            "### Cost Breakdown",
            "",
            "```",
            f"LLM Costs:  {llm_bar} ${costs.llm_cost:.4f}",
            f"Tool Costs: {tool_bar} ${costs.tool_cost:.4f}",
            "",
            f"Total:      [{'█' * 30}] ${costs.total_cost:.4f}",
            "```",
        ]
    )


def _agent_timeline(agents: Sequence[AgentSummary]) -> str:
    lines = []
    for index, agent in enumerate(agents):
        bar = "█" * round(agent.duration_ms / 10000)
        lines.append(f"{agent.agent_id.ljust(15)} {'  ' * index}{bar} {format_duration(agent.duration_ms)}")
    return "\n".join(lines)


def _top_tools(tools: Sequence[ToolUsageSummary]) -> str:
    if not tools:
        return "*No tool usage data available*"
    max_calls = tools[0].call_count or 1
    return "\n".join(
        f"{i}. **{t.tool_name}**: {progress_bar(t.call_count / max_calls * 100, 20)}"
        for i, t in enumerate(tools[:5], start=1)
    )


def render_session_report(summary: SessionSummary) -> str:
    duration = summary.duration_ms
    agents = summary.agents
    tools = summary.tools
    total_calls = sum(t.call_count for t in tools)
    successful_agents = sum(1 for a in agents if a.status == AgentStatus.COMPLETED.value)
    overall_success = (
        sum(t.success_rate * t.call_count for t in tools) / total_calls if total_calls else 0.0
    )
    minutes = duration / 60000
    cost_per_minute = summary.costs.total_cost / minutes if minutes > 0 else 0.0
    status_label = "✅ Completed" if summary.status == "completed" else "❌ Failed"

    agent_rows = [
        [
            a.agent_id,
            a.role,
            "✅" if a.status == AgentStatus.COMPLETED.value else "❌",
            format_duration(a.duration_ms),
            str(a.tool_call_count),
            a.memory_delta or "N/A",
        ]
        for a in agents
    ]
    tool_rows = [
        [
            t.tool_name,
            str(t.call_count),
            f"{t.success_rate:.1f}%",
            format_duration(t.avg_duration_ms),
            f"${t.total_cost:.4f}",
        ]
        for t in tools
    ]
    usage_rows = [
        [u.agent_id, str(u.input_tokens), str(u.output_tokens), f"${u.cost:.4f}"]
        for u in summary.usage
    ]

    sections = [
        "# Research Session Report",
        "",
        "## Session Information",
        "",
        f"- **Session ID**: `{summary.session_id}`",
        f"- **Topic**: {summary.topic}",
        f"- **Status**: {status_label}",
        f"- **Duration**: {format_duration(duration)}",
        f"- **Start Time**: {summary.start_time.isoformat()}",
        f"- **End Time**: {summary.end_time.isoformat()}",
        f"- **Peak Memory**: {summary.peak_memory}",
        "",
        "---",
        "",
        "## Agent Activity",
        "",
        markdown_table(["Agent ID", "Role", "Status", "Duration", "Tools Used", "Memory Δ"], agent_rows),
        "",
        "### Agent Timeline",
        "",
        "```",
        _agent_timeline(agents),
        "```",
        "",
        "---",
        "",
        "## Tool Usage Statistics",
        "",
        markdown_table(["Tool Name", "Calls", "Success Rate", "Avg Duration", "Cost"], tool_rows),
        "",
        "### Top Tools by Usage",
        "",
        _top_tools(tools),
        "",
        "---",
        "",
        _cost_chart(summary.costs),
        "",
        "### Cost Per Agent",
        "",
        markdown_table(["Agent ID", "Input Tokens", "Output Tokens", "Cost"], usage_rows),
        "",
        "---",
        "",
        "## Summary",
        "",
        f"- **Total Agents**: {len(agents)}",
        f"- **Successful Agents**: {successful_agents}",
        f"- **Total Tool Calls**: {total_calls}",
        f"- **Overall Success Rate**: {overall_success:.1f}%",
        f"- **Total Cost**: ${summary.costs.total_cost:.4f}",
        f"- **Cost per Minute**: ${cost_per_minute:.4f}/min",
        "",
        "---",
        "",
        f"*Generated on {utc_now().isoformat()}*",
        "",
    ]
    return "\n".join(sections)


def quick_summary(summary: SessionSummary) -> str:
    successful = sum(1 for a in summary.agents if a.status == AgentStatus.COMPLETED.value)
    tool_calls = sum(a.tool_call_count for a in summary.agents)
    return "\n".join(
        [
            f"Session Complete: {summary.topic}",
            f"├─ Duration: {format_duration(summary.duration_ms)}",
            f"├─ Agents: {len(summary.agents)} ({successful} successful)",
            f"├─ Tool Calls: {tool_calls}",
            f"└─ Total Cost: ${summary.costs.total_cost:.4f}",
        ]
    )


def report_path(logs_dir: str | Path, summary: SessionSummary) -> Path:
    stamp = summary.start_time.strftime("%Y-%m-%dT%H-%M-%S")
    return Path(logs_dir) / "sessions" / "markdown" / f"session_{summary.session_id}_{stamp}.md"


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


async def write_session_report(summary: SessionSummary, logs_dir: str | Path) -> Optional[Path]:
    """
    Render and persist the markdown report. A failed write is logged and
    reported as ``None`` so it never fails the session it describes.
    """
    path = report_path(logs_dir, summary)
    try:
        await asyncio.to_thread(_write_text, path, render_session_report(summary))
    except OSError as exc:
        logger.error("SessionReport.write_failed", session_id=summary.session_id, error=str(exc))
        return None

    logger.info("SessionReport.written", session_id=summary.session_id, path=str(path))
    return path
