from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from app.core import metrics
from app.core.errors import AgentAlreadyRegisteredError
from app.core.logging import add_session_log_handler, get_logger, remove_session_log_handler
from app.core.utils import elapsed_ms, truncate, utc_now
from app.coordination.attribution import resolve_agent_id
from app.llm.base_client import LLMUsage
from app.models.domain.agent_activity import (
    ActivitySummary,
    AgentActivity,
    AgentEvent,
    AgentRole,
    AgentStats,
    AgentStatus,
    ToolCall,
)
from app.models.domain.session import EnhancedStatistics, ResearchSession, SessionStatus
from app.services.memory_monitor import MemoryMonitor
from app.services.session_report import (
    SessionSummary,
    quick_summary,
    summarize_agents,
    summarize_tools,
    write_session_report,
)
from app.services.usage_calculator import UsageCalculator


OUTPUT_PREVIEW_CHARS = 200

EventListener = Callable[[AgentEvent], None]


def _preview(value: Any) -> str:
    if isinstance(value, str):
        text = value
    else:
        text = json.dumps(value, default=str)
    return truncate(text, OUTPUT_PREVIEW_CHARS)


class AgentActivityTracker:
    """
    Session-scoped record of every agent and tool call in one research run.

    One instance is created per request and handed to every agent by
    reference. All mutations are synchronous, so agents running concurrently
    on the same event loop interleave at await points without locking.
    Listeners registered with ``on_event`` receive each lifecycle event in
    production order; a listener that raises is logged and skipped.
    """

    def __init__(
        self,
        session_id: str,
        topic: str = "",
        *,
        logs_dir: Optional[str] = None,
        memory_monitor: Optional[MemoryMonitor] = None,
        usage_calculator: Optional[UsageCalculator] = None,
        memory_sample_interval_seconds: Optional[float] = None,
    ) -> None:
        self.session_id = session_id
        self.topic = topic
        self.logs_dir = logs_dir
        self.start_time = utc_now()
        self.end_time = None
        self.status: Optional[SessionStatus] = None

        self._agents: Dict[str, AgentActivity] = {}
        self._in_flight: Dict[str, ToolCall] = {}
        self._listeners: List[EventListener] = []
        self._memory_deltas: Dict[str, Optional[int]] = {}

        self.memory = memory_monitor or MemoryMonitor()
        self.usage = usage_calculator or UsageCalculator()
        self.logger = get_logger("AgentActivityTracker").bind(session_id=session_id)

        self._log_handler: Optional[logging.Handler] = None
        if logs_dir:
            self._log_handler = add_session_log_handler(session_id, logs_dir)

        if memory_sample_interval_seconds:
            self.memory.start_monitoring(memory_sample_interval_seconds)

        self.logger.info("Tracker.initialized", topic=topic)

    @property
    def finalized(self) -> bool:
        return self.end_time is not None

    # --- lifecycle -------------------------------------------------------

    def register_agent(self, agent_id: str, role: AgentRole, task: str) -> AgentActivity:
        if agent_id in self._agents:
            raise AgentAlreadyRegisteredError(agent_id)

        activity = AgentActivity(agent_id=agent_id, role=role, task=task)
        self._agents[agent_id] = activity
        self.memory.record_agent_start(agent_id)

        self.logger.info("Tracker.agent_registered", agent_id=agent_id, role=role.value, task=task)
        self._emit(AgentEvent(type="agent_started", agent_id=agent_id, role=role, task=task))
        return activity

    def complete_agent(self, agent_id: str, status: AgentStatus) -> bool:
        """Move an active agent to a terminal status; later calls are ignored."""
        activity = self._agents.get(agent_id)
        if activity is None:
            self.logger.warning("Tracker.complete_unknown_agent", agent_id=agent_id)
            return False
        if activity.status != AgentStatus.ACTIVE:
            self.logger.debug(
                "Tracker.complete_ignored",
                agent_id=agent_id,
                current_status=activity.status.value,
                requested_status=status.value,
            )
            return False

        activity.end_time = utc_now()
        activity.status = status
        delta = self.memory.record_agent_end(agent_id)
        self._memory_deltas[agent_id] = delta
        duration = elapsed_ms(activity.start_time, activity.end_time)

        metrics.AGENT_RUNS.labels(activity.role.value, status.value).inc()
        self.logger.info(
            "Tracker.agent_completed",
            agent_id=agent_id,
            status=status.value,
            duration_ms=duration,
            memory_delta=self.memory.format_delta(delta),
        )
        self._emit(
            AgentEvent(
                type="agent_completed",
                agent_id=agent_id,
                role=activity.role,
                status=status,
                duration=duration,
            )
        )
        return True

    # --- tool hooks ------------------------------------------------------

    def pre_tool_use_hook(
        self,
        *,
        call_id: str,
        tool_name: str,
        tool_input: Optional[Dict[str, Any]] = None,
        agent_id: Optional[str] = None,
        parent_call_id: Optional[str] = None,
    ) -> str:
        resolved = resolve_agent_id(self._agents.values(), agent_id, parent_call_id)
        call = ToolCall(id=call_id, tool_name=tool_name, input=dict(tool_input or {}))
        self._in_flight[call_id] = call

        activity = self._agents.get(resolved)
        if activity is not None:
            activity.tool_calls.append(call)
        else:
            self.logger.warning("Tracker.tool_for_unregistered_agent", agent_id=resolved, tool_name=tool_name)

        self.logger.debug(
            "Tracker.tool_started",
            agent_id=resolved,
            tool_name=tool_name,
            tool_input=_preview(call.input),
        )
        self._emit(
            AgentEvent(type="tool_started", agent_id=resolved, tool_name=tool_name, input=call.input)
        )
        return resolved

    def post_tool_use_hook(
        self,
        *,
        call_id: str,
        tool_name: str,
        output: Any = None,
        success: bool = True,
        agent_id: Optional[str] = None,
        parent_call_id: Optional[str] = None,
    ) -> str:
        resolved = resolve_agent_id(self._agents.values(), agent_id, parent_call_id)

        duration: Optional[int] = None
        call = self._in_flight.pop(call_id, None)
        if call is not None:
            call.end_time = utc_now()
            call.success = success
            call.output = _preview(output)
            duration = elapsed_ms(call.start_time, call.end_time)
        else:
            self.logger.warning("Tracker.unknown_tool_call", call_id=call_id, tool_name=tool_name)

        if self.usage.is_billable(tool_name):
            self.usage.track_tool_cost(tool_name)

        metrics.TOOL_CALLS.labels(tool_name, str(success).lower()).inc()
        self.logger.info(
            "Tracker.tool_completed",
            agent_id=resolved,
            tool_name=tool_name,
            success=success,
            duration_ms=duration,
        )
        self._emit(
            AgentEvent(
                type="tool_completed",
                agent_id=resolved,
                tool_name=tool_name,
                success=success,
                duration=duration,
            )
        )
        return resolved

    # --- usage -----------------------------------------------------------

    def track_usage(self, agent_id: str, model: str, usage: Optional[LLMUsage]) -> None:
        try:
            self.usage.track_llm_usage(agent_id, model, usage)
        except (TypeError, ValueError) as exc:
            self.logger.warning("Tracker.usage_rejected", agent_id=agent_id, model=model, error=str(exc))

    # --- events ----------------------------------------------------------

    def on_event(self, callback: EventListener) -> None:
        self._listeners.append(callback)

    def _emit(self, event: AgentEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self.logger.exception("Tracker.listener_failed", event_type=event.type, agent_id=event.agent_id)

    # --- queries ---------------------------------------------------------

    def get_agent_activities(self) -> List[AgentActivity]:
        return list(self._agents.values())

    def get_activity(self, agent_id: str) -> Optional[AgentActivity]:
        return self._agents.get(agent_id)

    def active_agents(self, role: Optional[AgentRole] = None) -> List[AgentActivity]:
        return [
            a
            for a in self._agents.values()
            if a.status == AgentStatus.ACTIVE and (role is None or a.role == role)
        ]

    def get_activity_summaries(self) -> List[ActivitySummary]:
        return [
            ActivitySummary(
                agent_id=a.agent_id,
                role=a.role,
                task=a.task,
                status=a.status,
                tool_call_count=len(a.tool_calls),
                duration=elapsed_ms(a.start_time, a.end_time) if a.end_time else None,
            )
            for a in self._agents.values()
        ]

    def get_statistics(self) -> AgentStats:
        activities = self.get_agent_activities()
        calls = [call for a in activities for call in a.tool_calls]
        return AgentStats(
            total_agents=len(activities),
            active_agents=sum(1 for a in activities if a.status == AgentStatus.ACTIVE),
            completed_agents=sum(1 for a in activities if a.status == AgentStatus.COMPLETED),
            failed_agents=sum(1 for a in activities if a.status == AgentStatus.FAILED),
            total_tool_calls=len(calls),
            search_calls=sum(
                1 for c in calls if "search" in c.tool_name and "get_contents" not in c.tool_name
            ),
            content_fetches=sum(1 for c in calls if "get_contents" in c.tool_name),
        )

    def get_enhanced_statistics(self) -> EnhancedStatistics:
        return EnhancedStatistics(
            agents=self.get_statistics(),
            costs=self.usage.get_total_cost(),
            memory=self.memory.get_peak_memory(),
        )

    def get_session(self) -> ResearchSession:
        return ResearchSession(
            session_id=self.session_id,
            topic=self.topic,
            start_time=self.start_time,
            end_time=self.end_time,
            status=self.status,
            agents=self.get_agent_activities(),
            usage=self.usage.get_agent_breakdown(),
            tool_costs=self.usage.get_tool_breakdown(),
            memory_snapshots=self.memory.snapshots,
        )

    # --- teardown --------------------------------------------------------

    async def finalize_session(self, status: SessionStatus = SessionStatus.COMPLETED) -> bool:
        """
        Close the session: stop sampling, log cost and memory summaries, write
        the markdown report and release the session log file. Only the first
        call has any effect.
        """
        if self.finalized:
            return False

        self.end_time = utc_now()
        self.status = status
        self.memory.stop_monitoring()

        try:
            self.usage.log_session_summary(self.session_id)
            self.memory.log_memory_report(self.session_id)

            summary = self._build_summary()
            if self.logs_dir:
                await write_session_report(summary, self.logs_dir)
            self.logger.info("Tracker.quick_summary", summary=quick_summary(summary))

            metrics.RESEARCH_SESSIONS.labels(status.value).inc()
            metrics.RESEARCH_SESSION_DURATION.observe(elapsed_ms(self.start_time, self.end_time) / 1000)
            self.logger.info("Tracker.session_finalized", status=status.value)
        finally:
            if self._log_handler is not None:
                remove_session_log_handler(self._log_handler)
                self._log_handler = None
        return True

    def _build_summary(self) -> SessionSummary:
        activities = self.get_agent_activities()
        deltas = {
            agent_id: self.memory.format_delta(delta) for agent_id, delta in self._memory_deltas.items()
        }
        return SessionSummary(
            session_id=self.session_id,
            topic=self.topic,
            start_time=self.start_time,
            end_time=self.end_time or utc_now(),
            status=(self.status or SessionStatus.COMPLETED).value,
            agents=summarize_agents(activities, deltas),
            tools=summarize_tools(activities, self.usage.get_tool_breakdown()),
            costs=self.usage.get_total_cost(),
            usage=self.usage.get_agent_breakdown(),
            peak_memory=self.memory.format_peak(),
        )

    def reset(self) -> None:
        self._agents.clear()
        self._in_flight.clear()
        self._memory_deltas.clear()
        self.usage.reset()
        self.memory.reset()
