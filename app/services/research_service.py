from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import structlog

from app.agents.base import AgentContext, OrchestratorConfig
from app.agents.orchestrator import OrchestratorAgent
from app.coordination.tracker import AgentActivityTracker
from app.core.config import Settings
from app.core.logging import get_logger
from app.core.utils import generate_uuid
from app.llm.base_client import BaseLLMClient
from app.llm.gateway import ModelGateway, SleepFn
from app.llm.tools.search_tools import SearchBackend, SearchToolExecutor
from app.models.api.responses import AgentEventEnvelope, AgentStatsEvent, ErrorEvent, StatusEvent
from app.models.domain.agent_activity import AgentEvent
from app.models.domain.messages import CompleteMessage, OrchestratorMessage
from app.models.domain.session import SessionStatus
from app.services.artifact_store import ArtifactStore
from app.services.sse import DONE_FRAME, encode_sse, to_stream_event


REPORT_UNAVAILABLE = "Error: Failed to load the generated report."
SESSION_TIMEOUT_MESSAGE = "Research session timed out"

_END = object()


@dataclass
class ResearchSessionHandle:
    session_id: str
    topic: str
    tracker: AgentActivityTracker
    context: AgentContext


class ResearchService:
    """
    Runs one research session per request and renders it as an SSE stream.

    ``start_session`` does all the setup that can fail before any byte is
    sent; ``stream`` then owns the session until its terminal frame.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        llm_client_factory: Callable[[], BaseLLMClient],
        search_tool_factory: Callable[[], SearchBackend],
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.settings = settings
        self.llm_client_factory = llm_client_factory
        self.search_tool_factory = search_tool_factory
        self._sleep = sleep
        self.logger = get_logger("ResearchService")

    def start_session(self, topic: str, session_id: Optional[str] = None) -> ResearchSessionHandle:
        session_id = session_id or generate_uuid()
        settings = self.settings

        gateway = ModelGateway(
            self.llm_client_factory(),
            max_retries=settings.llm_max_retries,
            base_delay_seconds=settings.llm_retry_base_delay_seconds,
            max_rounds=settings.llm_max_rounds,
            sleep=self._sleep,
        )
        search_tools = SearchToolExecutor(self.search_tool_factory())

        tracker = AgentActivityTracker(
            session_id,
            topic,
            logs_dir=settings.logs_dir,
            memory_sample_interval_seconds=settings.memory_sample_interval_seconds,
        )
        context = AgentContext(
            tracker=tracker,
            gateway=gateway,
            artifacts=ArtifactStore(settings.files_base_path, session_id),
            settings=settings,
            search_tools=search_tools,
            session_id=session_id,
        )

        self.logger.info("ResearchService.session_started", session_id=session_id, topic=topic)
        return ResearchSessionHandle(session_id=session_id, topic=topic, tracker=tracker, context=context)

    async def stream(self, handle: ResearchSessionHandle) -> AsyncIterator[str]:
        """
        Yield SSE frames for the session, ending with the ``[DONE]`` frame.

        A single producer task writes every frame into one queue, so tracker
        events and orchestrator output reach the client in the order they were
        produced. If the client goes away the producer is cancelled and the
        session is still finalized.
        """
        queue: asyncio.Queue = asyncio.Queue()
        producer = asyncio.create_task(self._produce(handle, queue))
        try:
            while True:
                frame = await queue.get()
                if frame is _END:
                    break
                yield frame
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                self.logger.info("ResearchService.client_disconnected", session_id=handle.session_id)
                await handle.tracker.finalize_session(SessionStatus.FAILED)

    async def _produce(self, handle: ResearchSessionHandle, queue: asyncio.Queue) -> None:
        structlog.contextvars.bind_contextvars(session_id=handle.session_id)
        tracker = handle.tracker

        def forward_event(event: AgentEvent) -> None:
            queue.put_nowait(encode_sse(AgentEventEnvelope(event=event)))

        tracker.on_event(forward_event)
        status = SessionStatus.FAILED
        try:
            queue.put_nowait(
                encode_sse(
                    StatusEvent(
                        status="started",
                        message="Orchestrator agent starting multi-agent research...",
                        topic=handle.topic,
                    )
                )
            )
            try:
                await asyncio.wait_for(
                    self._run_orchestrator(handle, queue),
                    timeout=self.settings.session_timeout_seconds,
                )
                report = await self._load_report(handle)
            except asyncio.TimeoutError:
                self.logger.error(
                    "ResearchService.session_timeout",
                    timeout_seconds=self.settings.session_timeout_seconds,
                )
                queue.put_nowait(encode_sse(ErrorEvent(error=SESSION_TIMEOUT_MESSAGE)))
            except Exception as exc:
                self.logger.error("ResearchService.session_failed", topic=handle.topic, error=str(exc), exc_info=exc)
                queue.put_nowait(encode_sse(ErrorEvent(error=str(exc) or "Unknown error occurred")))
            else:
                status = SessionStatus.COMPLETED
                self._emit_completion(handle, queue, report)
        finally:
            try:
                await tracker.finalize_session(status)
            finally:
                queue.put_nowait(DONE_FRAME)
                queue.put_nowait(_END)
                structlog.contextvars.unbind_contextvars("session_id")

    async def _run_orchestrator(self, handle: ResearchSessionHandle, queue: asyncio.Queue) -> None:
        tracker = handle.tracker

        # runs synchronously inside the orchestrator, so frames land in the
        # queue in the same order as the tracker events around them
        def forward_message(message: OrchestratorMessage) -> None:
            self.logger.debug("ResearchService.message", message_type=message.type)
            event = to_stream_event(message)
            if event is not None:
                queue.put_nowait(encode_sse(event))
            if isinstance(message, CompleteMessage):
                queue.put_nowait(encode_sse(AgentStatsEvent(stats=tracker.get_statistics())))

        await OrchestratorAgent(handle.context).execute(OrchestratorConfig(topic=handle.topic), forward_message)

    async def _load_report(self, handle: ResearchSessionHandle) -> str:
        try:
            report = await handle.context.artifacts.read_report()
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.error("ResearchService.report_unreadable", session_id=handle.session_id, error=str(exc))
            return REPORT_UNAVAILABLE
        if report is None:
            self.logger.error("ResearchService.report_missing", session_id=handle.session_id)
            return REPORT_UNAVAILABLE
        return report

    def _emit_completion(self, handle: ResearchSessionHandle, queue: asyncio.Queue, report: str) -> None:
        tracker = handle.tracker
        stats = tracker.get_enhanced_statistics()
        queue.put_nowait(
            encode_sse(
                StatusEvent(
                    status="completed",
                    message="Multi-agent research completed",
                    report=report,
                    stats=stats,
                    activities=tracker.get_activity_summaries(),
                )
            )
        )
        self.logger.info(
            "ResearchService.session_completed",
            total_cost=round(stats.costs.total_cost, 4),
            agent_count=stats.agents.total_agents,
            topic=handle.topic,
        )
