from __future__ import annotations

import asyncio
import json
import textwrap
from typing import Any, AsyncIterator, Callable, Dict, List, Tuple

from app.agents.analyzer import AnalyzerAgent
from app.agents.base import (
    AgentContext,
    AnalyzerConfig,
    BaseAgent,
    OrchestratorConfig,
    SearcherConfig,
    WriterConfig,
    usage_recorder,
)
from app.agents.searcher import SearcherAgent
from app.agents.writer import WriterAgent
from app.core.logging import get_logger
from app.llm.base_client import ToolDefinition
from app.models.domain.agent_activity import ORCHESTRATOR_AGENT_ID, AgentRole, AgentStatus
from app.models.domain.messages import (
    AssistantMessage,
    CompleteMessage,
    OrchestratorMessage,
    ToolResultMessage,
    ToolUseMessage,
)


MAX_OUTPUT_TOKENS = 4096
PAYLOAD_LIST_LIMIT = 5

ORCHESTRATOR_TOOL_DEFINITIONS: List[ToolDefinition] = [
    ToolDefinition(
        name="spawn_searcher",
        description=(
            "Spawn a Searcher subagent to research a specific subtopic in parallel. "
            "Use this tool multiple times in one turn to run several Searchers simultaneously."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "agent_id": {
                    "type": "string",
                    "description": "Unique ID for this searcher (format: SEARCHER-1, SEARCHER-2, etc.)",
                },
                "subtopic": {"type": "string", "description": "Specific subtopic for this Searcher to research"},
                "focus_areas": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of 2-4 specific focus areas within this subtopic",
                },
            },
            "required": ["agent_id", "subtopic", "focus_areas"],
        },
    ),
    ToolDefinition(
        name="spawn_analyzer",
        description=(
            "Spawn the Analyzer subagent to synthesize findings from all Searcher agents. "
            "Call this AFTER all Searchers have completed."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "searcher_count": {
                    "type": "integer",
                    "description": "Number of Searcher agents whose findings should be analyzed",
                },
            },
            "required": ["searcher_count"],
        },
    ),
    ToolDefinition(
        name="spawn_writer",
        description=(
            "Spawn the Writer subagent to create the final research report. "
            "Call this AFTER the Analyzer has completed."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "topic": {"type": "string", "description": "The main research topic for the report title"},
            },
            "required": ["topic"],
        },
    ),
]

SYSTEM_PROMPT = textwrap.dedent(
    """
    You are the Orchestrator of a multi-agent research team. You never search the web yourself;
    you plan the research and delegate it to sub-agents through your tools.

    Workflow:
    1. Break the topic into distinct, non-overlapping subtopics.
    2. Spawn one Searcher per subtopic, all in the same turn so they run in parallel.
    3. When every Searcher has reported back, spawn the Analyzer exactly once.
    4. When the Analyzer has reported back, spawn the Writer exactly once.
    5. Finish with a short summary of the research process and the key findings.

    Give each Searcher a unique id (SEARCHER-1, SEARCHER-2, ...) and 2-4 concrete focus areas.
    If a Searcher fails, continue with the ones that succeeded.
    """
).strip()


def build_orchestrator_prompt(topic: str) -> str:
    template = textwrap.dedent(
        """
        You are coordinating a multi-agent research project on the following topic:

        **Research Topic**: {topic}

        Your task is to:
        1. Break down this topic into 3 distinct subtopics
        2. Spawn Searcher agents to research each subtopic in parallel
        3. Wait for all Searchers to complete
        4. Spawn the Analyzer to synthesize findings
        5. Spawn the Writer to create the final report
        6. Provide a summary of the research process and key findings

        Begin by explaining your research strategy, then execute it step by step using your tools.
        """
    ).strip()
    return template.format(topic=topic)


_END = object()

MessageSink = Callable[[OrchestratorMessage], None]


class OrchestratorAgent(BaseAgent):
    """
    Top-level agent that plans the research and spawns the sub-agents.

    ``execute`` hands every message to a sink callback the moment it is
    produced; ``run`` wraps the same conversation as an async generator. Either
    way the stream is assistant text and notices about the Orchestrator's own
    tool calls, followed by one ``complete`` message with the full text.
    """

    name = "OrchestratorAgent"

    def __init__(self, context: AgentContext) -> None:
        self.context = context
        self.logger = get_logger(self.name).bind(session_id=context.session_id)
        self._searcher_seq = 0
        self._analyzer_seq = 0
        self._writer_seq = 0

    async def run(self, config: OrchestratorConfig) -> AsyncIterator[OrchestratorMessage]:
        queue: asyncio.Queue = asyncio.Queue()
        driver = asyncio.create_task(self._drive(config, queue))
        try:
            while True:
                item = await queue.get()
                if item is _END:
                    break
                yield item
            # surfaces the conversation's exception, if any
            await driver
        finally:
            if not driver.done():
                driver.cancel()

    async def execute(self, config: OrchestratorConfig, emit: MessageSink) -> None:
        await self._converse(config, emit)

    async def _drive(self, config: OrchestratorConfig, queue: asyncio.Queue) -> None:
        try:
            await self._converse(config, queue.put_nowait)
        finally:
            queue.put_nowait(_END)

    async def _converse(self, config: OrchestratorConfig, emit: MessageSink) -> None:
        tracker = self.context.tracker
        model = self.context.settings.llm_orchestrator_model

        self.logger.info("OrchestratorAgent.run.start", topic=config.topic)
        tracker.register_agent(ORCHESTRATOR_AGENT_ID, AgentRole.ORCHESTRATOR, f"Research: {config.topic}")

        text_parts: List[str] = []

        def on_text(text: str) -> None:
            text_parts.append(text)
            emit(AssistantMessage(content=text))

        async def on_tool_use(call_id: str, tool_name: str, tool_input: Dict[str, Any]) -> str:
            emit(ToolUseMessage(tool_use_id=call_id, tool_name=tool_name, tool_input=tool_input))
            tracker.pre_tool_use_hook(
                call_id=call_id,
                tool_name=tool_name,
                tool_input=tool_input,
                agent_id=ORCHESTRATOR_AGENT_ID,
            )
            try:
                payload, success = await self._dispatch(config, tool_name, tool_input)
            except Exception as exc:
                self.logger.error(
                    "OrchestratorAgent.spawn.failed",
                    tool_name=tool_name,
                    error=str(exc),
                    exc_info=exc,
                )
                payload = {"agent_id": tool_input.get("agent_id") or "unknown", "status": "failed", "error": str(exc)}
                success = False

            content = json.dumps(payload, indent=2)
            tracker.post_tool_use_hook(
                call_id=call_id,
                tool_name=tool_name,
                output=content,
                success=success,
                agent_id=ORCHESTRATOR_AGENT_ID,
            )
            emit(ToolResultMessage(tool_use_id=call_id, tool_name=tool_name, content=content, success=success))
            return content

        try:
            conversation = await self.context.gateway.run_conversation(
                model=model,
                system_prompt=SYSTEM_PROMPT,
                initial_user_message=build_orchestrator_prompt(config.topic),
                tools=ORCHESTRATOR_TOOL_DEFINITIONS,
                max_output_tokens=MAX_OUTPUT_TOKENS,
                on_tool_use=on_tool_use,
                on_text=on_text,
                on_usage=usage_recorder(tracker, ORCHESTRATOR_AGENT_ID, model),
            )
        except asyncio.CancelledError:
            tracker.complete_agent(ORCHESTRATOR_AGENT_ID, AgentStatus.FAILED)
            raise
        except Exception as exc:
            self.logger.error("OrchestratorAgent.run.failed", topic=config.topic, error=str(exc), exc_info=exc)
            tracker.complete_agent(ORCHESTRATOR_AGENT_ID, AgentStatus.FAILED)
            raise

        self.logger.info("OrchestratorAgent.run.completed", topic=config.topic, rounds=conversation.rounds)
        tracker.complete_agent(ORCHESTRATOR_AGENT_ID, AgentStatus.COMPLETED)
        emit(CompleteMessage(content="\n\n".join(text_parts)))

    async def _dispatch(
        self,
        config: OrchestratorConfig,
        tool_name: str,
        tool_input: Dict[str, Any],
    ) -> Tuple[Dict[str, Any], bool]:
        if tool_name == "spawn_searcher":
            return await self._spawn_searcher(tool_input)
        if tool_name == "spawn_analyzer":
            return await self._spawn_analyzer(tool_input)
        if tool_name == "spawn_writer":
            return await self._spawn_writer(config, tool_input)
        return {"error": f"Unknown tool: {tool_name}"}, False

    def _final_status(self, agent_id: str) -> str:
        activity = self.context.tracker.get_activity(agent_id)
        if activity is None:
            return AgentStatus.FAILED.value
        return activity.status.value

    def _next_searcher_id(self) -> str:
        # skip ids the model already picked for itself
        while True:
            self._searcher_seq += 1
            candidate = f"SEARCHER-{self._searcher_seq}"
            if self.context.tracker.get_activity(candidate) is None:
                return candidate

    async def _spawn_searcher(self, tool_input: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        agent_id = str(tool_input.get("agent_id") or self._next_searcher_id())
        subtopic = str(tool_input.get("subtopic") or "")
        focus_areas = [str(area) for area in tool_input.get("focus_areas") or []]

        self.context.tracker.register_agent(agent_id, AgentRole.SEARCHER, subtopic)
        findings = await SearcherAgent(self.context).run(
            SearcherConfig(agent_id=agent_id, subtopic=subtopic, focus_areas=focus_areas)
        )

        status = self._final_status(agent_id)
        payload = {
            "agent_id": agent_id,
            "status": status,
            "subtopic": subtopic,
            "findings_location": findings.output_path,
            "summary": findings.summary,
            "message": f'Searcher {agent_id} {status} research on "{subtopic}"',
        }
        return payload, status == AgentStatus.COMPLETED.value

    async def _spawn_analyzer(self, tool_input: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        tracker = self.context.tracker
        still_running = tracker.active_agents(AgentRole.SEARCHER)
        if still_running:
            self.logger.warning(
                "OrchestratorAgent.analyzer_before_searchers_done",
                active_searchers=[a.agent_id for a in still_running],
            )

        self._analyzer_seq += 1
        agent_id = f"ANALYZER-{self._analyzer_seq}"
        try:
            searcher_count = int(tool_input.get("searcher_count") or 0)
        except (TypeError, ValueError):
            searcher_count = 0

        tracker.register_agent(agent_id, AgentRole.ANALYZER, "Synthesize research findings")
        analysis = await AnalyzerAgent(self.context).run(
            AnalyzerConfig(agent_id=agent_id, searcher_count=searcher_count)
        )

        status = self._final_status(agent_id)
        payload = {
            "agent_id": agent_id,
            "status": status,
            "analysis_location": analysis.output_path,
            "key_insights": analysis.insights[:PAYLOAD_LIST_LIMIT],
            "themes": analysis.themes[:PAYLOAD_LIST_LIMIT],
            "message": f"Analyzer {status} synthesis of research findings",
        }
        return payload, status == AgentStatus.COMPLETED.value

    async def _spawn_writer(
        self,
        config: OrchestratorConfig,
        tool_input: Dict[str, Any],
    ) -> Tuple[Dict[str, Any], bool]:
        self._writer_seq += 1
        agent_id = f"WRITER-{self._writer_seq}"
        topic = str(tool_input.get("topic") or config.topic)

        self.context.tracker.register_agent(agent_id, AgentRole.WRITER, "Generate research report")
        report = await WriterAgent(self.context).run(WriterConfig(agent_id=agent_id, topic=topic))

        status = self._final_status(agent_id)
        payload = {
            "agent_id": agent_id,
            "status": status,
            "report_content": report.content,
            "word_count": report.word_count,
            "source_count": report.source_count,
            "message": f"Writer {status} research report",
        }
        return payload, status == AgentStatus.COMPLETED.value
