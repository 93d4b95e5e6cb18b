from __future__ import annotations

import textwrap
from typing import List

from app.agents.base import AgentContext, BaseAgent, SearcherConfig, tracked_tool_handler, usage_recorder
from app.core.logging import get_logger
from app.llm.tools.search_tools import SEARCH_TOOL_DEFINITIONS
from app.models.domain.agent_activity import AgentStatus
from app.models.domain.results import SearcherResult


SUMMARY_LINES = 5
SUMMARY_MAX_CHARS = 500
MAX_OUTPUT_TOKENS = 2048

SYSTEM_PROMPT = textwrap.dedent(
    """
    You are a Searcher agent in a multi-agent research team.

    Your responsibilities:
    - Research one assigned subtopic in depth using the search tools available to you.
    - Prefer primary and authoritative sources; read full articles before relying on them.
    - Record every factual claim with a markdown citation in the form [Source Title](URL).

    Tool guidance:
    - search: start here. Use neural search for research questions and keyword search for exact terms.
    - get_contents: read the full text of the most promising URLs.
    - find_similar: expand outward from a particularly good source.
    - search_papers: scholarly and academic material.
    - search_news: recent developments and current events.

    Output format:
    - A well-organised markdown document with a heading per focus area.
    - Bullet points of key findings, each with its citation.
    - A short "Cross-cutting insights" section and a "Sources" list at the end.

    Never invent sources or URLs. If the tools return nothing useful, say so plainly.
    """
).strip()


def build_research_prompt(subtopic: str, focus_areas: List[str]) -> str:
    areas = "\n".join(f"{i}. {area}" for i, area in enumerate(focus_areas, start=1)) or "1. General overview"
    template = textwrap.dedent(
        """
        Research the following subtopic in depth:

        **Subtopic**: {subtopic}

        **Focus Areas**:
        {areas}

        **Instructions**:
        1. Use the search tool to find relevant sources on this subtopic
        2. Use get_contents to read full articles from the most promising sources
        3. Use find_similar to expand from your best sources
        4. For academic topics, use search_papers for scholarly research
        5. For current events, use search_news for recent developments

        Synthesize your findings into a well-organized markdown document. Be thorough and cite all claims.
        """
    ).strip()
    return template.format(subtopic=subtopic, areas=areas)


def summarize_findings(findings: str) -> str:
    return "\n".join(findings.split("\n")[:SUMMARY_LINES])[:SUMMARY_MAX_CHARS]


class SearcherAgent(BaseAgent):
    name = "SearcherAgent"

    def __init__(self, context: AgentContext) -> None:
        self.context = context
        self.logger = get_logger(self.name).bind(session_id=context.session_id)

    async def run(self, config: SearcherConfig) -> SearcherResult:
        """
        Research one subtopic with the search tools and persist the findings
        as a research note. Failures are reported in the result, never raised.
        """
        tracker = self.context.tracker
        model = self.context.settings.llm_searcher_model

        self.logger.info(
            "SearcherAgent.run.start",
            agent_id=config.agent_id,
            subtopic=config.subtopic,
            focus_areas=config.focus_areas,
        )

        try:
            search_tools = self.context.search_tools
            if search_tools is None:
                raise RuntimeError("No search backend configured")

            conversation = await self.context.gateway.run_conversation(
                model=model,
                system_prompt=SYSTEM_PROMPT,
                initial_user_message=build_research_prompt(config.subtopic, config.focus_areas),
                tools=SEARCH_TOOL_DEFINITIONS,
                max_output_tokens=MAX_OUTPUT_TOKENS,
                on_tool_use=tracked_tool_handler(tracker, config.agent_id, search_tools.execute),
                on_usage=usage_recorder(tracker, config.agent_id, model),
            )
            findings = conversation.text or conversation.transcript
            output_path = await self.context.artifacts.write_note(config.agent_id, findings)
        except Exception as exc:
            self.logger.error(
                "SearcherAgent.run.failed",
                agent_id=config.agent_id,
                subtopic=config.subtopic,
                error=str(exc),
                exc_info=exc,
            )
            tracker.complete_agent(config.agent_id, AgentStatus.FAILED)
            return SearcherResult(
                agent_id=config.agent_id,
                subtopic=config.subtopic,
                summary=f"Research failed: {exc}",
            )

        self.logger.info(
            "SearcherAgent.run.completed",
            agent_id=config.agent_id,
            subtopic=config.subtopic,
            findings_length=len(findings),
            rounds=conversation.rounds,
            output_path=output_path,
        )
        tracker.complete_agent(config.agent_id, AgentStatus.COMPLETED)

        return SearcherResult(
            agent_id=config.agent_id,
            subtopic=config.subtopic,
            output_path=output_path,
            summary=summarize_findings(findings),
            full_findings=findings,
        )
