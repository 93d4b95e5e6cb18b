from __future__ import annotations

import textwrap
from typing import List, Tuple

from app.agents.base import AgentContext, BaseAgent, WriterConfig, usage_recorder
from app.core.logging import get_logger
from app.models.domain.agent_activity import AgentStatus
from app.models.domain.results import WriterResult


MAX_OUTPUT_TOKENS = 8192
NO_ANALYSIS_PLACEHOLDER = "No analysis available."

SYSTEM_PROMPT = textwrap.dedent(
    """
    You are the Writer agent in a multi-agent research team. You turn the Analyzer's synthesis
    and the Searchers' notes into the final, publication-quality research report.

    Report template:
    # <Report title>
    ## Executive Summary
    ## Introduction
    ## <One section per major theme>
    ## Analysis and Discussion
    ## Conclusions
    ## References

    Writing rules:
    - Cite every factual claim inline as [Source Title](URL), using only sources found in the material.
    - Prefer the synthesis for structure and the notes for detail and data.
    - Write clear prose with headings and occasional bullet lists; avoid filler.
    - The References section lists every cited source once, as a markdown link.
    """
).strip()


def format_notes(notes: List[Tuple[str, str]]) -> str:
    return "".join(f"\n\n## {name}\n\n{content}\n\n---\n" for name, content in notes)


def build_report_prompt(topic: str, analysis: str, notes: List[Tuple[str, str]]) -> str:
    template = textwrap.dedent(
        """
        You are creating the final research report on: "{topic}"

        Here is the Analyzer's synthesis (most important):

        {analysis}

        Here are the original research notes for additional detail:

        {notes}

        **Your Task**:
        Create a comprehensive, professional research report following the template in your system prompt.

        **Important**:
        - Include ALL major findings from the research
        - Cite every claim with [Source Title](URL) format
        - Use clear structure with proper headings
        - Make it 2000-4000 words
        - Include 15+ citations minimum

        Output the complete markdown document for the final report.
        """
    ).strip()
    return template.format(topic=topic, analysis=analysis, notes=format_notes(notes))


def count_words(text: str) -> int:
    return len(text.split())


def count_sources(text: str) -> int:
    return text.count("](http")


class WriterAgent(BaseAgent):
    name = "WriterAgent"

    def __init__(self, context: AgentContext) -> None:
        self.context = context
        self.logger = get_logger(self.name).bind(session_id=context.session_id)

    async def run(self, config: WriterConfig) -> WriterResult:
        tracker = self.context.tracker
        model = self.context.settings.llm_writer_model

        self.logger.info("WriterAgent.run.start", agent_id=config.agent_id, topic=config.topic)

        try:
            analysis = await self.context.artifacts.read_synthesis()
            if analysis is None:
                self.logger.warning("WriterAgent.run.no_analysis", agent_id=config.agent_id)
                analysis = NO_ANALYSIS_PLACEHOLDER
            notes = await self.context.artifacts.read_notes()

            conversation = await self.context.gateway.run_conversation(
                model=model,
                system_prompt=SYSTEM_PROMPT,
                initial_user_message=build_report_prompt(config.topic, analysis, notes),
                max_output_tokens=MAX_OUTPUT_TOKENS,
                on_usage=usage_recorder(tracker, config.agent_id, model),
            )
            report = conversation.text
            await self.context.artifacts.write_report(report)
        except Exception as exc:
            self.logger.error(
                "WriterAgent.run.failed",
                agent_id=config.agent_id,
                topic=config.topic,
                error=str(exc),
                exc_info=exc,
            )
            tracker.complete_agent(config.agent_id, AgentStatus.FAILED)
            return WriterResult(
                agent_id=config.agent_id,
                content=f"# Research Report: {config.topic}\n\nError generating report: {exc}",
            )

        word_count = count_words(report)
        source_count = count_sources(report)

        self.logger.info(
            "WriterAgent.run.completed",
            agent_id=config.agent_id,
            topic=config.topic,
            word_count=word_count,
            source_count=source_count,
            report_length=len(report),
        )
        tracker.complete_agent(config.agent_id, AgentStatus.COMPLETED)

        return WriterResult(
            agent_id=config.agent_id,
            content=report,
            word_count=word_count,
            source_count=source_count,
        )
