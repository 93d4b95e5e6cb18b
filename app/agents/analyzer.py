from __future__ import annotations

import textwrap
from typing import List, Tuple

from app.agents.base import AgentContext, AnalyzerConfig, BaseAgent, usage_recorder
from app.core.logging import get_logger
from app.models.domain.agent_activity import AgentStatus
from app.models.domain.results import AnalyzerResult


MAX_OUTPUT_TOKENS = 3072
MAX_EXTRACTED_ITEMS = 10

KEY_THEMES_HEADING = "## Key Themes"
INSIGHTS_HEADING = "## Cross-Subtopic Insights"
CONSENSUS_HEADING = "## Areas of Consensus"

SYSTEM_PROMPT = textwrap.dedent(
    """
    You are the Analyzer agent in a multi-agent research team. Several Searcher agents have
    each researched one subtopic; your job is to synthesise their notes into one coherent analysis.

    Structure your synthesis with exactly these second-level headings, in this order:

    ## Executive Summary
    ## Key Themes
    (one "###" heading or "-" bullet per theme)
    ## Cross-Subtopic Insights
    (bullets connecting findings across subtopics)
    ## Areas of Consensus
    ## Areas of Debate
    ## Key Data Points
    ## Gaps and Open Questions

    Keep every citation from the notes in [Source Title](URL) form. Do not add sources that are
    not present in the notes.
    """
).strip()


def format_notes(notes: List[Tuple[str, str]]) -> str:
    return "".join(f"\n\n## Research Note: {name}\n\n{content}\n\n---\n" for name, content in notes)


def build_analysis_prompt(searcher_count: int, notes: List[Tuple[str, str]]) -> str:
    template = textwrap.dedent(
        """
        You are analyzing research findings from {searcher_count} Searcher agents.

        Here are all the research notes:

        {notes}

        **Your Task**:
        1. Read and analyze all the research notes above
        2. Cross-reference information across all notes
        3. Identify key themes, patterns, and insights
        4. Note areas of consensus and debate
        5. Extract important data points and metrics
        6. Create a comprehensive synthesis document

        Create your synthesis following the format specified in your system prompt.
        """
    ).strip()
    return template.format(searcher_count=searcher_count, notes=format_notes(notes))


def extract_bullet_points(content: str, start_heading: str, end_heading: str) -> List[str]:
    """
    Collect bullet items and ``###`` headings between two markdown headings.

    A missing start heading yields nothing; a missing end heading extends the
    section to the end of the document.
    """
    start = content.find(start_heading)
    if start == -1:
        return []

    end = content.find(end_heading, start + len(start_heading))
    section = content[start:] if end == -1 else content[start:end]

    items: List[str] = []
    for line in section.split("\n"):
        stripped = line.strip()
        if stripped.startswith("###"):
            item = stripped[3:].strip()
        elif stripped.startswith(("-", "*")):
            item = stripped[1:].strip()
        else:
            continue
        # skip horizontal rules and empty bullets
        if item and item.strip("-*") != "":
            items.append(item)
    return items


class AnalyzerAgent(BaseAgent):
    name = "AnalyzerAgent"

    def __init__(self, context: AgentContext) -> None:
        self.context = context
        self.logger = get_logger(self.name).bind(session_id=context.session_id)

    async def run(self, config: AnalyzerConfig) -> AnalyzerResult:
        tracker = self.context.tracker
        model = self.context.settings.llm_analyzer_model

        self.logger.info(
            "AnalyzerAgent.run.start",
            agent_id=config.agent_id,
            searcher_count=config.searcher_count,
        )

        try:
            notes = await self.context.artifacts.read_notes()
            if not notes:
                self.logger.warning("AnalyzerAgent.run.no_notes", agent_id=config.agent_id)

            conversation = await self.context.gateway.run_conversation(
                model=model,
                system_prompt=SYSTEM_PROMPT,
                initial_user_message=build_analysis_prompt(config.searcher_count, notes),
                max_output_tokens=MAX_OUTPUT_TOKENS,
                on_usage=usage_recorder(tracker, config.agent_id, model),
            )
            analysis = conversation.text
            output_path = await self.context.artifacts.write_synthesis(analysis)
        except Exception as exc:
            self.logger.error(
                "AnalyzerAgent.run.failed",
                agent_id=config.agent_id,
                error=str(exc),
                exc_info=exc,
            )
            tracker.complete_agent(config.agent_id, AgentStatus.FAILED)
            return AnalyzerResult(agent_id=config.agent_id)

        insights = extract_bullet_points(analysis, KEY_THEMES_HEADING, INSIGHTS_HEADING)
        themes = extract_bullet_points(analysis, INSIGHTS_HEADING, CONSENSUS_HEADING)

        self.logger.info(
            "AnalyzerAgent.run.completed",
            agent_id=config.agent_id,
            note_count=len(notes),
            insight_count=len(insights),
            theme_count=len(themes),
            output_path=output_path,
        )
        tracker.complete_agent(config.agent_id, AgentStatus.COMPLETED)

        return AnalyzerResult(
            agent_id=config.agent_id,
            output_path=output_path,
            insights=insights[:MAX_EXTRACTED_ITEMS],
            themes=themes[:MAX_EXTRACTED_ITEMS],
        )
