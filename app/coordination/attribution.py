from __future__ import annotations

from typing import Iterable, Optional

from app.models.domain.agent_activity import ORCHESTRATOR_AGENT_ID, AgentActivity


def infer_agent_id(
    activities: Iterable[AgentActivity],
    parent_call_id: Optional[str],
    default: str = ORCHESTRATOR_AGENT_ID,
) -> str:
    """
    Find the agent that issued the tool call ``parent_call_id``.

    Sub-agent calls that only expose a parent linkage belong to whoever owns
    the spawning call. No parent, or a parent nobody owns, falls back to the
    top-level orchestrator.
    """
    if not parent_call_id:
        return default
    for activity in activities:
        if activity.owns_call(parent_call_id):
            return activity.agent_id
    return default


def resolve_agent_id(
    activities: Iterable[AgentActivity],
    agent_id: Optional[str] = None,
    parent_call_id: Optional[str] = None,
    default: str = ORCHESTRATOR_AGENT_ID,
) -> str:
    if agent_id:
        return agent_id
    return infer_agent_id(activities, parent_call_id, default=default)
