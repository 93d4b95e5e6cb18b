from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Iterator, Optional, Union

from pydantic import BaseModel

from app.core.logging import get_logger
from app.models.api.responses import (
    AssistantEvent,
    ResultEvent,
    StreamEvent,
    ToolResultEvent,
    ToolUseEvent,
)
from app.models.domain.messages import (
    AssistantMessage,
    CompleteMessage,
    OrchestratorMessage,
    ToolResultMessage,
    ToolUseMessage,
)


DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"

logger = get_logger("SSE")


def encode_sse(payload: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(payload, BaseModel):
        data = payload.model_dump(mode="json", by_alias=True, exclude_none=True)
    else:
        data = payload
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def iter_sse_payloads(chunks: Iterable[Union[str, bytes]]) -> Iterator[Union[Dict[str, Any], str]]:
    """
    Decode an SSE byte/text stream back into its payloads, in order.

    Frames may be split across chunks arbitrarily. The terminal sentinel is
    yielded as the plain string ``"[DONE]"``.
    """
    buffer = ""
    for chunk in chunks:
        buffer += chunk.decode("utf-8") if isinstance(chunk, bytes) else chunk
        while "\n\n" in buffer:
            frame, buffer = buffer.split("\n\n", 1)
            payload = _decode_frame(frame)
            if payload is not None:
                yield payload
    if buffer.strip():
        payload = _decode_frame(buffer)
        if payload is not None:
            yield payload


def _decode_frame(frame: str) -> Optional[Union[Dict[str, Any], str]]:
    data_lines = [line[len("data:"):].lstrip() for line in frame.splitlines() if line.startswith("data:")]
    if not data_lines:
        return None
    data = "\n".join(data_lines)
    if data == DONE_SENTINEL:
        return DONE_SENTINEL
    return json.loads(data)


def _count(result: Dict[str, Any], key: str) -> int:
    value = result.get(key)
    return len(value) if isinstance(value, list) else 0


def summarize_tool_result(tool_name: str, raw: str) -> str:
    """One-line human summary of a tool result for progress display."""
    try:
        result = json.loads(raw)
    except (TypeError, ValueError):
        return "Results received"
    if not isinstance(result, dict):
        return "Results received"

    if tool_name in ("search", "search_papers", "search_news"):
        return f"Found {result.get('total') or 0} results"

    if tool_name == "get_contents":
        return f"Retrieved content from {_count(result, 'documents')} source(s)"

    if tool_name == "find_similar":
        return f"Found {_count(result, 'similar')} similar sources"

    if tool_name == "spawn_searcher":
        agent_id = result.get("agent_id") or "Unknown"
        status = result.get("status") or "unknown"
        if status == "completed":
            return f'{agent_id} completed research on "{result.get("subtopic") or ""}"'
        return f"{agent_id} {status}"

    if tool_name == "spawn_analyzer":
        if result.get("status") == "completed":
            return f"Analyzer completed synthesis with {_count(result, 'key_insights')} key insights"
        return f"Analyzer {result.get('status') or 'running'}"

    if tool_name == "spawn_writer":
        if result.get("status") == "completed":
            return f"Writer completed {result.get('word_count') or 0}-word research report"
        return f"Writer {result.get('status') or 'running'}"

    return "Results received"


def to_stream_event(message: OrchestratorMessage) -> Optional[StreamEvent]:
    if isinstance(message, AssistantMessage):
        return AssistantEvent(content=message.content) if message.content else None

    if isinstance(message, ToolUseMessage):
        return ToolUseEvent(tool_name=message.tool_name, tool_input=message.tool_input)

    if isinstance(message, ToolResultMessage):
        if not message.content:
            return None
        return ToolResultEvent(
            tool_name=message.tool_name,
            result_summary=summarize_tool_result(message.tool_name, message.content),
        )

    if isinstance(message, CompleteMessage):
        return ResultEvent(content=message.content) if message.content else None

    logger.debug("SSE.unrecognized_message", message=message.model_dump())
    return None
