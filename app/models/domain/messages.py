from __future__ import annotations

from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, Field


class AssistantMessage(BaseModel):
    type: Literal["assistant"] = "assistant"
    content: str


class ToolUseMessage(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    tool_use_id: str
    tool_name: str
    tool_input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultMessage(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    tool_name: str
    content: str
    success: bool = True


class CompleteMessage(BaseModel):
    type: Literal["complete"] = "complete"
    content: str


class UnrecognizedMessage(BaseModel):
    """Any message shape outside the known kinds; kept for logging, never streamed."""

    type: Literal["unrecognized"] = "unrecognized"
    raw: Dict[str, Any] = Field(default_factory=dict)


OrchestratorMessage = Union[
    AssistantMessage,
    ToolUseMessage,
    ToolResultMessage,
    CompleteMessage,
    UnrecognizedMessage,
]
