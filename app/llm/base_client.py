from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Protocol, Union


@dataclass
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "LLMUsage") -> "LLMUsage":
        return LLMUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass
class ToolDefinition:
    name: str
    description: str
    input_schema: Dict[str, Any]


@dataclass
class TextBlock:
    text: str
    type: Literal["text"] = "text"


@dataclass
class ToolUseBlock:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)
    type: Literal["tool_use"] = "tool_use"


@dataclass
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False
    type: Literal["tool_result"] = "tool_result"


ContentBlock = Union[TextBlock, ToolUseBlock]


@dataclass
class ConversationTurn:
    """
    One entry of the provider-neutral conversation history.

    ``content`` is either plain text (the initial user message) or a list of
    blocks: text/tool-use blocks for assistant turns, tool-result blocks for
    the user turn that answers them.
    """

    role: Literal["user", "assistant"]
    content: Union[str, List[Union[TextBlock, ToolUseBlock, ToolResultBlock]]]


@dataclass
class LLMResponse:
    content: List[ContentBlock]
    usage: LLMUsage
    model: str
    stop_reason: str | None = None

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]


class BaseLLMClient(Protocol):
    async def generate(
        self,
        *,
        model: str,
        system: str,
        messages: List[ConversationTurn],
        tools: List[ToolDefinition] | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse: ...
