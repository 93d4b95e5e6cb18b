from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from app.core.config import get_settings
from app.core.errors import LLMError, LLMRateLimitError
from app.core.logging import get_logger
from app.llm.base_client import (
    BaseLLMClient,
    ContentBlock,
    ConversationTurn,
    LLMResponse,
    LLMUsage,
    TextBlock,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)


def _to_openai_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.input_schema,
            },
        }
        for tool in tools
    ]


def _to_openai_messages(system: str, turns: List[ConversationTurn]) -> List[Dict[str, Any]]:
    """
    Translate the neutral history into chat-completions messages.

    Assistant tool-use blocks become ``tool_calls``; each tool-result block
    becomes its own ``role="tool"`` message keyed by ``tool_call_id``.
    """
    messages: List[Dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})

    for turn in turns:
        if isinstance(turn.content, str):
            messages.append({"role": turn.role, "content": turn.content})
            continue

        if turn.role == "assistant":
            text = "\n".join(b.text for b in turn.content if isinstance(b, TextBlock))
            tool_calls = [
                {
                    "id": b.id,
                    "type": "function",
                    "function": {"name": b.name, "arguments": json.dumps(b.input)},
                }
                for b in turn.content
                if isinstance(b, ToolUseBlock)
            ]
            message: Dict[str, Any] = {"role": "assistant", "content": text or None}
            if tool_calls:
                message["tool_calls"] = tool_calls
            messages.append(message)
            continue

        for block in turn.content:
            if isinstance(block, ToolResultBlock):
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": block.tool_use_id,
                        "content": block.content,
                    }
                )
            elif isinstance(block, TextBlock):
                messages.append({"role": "user", "content": block.text})

    return messages


def _parse_arguments(raw: str | None) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {"_raw_arguments": raw}
    return parsed if isinstance(parsed, dict) else {"value": parsed}


class OpenAILLMClient(BaseLLMClient):
    def __init__(self, api_key: Optional[str] = None) -> None:
        settings = get_settings()
        self._client = AsyncOpenAI(api_key=api_key or settings.openai_api_key)
        self._logger = get_logger("OpenAILLMClient")

    async def generate(
        self,
        *,
        model: str,
        system: str,
        messages: List[ConversationTurn],
        tools: List[ToolDefinition] | None = None,
        max_tokens: int = 4096,
    ) -> LLMResponse:
        params: Dict[str, Any] = {
            "model": model,
            "messages": _to_openai_messages(system, messages),
            "max_completion_tokens": max_tokens,
        }
        if tools:
            params["tools"] = _to_openai_tools(tools)
            params["tool_choice"] = "auto"

        try:
            response = await self._client.chat.completions.create(**params)
        except openai.RateLimitError as exc:
            raise LLMRateLimitError(str(exc)) from exc
        except openai.OpenAIError as exc:
            self._logger.error("OpenAILLMClient.generate.error", model=model, error=str(exc))
            raise LLMError(str(exc)) from exc

        choice = response.choices[0]
        content: List[ContentBlock] = []
        if choice.message.content:
            content.append(TextBlock(text=choice.message.content))
        for call in choice.message.tool_calls or []:
            content.append(
                ToolUseBlock(
                    id=call.id,
                    name=call.function.name,
                    input=_parse_arguments(call.function.arguments),
                )
            )

        usage = LLMUsage(
            prompt_tokens=getattr(response.usage, "prompt_tokens", 0),
            completion_tokens=getattr(response.usage, "completion_tokens", 0),
            total_tokens=getattr(response.usage, "total_tokens", 0),
        )
        return LLMResponse(
            content=content,
            usage=usage,
            model=response.model or model,
            stop_reason=choice.finish_reason,
        )


_llm_client: Optional[OpenAILLMClient] = None


def get_openai_client() -> OpenAILLMClient:
    global _llm_client
    if _llm_client is None:
        _llm_client = OpenAILLMClient()
    return _llm_client
