from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.core.errors import LLMRateLimitError
from app.core.logging import get_logger
from app.llm.base_client import (
    BaseLLMClient,
    ConversationTurn,
    LLMResponse,
    LLMUsage,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
)


ToolUseHandler = Callable[[str, str, Dict[str, Any]], Awaitable[str]]
TextHandler = Callable[[str], None]
UsageHandler = Callable[[LLMUsage], None]
SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class ConversationResult:
    response: LLMResponse
    transcript: str
    rounds: int
    usage: LLMUsage = field(default_factory=LLMUsage)

    @property
    def text(self) -> str:
        return self.response.text


class ModelGateway:
    """
    Drives one tool-calling conversation against a pluggable LLM backend.

    Each round sends the whole history, retries rate-limited calls with
    exponential backoff, runs every requested tool concurrently and feeds all
    results back before the next model call. The loop ends on the first
    response without tool-use blocks.
    """

    def __init__(
        self,
        client: BaseLLMClient,
        *,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        max_rounds: int = 25,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.client = client
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self.max_rounds = max_rounds
        self._sleep = sleep
        self.logger = get_logger("ModelGateway")

    async def _generate_with_retry(
        self,
        *,
        model: str,
        system: str,
        history: List[ConversationTurn],
        tools: Optional[List[ToolDefinition]],
        max_tokens: int,
    ) -> LLMResponse:
        retries = 0
        while True:
            try:
                return await self.client.generate(
                    model=model,
                    system=system,
                    messages=list(history),
                    tools=tools,
                    max_tokens=max_tokens,
                )
            except LLMRateLimitError:
                if retries >= self.max_retries:
                    self.logger.error(
                        "ModelGateway.rate_limited.exhausted",
                        model=model,
                        retries=retries,
                    )
                    raise
                delay = self.base_delay_seconds * (2 ** retries)
                retries += 1
                self.logger.warning(
                    "ModelGateway.rate_limited",
                    model=model,
                    retry_count=retries,
                    delay_seconds=delay,
                )
                await self._sleep(delay)

    async def _execute_tool(self, block: ToolUseBlock, on_tool_use: ToolUseHandler) -> ToolResultBlock:
        try:
            result = await on_tool_use(block.id, block.name, block.input)
        except Exception as exc:
            self.logger.error(
                "ModelGateway.tool.failed",
                tool_name=block.name,
                tool_use_id=block.id,
                error=str(exc),
                exc_info=exc,
            )
            return ToolResultBlock(tool_use_id=block.id, content=f"Error: {exc}", is_error=True)
        return ToolResultBlock(tool_use_id=block.id, content=result)

    async def run_conversation(
        self,
        *,
        model: str,
        system_prompt: str,
        initial_user_message: str,
        tools: Optional[List[ToolDefinition]] = None,
        max_output_tokens: int = 4096,
        on_tool_use: Optional[ToolUseHandler] = None,
        on_text: Optional[TextHandler] = None,
        on_usage: Optional[UsageHandler] = None,
    ) -> ConversationResult:
        history: List[ConversationTurn] = [ConversationTurn(role="user", content=initial_user_message)]
        transcript: List[str] = []
        total_usage = LLMUsage()
        rounds = 0

        while True:
            response = await self._generate_with_retry(
                model=model,
                system=system_prompt,
                history=history,
                tools=tools,
                max_tokens=max_output_tokens,
            )
            rounds += 1
            total_usage = total_usage + response.usage

            if on_usage is not None:
                on_usage(response.usage)

            tool_uses: List[ToolUseBlock] = []
            for block in response.content:
                if isinstance(block, ToolUseBlock):
                    tool_uses.append(block)
                    continue
                transcript.append(block.text)
                if on_text is not None:
                    on_text(block.text)

            if not tool_uses:
                break

            if on_tool_use is None:
                self.logger.warning(
                    "ModelGateway.tools_requested_without_handler",
                    model=model,
                    tools=[t.name for t in tool_uses],
                )
                break

            self.logger.info(
                "ModelGateway.tools.start",
                model=model,
                tool_count=len(tool_uses),
                tools=[t.name for t in tool_uses],
            )
            results = await asyncio.gather(*(self._execute_tool(block, on_tool_use) for block in tool_uses))
            self.logger.info(
                "ModelGateway.tools.completed",
                model=model,
                tool_count=len(results),
                error_count=sum(1 for r in results if r.is_error),
            )

            history.append(ConversationTurn(role="assistant", content=list(response.content)))
            history.append(ConversationTurn(role="user", content=list(results)))

            if rounds >= self.max_rounds:
                self.logger.warning("ModelGateway.max_rounds_reached", model=model, rounds=rounds)
                break

        return ConversationResult(
            response=response,
            transcript="\n".join(transcript),
            rounds=rounds,
            usage=total_usage,
        )
