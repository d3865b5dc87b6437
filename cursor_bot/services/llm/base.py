"""Abstract LLM provider interface. All providers must implement this.

Conversation turns are a tagged union on ``role`` so that stored history is
parsed back into typed objects instead of loose dicts.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Annotated, Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

if TYPE_CHECKING:
    from cursor_bot.services.tools.base import ToolDefinition
    from cursor_bot.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

MAX_STEPS_NOTICE = "[Agent reached maximum steps]"


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    call_id: str
    name: str
    result: dict[str, Any]


class UserTurn(BaseModel):
    role: Literal["user"] = "user"
    content: str


class AssistantTurn(BaseModel):
    role: Literal["assistant"] = "assistant"
    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)


class ToolTurn(BaseModel):
    role: Literal["tool"] = "tool"
    results: list[ToolResult] = Field(default_factory=list)


ChatTurn = Annotated[Union[UserTurn, AssistantTurn, ToolTurn], Field(discriminator="role")]

chat_turn_adapter: TypeAdapter[ChatTurn] = TypeAdapter(ChatTurn)


@dataclass
class LLMResponse:
    content: str
    tool_calls: list[ToolCall] | None = None
    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class StepRecord:
    """Trace of one reasoning round, persisted for diagnostics."""

    text: str
    tool_calls: list[ToolCall]
    tool_results: list[ToolResult]
    finish_reason: str | None
    usage: dict[str, int]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "tool_calls": [c.model_dump(mode="json") for c in self.tool_calls],
            "tool_results": [r.model_dump(mode="json") for r in self.tool_results],
            "finish_reason": self.finish_reason,
            "usage": self.usage,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class GenerationResult:
    messages: list[UserTurn | AssistantTurn | ToolTurn]
    text: str
    steps: int


StepCallback = Callable[[StepRecord], Awaitable[None]]


class BaseLLMProvider(ABC):
    @abstractmethod
    async def complete(
        self,
        system: str,
        messages: list[UserTurn | AssistantTurn | ToolTurn],
        tools: list["ToolDefinition"] | None = None,
    ) -> LLMResponse:
        """Run a single model call. Tool calls are returned, not executed."""
        ...

    async def generate(
        self,
        system: str,
        messages: list[UserTurn | AssistantTurn | ToolTurn],
        registry: "ToolRegistry",
        max_steps: int = 20,
        on_step: StepCallback | None = None,
    ) -> GenerationResult:
        """Drive the tool-calling loop for at most ``max_steps`` model calls.

        Each round calls the model, executes any requested tools through the
        registry and feeds their results back. The loop stops on the first
        response without tool calls. Only the turns produced here are
        returned; ``messages`` is left untouched.
        """
        produced: list[UserTurn | AssistantTurn | ToolTurn] = []
        definitions = registry.definitions()
        last_text = ""
        finished = False
        steps = 0

        for steps in range(1, max_steps + 1):
            response = await self.complete(system, [*messages, *produced], definitions)
            calls = response.tool_calls or []
            # Gemini rejects model contents with no parts, so empty replies are not kept
            if response.content or calls:
                produced.append(AssistantTurn(text=response.content or "", tool_calls=calls))
            if response.content:
                last_text = response.content

            results = [await registry.execute(call) for call in calls]
            if results:
                produced.append(ToolTurn(results=results))

            if on_step:
                await on_step(StepRecord(
                    text=response.content or "",
                    tool_calls=calls,
                    tool_results=results,
                    finish_reason=response.finish_reason,
                    usage=response.usage,
                ))

            if not calls:
                finished = True
                break

        if not finished:
            logger.warning(f"Tool loop stopped after {max_steps} steps")
            return GenerationResult(messages=produced, text=last_text or MAX_STEPS_NOTICE, steps=steps)

        if not response.content:
            logger.warning(f"Model returned an empty reply (finish_reason={response.finish_reason})")
        return GenerationResult(messages=produced, text=response.content or "", steps=steps)
