"""Google Gemini LLM provider."""

import logging
import uuid

from google import genai
from google.genai import types

from cursor_bot.core.config import settings
from cursor_bot.services.llm.base import (
    AssistantTurn,
    BaseLLMProvider,
    LLMResponse,
    ToolCall,
    ToolTurn,
    UserTurn,
)
from cursor_bot.services.tools.base import ToolDefinition

logger = logging.getLogger(__name__)


def _to_content(turn: UserTurn | AssistantTurn | ToolTurn) -> types.Content:
    if isinstance(turn, UserTurn):
        return types.Content(role="user", parts=[types.Part(text=turn.content)])

    if isinstance(turn, AssistantTurn):
        parts = []
        if turn.text:
            parts.append(types.Part(text=turn.text))
        for call in turn.tool_calls:
            parts.append(types.Part(function_call=types.FunctionCall(
                id=call.id, name=call.name, args=call.arguments,
            )))
        return types.Content(role="model", parts=parts)

    return types.Content(role="user", parts=[
        types.Part(function_response=types.FunctionResponse(
            id=result.call_id, name=result.name, response=result.result,
        ))
        for result in turn.results
    ])


class GeminiProvider(BaseLLMProvider):
    def __init__(self, api_key: str | None = None, model: str | None = None):
        self.client = genai.Client(api_key=api_key or settings.gemini_api_key)
        self.model = model or settings.llm_model

    async def complete(
        self,
        system: str,
        messages: list[UserTurn | AssistantTurn | ToolTurn],
        tools: list[ToolDefinition] | None = None,
    ) -> LLMResponse:
        config = types.GenerateContentConfig(system_instruction=system)
        if tools:
            config.tools = [types.Tool(function_declarations=[t.to_gemini_schema() for t in tools])]

        contents = [_to_content(m) for m in messages]
        logger.info(f"LLM call: model={self.model} messages={len(contents)} tools={len(tools or [])}")

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )

        usage: dict[str, int] = {}
        if response.usage_metadata:
            usage = {
                "prompt_tokens": response.usage_metadata.prompt_token_count or 0,
                "completion_tokens": response.usage_metadata.candidates_token_count or 0,
                "total_tokens": response.usage_metadata.total_token_count or 0,
            }

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        finish_reason = None
        if response.candidates:
            candidate = response.candidates[0]
            finish_reason = str(candidate.finish_reason) if candidate.finish_reason else None
            for part in (candidate.content.parts if candidate.content and candidate.content.parts else []):
                if part.function_call:
                    fc = part.function_call
                    tool_calls.append(ToolCall(
                        id=fc.id or f"call_{uuid.uuid4().hex[:12]}",
                        name=fc.name or "",
                        arguments=dict(fc.args) if fc.args else {},
                    ))
                elif part.text:
                    text_parts.append(part.text)

        return LLMResponse(
            content="".join(text_parts),
            tool_calls=tool_calls or None,
            finish_reason=finish_reason,
            usage=usage,
        )
