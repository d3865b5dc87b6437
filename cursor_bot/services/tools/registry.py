"""Tool registry - central place to register and look up all available tools."""

import logging

from cursor_bot.services.llm.base import ToolCall, ToolResult
from cursor_bot.services.tools.base import BaseTool, ToolContext, ToolDefinition
from cursor_bot.services.tools.cursor_tools import (
    CursorActiveTasksTool,
    CursorListModelsTool,
    CursorListReposTool,
    CursorStartTaskTool,
    CursorStopTaskTool,
    CursorTaskFollowupTool,
    CursorTaskStatusTool,
)
from cursor_bot.services.tools.message_tools import SendButtonMessageTool

logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        defn = tool.definition()
        self._tools[defn.name] = tool

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        return [tool.definition() for tool in self._tools.values()]

    def gemini_declarations(self) -> list[dict]:
        return [defn.to_gemini_schema() for defn in self.definitions()]

    async def execute(self, call: ToolCall) -> ToolResult:
        """Run a tool call. Failures come back as an error payload, never raised."""
        logger.info(f"Tool call: {call.name}({call.arguments})")
        tool = self.get(call.name)
        if tool:
            try:
                result = await tool.execute(**call.arguments)
            except Exception as e:
                logger.exception(f"Tool {call.name} raised")
                result = {"error": f"Error executing {call.name}: {e}"}
        else:
            result = {"error": f"Unknown tool: {call.name}"}
        return ToolResult(call_id=call.id, name=call.name, result=result)


def create_default_registry(context: ToolContext) -> ToolRegistry:
    """Create a registry with all default tools bound to one user and chat."""
    registry = ToolRegistry()

    # Cursor background agent tools
    registry.register(CursorListReposTool(context))
    registry.register(CursorStartTaskTool(context))
    registry.register(CursorTaskStatusTool(context))
    registry.register(CursorActiveTasksTool(context))
    registry.register(CursorStopTaskTool(context))
    registry.register(CursorTaskFollowupTool(context))
    registry.register(CursorListModelsTool(context))

    # Presentation tools
    registry.register(SendButtonMessageTool(context))

    return registry
