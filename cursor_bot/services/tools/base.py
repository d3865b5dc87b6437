"""Base tool interface. All tools the agent can use implement this."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cursor_bot.services.image_cache import ImageCache
    from cursor_bot.services.integrations.cursor import CursorService
    from cursor_bot.services.store import Store


@dataclass
class ToolParameter:
    name: str
    type: str  # "string" | "integer" | "boolean" | "number" | "array" | "object"
    description: str
    required: bool = True
    enum: list[str] | None = None
    items: dict[str, Any] | None = None  # element schema for "array"


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: list[ToolParameter] = field(default_factory=list)

    def to_gemini_schema(self) -> dict:
        """Convert to Gemini function declaration format."""
        declaration: dict[str, Any] = {"name": self.name, "description": self.description}
        # Gemini rejects OBJECT schemas with no properties
        if not self.parameters:
            return declaration

        properties = {}
        required = []
        for param in self.parameters:
            prop: dict[str, Any] = {"type": param.type, "description": param.description}
            if param.enum:
                prop["enum"] = param.enum
            if param.items:
                prop["items"] = param.items
            properties[param.name] = prop
            if param.required:
                required.append(param.name)

        declaration["parameters"] = {
            "type": "object",
            "properties": properties,
            "required": required,
        }
        return declaration


@dataclass
class ToolContext:
    """Who is asking, and the services a tool may touch on their behalf."""

    user_id: int
    chat_id: int
    store: "Store"
    cursor: "CursorService"
    image_cache: "ImageCache"
    allowed_repos: list[str] = field(default_factory=list)


class BaseTool(ABC):
    def __init__(self, context: ToolContext):
        self.context = context

    @abstractmethod
    def definition(self) -> ToolDefinition:
        """Return the tool's definition for LLM function calling."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        """Execute the tool. Returns a success payload or ``{"error": ...}``."""
        ...
