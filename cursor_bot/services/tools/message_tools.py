"""Presentation tools: payloads the bot renders instead of plain text."""

from typing import Any

from pydantic import BaseModel, ValidationError

from cursor_bot.services.tools.base import BaseTool, ToolDefinition, ToolParameter

BUTTON_MESSAGE = "button_message"


class Button(BaseModel):
    text: str
    url: str


class ButtonMessage(BaseModel):
    text: str
    buttons: list[Button]


class SendButtonMessageTool(BaseTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="send_button_message",
            description=(
                "Reply with a message that has clickable link buttons (Cursor task pages, repositories). "
                "Only http/https URLs are allowed."
            ),
            parameters=[
                ToolParameter(name="text", type="string", description="Message text to send"),
                ToolParameter(
                    name="buttons", type="array",
                    description="Buttons with a label and URL",
                    items={
                        "type": "object",
                        "properties": {
                            "text": {"type": "string", "description": "Button label"},
                            "url": {"type": "string", "description": "Button URL"},
                        },
                        "required": ["text", "url"],
                    },
                ),
            ],
        )

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        try:
            message = ButtonMessage(text=kwargs["text"], buttons=kwargs.get("buttons") or [])
        except (KeyError, ValidationError) as e:
            return {"error": f"Invalid button message: {e}"}

        return {
            "type": BUTTON_MESSAGE,
            **message.model_dump(),
            "message": "Button message prepared for Telegram",
        }


def extract_button_message(result: dict[str, Any]) -> ButtonMessage | None:
    """Return the ButtonMessage carried by a tool result payload, if any."""
    if result.get("type") != BUTTON_MESSAGE:
        return None
    try:
        return ButtonMessage(text=result.get("text", ""), buttons=result.get("buttons") or [])
    except ValidationError:
        return None
