"""Agent orchestration - turns one user message into one reply via the tool loop."""

import logging

from cursor_bot.core.config import Settings, settings as default_settings
from cursor_bot.services.llm.base import (
    AssistantTurn,
    BaseLLMProvider,
    StepRecord,
    ToolTurn,
    UserTurn,
)
from cursor_bot.services.prompt import build_system_prompt
from cursor_bot.services.store import Store
from cursor_bot.services.tools.message_tools import ButtonMessage, extract_button_message
from cursor_bot.services.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def find_button_message(turns: list[UserTurn | AssistantTurn | ToolTurn]) -> ButtonMessage | None:
    """First button payload among the tool results, in the order they appear."""
    for turn in turns:
        if not isinstance(turn, ToolTurn):
            continue
        for result in turn.results:
            message = extract_button_message(result.result)
            if message is not None:
                return message
    return None


class Agent:
    """Agent that orchestrates LLM + tools for one user in one chat."""

    def __init__(
        self,
        user_id: int,
        chat_id: int,
        store: Store,
        provider: BaseLLMProvider,
        registry: ToolRegistry,
        settings: Settings | None = None,
    ):
        self.user_id = user_id
        self.chat_id = chat_id
        self.store = store
        self.provider = provider
        self.registry = registry
        self.settings = settings or default_settings
        self.step_number = 0

    def _save_turns(self, turns: list[UserTurn | AssistantTurn | ToolTurn]) -> None:
        try:
            self.store.save_conversation_turns(self.user_id, self.chat_id, turns, self.step_number)
        except Exception:
            logger.exception("Error saving conversation history")

    async def _on_step(self, step: StepRecord) -> None:
        self.step_number += 1
        try:
            self.store.save_conversation_step(self.user_id, self.chat_id, self.step_number, step.to_dict())
        except Exception:
            logger.exception("Error saving step data")

    def _load_history(self) -> list[UserTurn | AssistantTurn | ToolTurn]:
        history = self.store.get_conversation_history(
            self.user_id, self.chat_id, self.settings.history_limit,
        )
        # Empty model turns cannot be replayed to Gemini
        history = [
            t for t in history
            if not (isinstance(t, AssistantTurn) and not t.text and not t.tool_calls)
        ]
        # The cap can cut through a tool exchange; start from a user turn.
        while history and not isinstance(history[0], UserTurn):
            history.pop(0)
        return history

    def _system_prompt(self) -> str:
        active = self.store.get_active_tasks(self.user_id, self.chat_id)
        return build_system_prompt(
            allowed_repos=self.settings.allowed_repo_list,
            active_tasks=active,
            tool_names=self.registry.names(),
            custom_prompt=self.settings.custom_prompt,
        )

    async def process_message(self, message: str) -> str | ButtonMessage:
        """Run one user turn. Returns the reply text or a button message."""
        self.step_number = 0
        self._save_turns([UserTurn(content=message)])

        try:
            history = self._load_history()
            if not history or history[-1] != UserTurn(content=message):
                history.append(UserTurn(content=message))
            system_prompt = self._system_prompt()

            logger.info(f"Processing message from user {self.user_id} in chat {self.chat_id}: {message[:200]}")
            result = await self.provider.generate(
                system=system_prompt,
                messages=history,
                registry=self.registry,
                max_steps=self.settings.max_steps,
                on_step=self._on_step,
            )
        except Exception as e:
            logger.exception("Error processing message")
            return f"❌ Error processing message: {e}"

        logger.info(f"Agent finished in {result.steps} steps")
        self._save_turns(result.messages)

        button_message = find_button_message(result.messages)
        if button_message is not None:
            return button_message
        return result.text
