"""Row operations over the bot's SQLite tables."""

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError
from sqlalchemy import Engine, delete
from sqlmodel import Session, col, select

from cursor_bot.models.conversation import Chat, ConversationMessage, ConversationStep, Message, User
from cursor_bot.models.task import TERMINAL_STATUSES, Task
from cursor_bot.services.llm.base import AssistantTurn, ToolTurn, UserTurn, chat_turn_adapter

logger = logging.getLogger(__name__)


class Store:
    def __init__(self, engine: Engine):
        self.engine = engine

    # --- Identity ---

    def upsert_user(self, user_id: int, username: str | None = None, first_name: str | None = None) -> None:
        with Session(self.engine) as session:
            user = session.get(User, user_id) or User(id=user_id)
            user.username = username
            user.first_name = first_name
            session.add(user)
            session.commit()

    def upsert_chat(self, chat_id: int, title: str | None = None, chat_type: str = "private") -> None:
        with Session(self.engine) as session:
            chat = session.get(Chat, chat_id) or Chat(id=chat_id)
            chat.title = title
            chat.type = chat_type
            session.add(chat)
            session.commit()

    # --- Free-text log ---

    def save_message(self, user_id: int, chat_id: int, text: str, response: str | None) -> int:
        with Session(self.engine) as session:
            msg = Message(user_id=user_id, chat_id=chat_id, text=text, response=response)
            session.add(msg)
            session.commit()
            session.refresh(msg)
            return msg.id  # type: ignore

    # --- Conversation log ---

    def save_conversation_turns(
        self,
        user_id: int,
        chat_id: int,
        turns: list[UserTurn | AssistantTurn | ToolTurn],
        step_number: int,
        is_final: bool = True,
    ) -> None:
        with Session(self.engine) as session:
            for turn in turns:
                session.add(ConversationMessage(
                    user_id=user_id,
                    chat_id=chat_id,
                    message_data=turn.model_dump(mode="json"),
                    message_type=turn.role,
                    step_number=step_number,
                    is_final=is_final,
                ))
            session.commit()

    def get_conversation_history(
        self, user_id: int, chat_id: int, limit: int = 50,
    ) -> list[UserTurn | AssistantTurn | ToolTurn]:
        """The most recent ``limit`` turns, oldest first."""
        with Session(self.engine) as session:
            rows = session.exec(
                select(ConversationMessage)
                .where(ConversationMessage.user_id == user_id, ConversationMessage.chat_id == chat_id)
                .order_by(col(ConversationMessage.id).desc())
                .limit(limit)
            ).all()

        turns = []
        for row in reversed(rows):
            try:
                turns.append(chat_turn_adapter.validate_python(row.message_data))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable conversation message {row.id}: {e}")
        return turns

    def save_conversation_step(self, user_id: int, chat_id: int, step_number: int, step_data: dict[str, Any]) -> None:
        with Session(self.engine) as session:
            session.add(ConversationStep(
                user_id=user_id, chat_id=chat_id, step_number=step_number, step_data=step_data,
            ))
            session.commit()

    def get_conversation_steps(self, user_id: int, chat_id: int, limit: int = 50) -> list[ConversationStep]:
        with Session(self.engine) as session:
            return list(session.exec(
                select(ConversationStep)
                .where(ConversationStep.user_id == user_id, ConversationStep.chat_id == chat_id)
                .order_by(col(ConversationStep.id))
                .limit(limit)
            ).all())

    def clear_history(self, user_id: int, chat_id: int) -> None:
        with Session(self.engine) as session:
            for model in (Message, ConversationMessage, ConversationStep):
                session.execute(delete(model).where(model.user_id == user_id, model.chat_id == chat_id))  # type: ignore
            session.commit()

    # --- Tasks ---

    def create_task(
        self,
        user_id: int,
        chat_id: int,
        composer_id: str,
        repo_url: str,
        task_description: str,
        status: str,
    ) -> Task:
        with Session(self.engine) as session:
            task = Task(
                user_id=user_id,
                chat_id=chat_id,
                composer_id=composer_id,
                repo_url=repo_url,
                task_description=task_description,
                status=status,
            )
            session.add(task)
            session.commit()
            session.refresh(task)
            return task

    def update_task_status(self, task_id: int, status: str) -> None:
        with Session(self.engine) as session:
            task = session.get(Task, task_id)
            if task:
                task.status = status
                task.updated_at = datetime.now(timezone.utc)
                session.add(task)
                session.commit()

    def get_task_by_composer_id(self, composer_id: str) -> Task | None:
        with Session(self.engine) as session:
            return session.exec(select(Task).where(Task.composer_id == composer_id)).first()

    def get_active_tasks(self, user_id: int | None = None, chat_id: int | None = None) -> list[Task]:
        """Tasks not yet in a terminal status, newest first."""
        query = select(Task).where(col(Task.status).not_in(sorted(TERMINAL_STATUSES)))
        if user_id is not None:
            query = query.where(Task.user_id == user_id)
        if chat_id is not None:
            query = query.where(Task.chat_id == chat_id)
        with Session(self.engine) as session:
            return list(session.exec(query.order_by(col(Task.id).desc())).all())

    def list_tasks(self, limit: int = 100) -> list[Task]:
        with Session(self.engine) as session:
            return list(session.exec(select(Task).order_by(col(Task.id).desc()).limit(limit)).all())
