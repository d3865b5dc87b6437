"""Telegram identity rows and the conversation log models."""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(SQLModel, table=True):
    id: int = Field(primary_key=True)  # Telegram user id
    username: Optional[str] = None
    first_name: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class Chat(SQLModel, table=True):
    id: int = Field(primary_key=True)  # Telegram chat id
    title: Optional[str] = None
    type: str = Field(default="private")
    created_at: datetime = Field(default_factory=_utcnow)


class Message(SQLModel, table=True):
    """Free-text log: one row per handled inbound text and the reply sent."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    chat_id: int = Field(index=True)
    text: str
    response: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class ConversationMessage(SQLModel, table=True):
    """One LLM-visible turn. message_data holds a serialized ChatTurn."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    chat_id: int = Field(index=True)
    message_data: dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    message_type: str  # "user" | "assistant" | "tool"
    step_number: int = Field(default=0)
    is_final: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utcnow)


class ConversationStep(SQLModel, table=True):
    """Diagnostic trace of one reasoning step. Never read back into context."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    chat_id: int = Field(index=True)
    step_number: int
    step_data: dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow)
