"""Remote coding task records mirrored from the Cursor API."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class TaskStatus(str, Enum):
    CREATING = "CREATING"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"
    ERROR = "ERROR"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# The remote API may report statuses outside TaskStatus; anything not listed
# here is treated as still active.
TERMINAL_STATUSES = frozenset({
    TaskStatus.FINISHED.value,
    TaskStatus.ERROR.value,
    TaskStatus.EXPIRED.value,
    TaskStatus.CANCELLED.value,
})


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


class Task(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    chat_id: int = Field(index=True)
    composer_id: str = Field(index=True)  # remote agent id
    repo_url: str
    task_description: str
    status: str = Field(default=TaskStatus.CREATING.value)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
