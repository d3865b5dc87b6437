"""REST API for inspecting mirrored Cursor tasks."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, col, select

from cursor_bot.core.database import get_session
from cursor_bot.models.task import TERMINAL_STATUSES, Task

router = APIRouter()
logger = logging.getLogger(__name__)


def _task_dict(t: Task) -> dict:
    return {
        "id": t.id,
        "user_id": t.user_id,
        "chat_id": t.chat_id,
        "composer_id": t.composer_id,
        "repo_url": t.repo_url,
        "task_description": t.task_description,
        "status": t.status,
        "created_at": t.created_at.isoformat(),
        "updated_at": t.updated_at.isoformat(),
    }


@router.get("/")
async def list_tasks(
    active: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    session: Session = Depends(get_session),
):
    query = select(Task)
    if active is True:
        query = query.where(col(Task.status).not_in(sorted(TERMINAL_STATUSES)))
    elif active is False:
        query = query.where(col(Task.status).in_(sorted(TERMINAL_STATUSES)))
    tasks = session.exec(query.order_by(col(Task.id).desc()).limit(limit)).all()
    return [_task_dict(t) for t in tasks]


@router.get("/{composer_id}")
async def get_task(composer_id: str, session: Session = Depends(get_session)):
    task = session.exec(select(Task).where(Task.composer_id == composer_id)).first()
    if not task:
        logger.debug(f"Task {composer_id} not found")
        raise HTTPException(status_code=404, detail="Task not found")
    return _task_dict(task)
