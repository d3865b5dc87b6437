"""Background monitor mirroring remote task status and notifying on change."""

import asyncio
import logging
from typing import Awaitable, Callable

from cursor_bot.models.task import Task, TaskStatus
from cursor_bot.services.integrations.cursor import CursorService, agent_web_url
from cursor_bot.services.store import Store
from cursor_bot.services.tools.message_tools import Button

logger = logging.getLogger(__name__)

MONITOR_INTERVAL = 60  # seconds

Notifier = Callable[[int, str, list[Button]], Awaitable[None]]

_HEADLINES = {
    TaskStatus.FINISHED.value: "✅ *Task completed!*",
    TaskStatus.ERROR.value: "❌ *Task failed!*",
    TaskStatus.EXPIRED.value: "⏱️ *Task expired!*",
    TaskStatus.RUNNING.value: "🔄 *Task is now running*",
}

# Statuses whose notification carries links back to Cursor and the repo
_LINKED_STATUSES = {TaskStatus.FINISHED.value, TaskStatus.ERROR.value, TaskStatus.EXPIRED.value}


def render_notification(task: Task, status: str) -> tuple[str, list[Button]]:
    headline = _HEADLINES.get(status, f"🔄 *Task status updated to {status}*")
    text = (
        f"{headline}\n\n*{task.task_description}*\n\n"
        f"Repo: {task.repo_url}\nComposer: `{task.composer_id}`"
    )
    buttons: list[Button] = []
    if status in _LINKED_STATUSES:
        buttons = [
            Button(text="🔍 Check Task Details", url=agent_web_url(task.composer_id)),
            Button(text="📁 Open Repository", url=task.repo_url),
        ]
    return text, buttons


class TaskMonitor:
    def __init__(self, store: Store, cursor: CursorService, notifier: Notifier):
        self.store = store
        self.cursor = cursor
        self.notifier = notifier

    async def check_tasks(self) -> int:
        """Poll every active task once. Returns the number of status changes."""
        changed = 0
        for task in self.store.get_active_tasks():
            try:
                agent = await self.cursor.get_agent(task.composer_id)
                new_status = agent.status
                if not new_status or new_status == task.status:
                    continue

                logger.info(f"Task {task.composer_id}: {task.status} -> {new_status}")
                self.store.update_task_status(task.id, new_status)  # type: ignore
                changed += 1

                text, buttons = render_notification(task, new_status)
                await self.notifier(task.chat_id, text, buttons)
            except Exception as e:
                logger.error(f"Error monitoring task {task.id}: {e}")
        return changed


async def monitor_loop(monitor: TaskMonitor, interval: float = MONITOR_INTERVAL) -> None:
    """Main monitor loop. Checks active tasks every ``interval`` seconds."""
    logger.info("Task monitor started")

    while True:
        try:
            await monitor.check_tasks()
        except Exception as e:
            logger.error(f"Task monitor error: {e}")

        await asyncio.sleep(interval)
