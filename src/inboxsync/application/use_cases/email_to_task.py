"""Turn a synced message into a task draft and hand it to the task service."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from loguru import logger

from inboxsync.application.ports.task_service import TaskService
from inboxsync.domain.entities.normalized_message import NormalizedMessage
from inboxsync.domain.entities.task_draft import TaskDraft, TaskPriority


def draft_from_message(
    msg: NormalizedMessage,
    priority: TaskPriority = TaskPriority.MEDIUM,
    due_date: Optional[date] = None,
) -> TaskDraft:
    description = (
        "[Source Email]\n"
        f"From: {msg.sender_name} ({msg.sender_address})\n"
        f"Sent: {msg.received_at.isoformat()}\n\n"
        f"{msg.body}"
    )
    return TaskDraft(
        title=msg.subject,
        description=description,
        priority=priority,
        due_date=due_date or date.today(),
        tags=("email",),
    )


class CreateTaskFromEmailUseCase:
    def __init__(self, tasks: TaskService) -> None:
        self.tasks = tasks

    def run(
        self,
        user_id: str,
        msg: NormalizedMessage,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date: Optional[date] = None,
    ) -> dict[str, Any]:
        draft = draft_from_message(msg, priority=priority, due_date=due_date)
        created = self.tasks.create_task(user_id, draft)
        logger.info(f"Created task from email {msg.id} for user {user_id}: {draft.title[:50]}")
        return created
