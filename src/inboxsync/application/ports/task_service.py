from __future__ import annotations
from typing import Any, Protocol
from inboxsync.domain.entities.task_draft import TaskDraft

class TaskService(Protocol):
    def create_task(self, user_id: str, draft: TaskDraft) -> dict[str, Any]: ...
