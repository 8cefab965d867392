"""HTTP client for the workspace task API."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from inboxsync.domain.entities.task_draft import TaskDraft
from inboxsync.domain.errors import TaskServiceError


class HttpTaskService:
    """Create tasks through the workspace REST API (``POST /tasks``)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        if not base_url:
            raise ValueError("TASKS_API_URL is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def create_task(self, user_id: str, draft: TaskDraft) -> dict[str, Any]:
        """Create a task for ``user_id`` and return the stored task as JSON."""
        try:
            with httpx.Client(transport=self._transport, timeout=self.timeout) as client:
                response = client.post(
                    f"{self.base_url}/tasks",
                    params={"userId": user_id},
                    json=draft.to_payload(),
                )
        except httpx.TimeoutException as e:
            logger.error(f"Task API timeout creating '{draft.title[:50]}'")
            raise TaskServiceError("Task API request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Task API exception: {e}")
            raise TaskServiceError(str(e)) from e

        if response.status_code not in (200, 201):
            error_text = response.text
            logger.error(f"Task API error {response.status_code}: {error_text}")
            raise TaskServiceError(f"HTTP {response.status_code}: {error_text[:200]}")

        return response.json()


# Singleton instance
_service: HttpTaskService | None = None


def get_task_service() -> HttpTaskService:
    """Get or create the task service singleton."""
    global _service
    if _service is None:
        from inboxsync.infrastructure.settings import get_settings

        settings = get_settings()
        _service = HttpTaskService(settings.tasks_api_url, timeout=settings.tasks_api_timeout)
    return _service
