"""Application layer - mailbox sync use cases and ports."""

from inboxsync.application.use_cases.email_to_task import CreateTaskFromEmailUseCase, draft_from_message
from inboxsync.application.use_cases.sync_mailbox import MailboxSyncController, sync_account

__all__ = [
    "MailboxSyncController",
    "sync_account",
    "CreateTaskFromEmailUseCase",
    "draft_from_message",
]
