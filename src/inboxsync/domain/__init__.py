"""Domain models and entities."""

from inboxsync.domain.cursor import EMPTY_MAILBOX, CursorKind, SyncCursor
from inboxsync.domain.entities.mail_account import AccountConfig, MailAccount, MailProtocol
from inboxsync.domain.entities.normalized_message import NormalizedMessage, PollResult, SyncMode
from inboxsync.domain.entities.task_draft import TaskDraft, TaskPriority, TaskStatus
from inboxsync.domain.errors import (
    AccountNotFoundError,
    AuthenticationError,
    ConnectivityError,
    CursorDesyncWarning,
    MailSyncError,
    ParseError,
    TaskServiceError,
)

__all__ = [
    # Cursor
    "EMPTY_MAILBOX",
    "CursorKind",
    "SyncCursor",
    # Entities
    "MailProtocol",
    "AccountConfig",
    "MailAccount",
    "NormalizedMessage",
    "PollResult",
    "SyncMode",
    "TaskDraft",
    "TaskPriority",
    "TaskStatus",
    # Errors
    "MailSyncError",
    "AuthenticationError",
    "ConnectivityError",
    "ParseError",
    "AccountNotFoundError",
    "CursorDesyncWarning",
    "TaskServiceError",
]
