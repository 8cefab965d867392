"""Mail synchronization errors."""

from __future__ import annotations

from typing import Optional


class MailSyncError(Exception):
    """Base class for every mailbox error raised to callers."""


class AuthenticationError(MailSyncError):
    """The server rejected the credentials. Not worth retrying as-is."""


class ConnectivityError(MailSyncError):
    """Host unreachable, TLS failure, timeout or a dropped session. Safe to retry."""


class ParseError(MailSyncError):
    """A single message could not be fetched or normalized."""

    def __init__(self, message: str, identifier: Optional[str] = None) -> None:
        super().__init__(message)
        self.identifier = identifier


class AccountNotFoundError(MailSyncError):
    """No stored account has the requested id."""


class CursorDesyncWarning(Warning):
    """The stored cursor no longer matches anything on the server.

    Logged, never raised: the poll falls back to the most recent messages.
    """

    def __init__(self, cursor: str, listed: int) -> None:
        super().__init__(
            f"Cursor {cursor} not found among {listed} server messages; "
            f"re-syncing from the newest messages"
        )
        self.cursor = cursor
        self.listed = listed


class TaskServiceError(Exception):
    """The task service refused or failed to create a task."""
