"""Mailbox port: one capability surface, implemented once per wire protocol."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Optional

from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.entities.mail_account import AccountConfig, MailProtocol
from inboxsync.domain.entities.normalized_message import NormalizedMessage


@dataclass(frozen=True)
class MailboxEntry:
    # 1-based position in mailbox order + protocol identifier (IMAP UID / POP3 UIDL)
    position: int
    identifier: str


@dataclass(frozen=True)
class RawMessage:
    entry: MailboxEntry
    data: bytes
    is_read: bool


class MailboxSession(ABC):
    """An open, authenticated mailbox. Only valid inside ``adapter.session()``."""

    @abstractmethod
    def count(self) -> int:
        """Number of messages currently in the mailbox."""

    @abstractmethod
    def tail(self, limit: int) -> list[MailboxEntry]:
        """The most recent ``limit`` entries, oldest first."""

    @abstractmethod
    def entries_after(self, cursor: SyncCursor) -> Optional[list[MailboxEntry]]:
        """Entries newer than ``cursor``, oldest first.

        An EMPTY cursor means everything currently listed is new. Returns
        ``None`` when the cursor cannot be located on the server.
        """

    @abstractmethod
    def fetch(self, entry: MailboxEntry) -> RawMessage:
        """Fetch one message without changing its read state."""


class MailboxAdapter(ABC):
    protocol: MailProtocol

    def __init__(self, config: AccountConfig, timeout: float = 30.0) -> None:
        self.config = config
        self.timeout = timeout

    @abstractmethod
    def verify_connection(self) -> None:
        """Authenticate and issue one status command, then close.

        Raises AuthenticationError or ConnectivityError.
        """

    @abstractmethod
    def session(self) -> AbstractContextManager[MailboxSession]:
        """Open a session that is closed on every exit path."""

    @abstractmethod
    def parse(self, raw: RawMessage) -> NormalizedMessage:
        """Normalize a fetched message. Raises ParseError."""
