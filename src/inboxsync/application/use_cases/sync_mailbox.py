"""Incremental mailbox synchronization."""

from __future__ import annotations

from typing import Optional

from loguru import logger

from inboxsync.application.ports.account_store import AccountStore
from inboxsync.application.ports.mailbox import MailboxAdapter, MailboxEntry, MailboxSession
from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.entities.mail_account import MailAccount
from inboxsync.domain.entities.normalized_message import NormalizedMessage, PollResult, SyncMode
from inboxsync.domain.errors import CursorDesyncWarning, ParseError

DEFAULT_INITIAL_BATCH_SIZE = 10


class MailboxSyncController:
    """Fetch only what is new in a mailbox since the caller's cursor.

    Flow per poll (one session, always closed):
    1. UNSET cursor -> initial sync: newest K messages, or EMPTY if none
    2. EMPTY / AT cursor -> refresh: everything after the cursor
    3. Cursor not found on the server -> heal: newest K messages again
    4. Sort the batch newest-first and return it with the new cursor

    Messages that fail to fetch or parse are dropped; authentication and
    connectivity errors abort the poll and nothing is returned. Polls for one
    account must not overlap.
    """

    def __init__(self, adapter: MailboxAdapter, initial_batch_size: int = DEFAULT_INITIAL_BATCH_SIZE) -> None:
        if initial_batch_size < 1:
            raise ValueError("initial_batch_size must be at least 1")
        self.adapter = adapter
        self.initial_batch_size = initial_batch_size

    def connect(self) -> None:
        """Verify host and credentials. Raises AuthenticationError / ConnectivityError."""
        self.adapter.verify_connection()

    def poll(self, cursor: Optional[SyncCursor] = None) -> PollResult:
        cursor = cursor or SyncCursor.unset()
        email = self.adapter.config.email

        with self.adapter.session() as session:
            if cursor.is_unset:
                mode = SyncMode.INITIAL
                entries = session.tail(self.initial_batch_size)
                logger.info(f"Initial sync for {email}: fetching {len(entries)} of {session.count()} messages")
            else:
                mode = SyncMode.REFRESH
                found = session.entries_after(cursor)
                if found is None:
                    mode = SyncMode.HEALED
                    logger.warning(str(CursorDesyncWarning(str(cursor), session.count())))
                    entries = session.tail(self.initial_batch_size)
                else:
                    entries = found
                logger.info(f"{mode.value.capitalize()} sync for {email} from {cursor}: {len(entries)} new")

            messages = self._fetch_all(session, entries)

        new_cursor = self._next_cursor(mode, cursor, entries)
        messages.sort(key=lambda m: m.received_at, reverse=True)

        logger.info(f"Poll for {email} done: {len(messages)} messages, cursor {cursor} -> {new_cursor}")
        return PollResult(messages=tuple(messages), cursor=new_cursor, mode=mode)

    def _next_cursor(self, mode: SyncMode, cursor: SyncCursor, entries: list[MailboxEntry]) -> SyncCursor:
        # Advance to the newest listed entry even if its body was dropped,
        # otherwise a malformed message would be re-fetched on every poll
        if entries:
            return SyncCursor.at(entries[-1].identifier)
        if mode is SyncMode.REFRESH:
            return cursor
        return SyncCursor.empty()

    def _fetch_all(self, session: MailboxSession, entries: list[MailboxEntry]) -> list[NormalizedMessage]:
        messages: list[NormalizedMessage] = []
        for entry in entries:
            try:
                raw = session.fetch(entry)
                messages.append(self.adapter.parse(raw))
            except ParseError as e:
                logger.warning(f"Dropping message {e.identifier or entry.identifier} (#{entry.position}): {e}")
        return messages


def sync_account(
    account: MailAccount,
    store: AccountStore,
    adapter: MailboxAdapter,
    initial_batch_size: int = DEFAULT_INITIAL_BATCH_SIZE,
) -> PollResult:
    """Poll a stored account and persist its cursor once the poll succeeded."""
    result = MailboxSyncController(adapter, initial_batch_size).poll(account.cursor)
    if result.cursor != account.cursor:
        store.save_cursor(account.account_id, result.cursor)
    return result
