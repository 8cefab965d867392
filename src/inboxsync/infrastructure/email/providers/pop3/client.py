from __future__ import annotations

import poplib
from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger

from inboxsync.application.ports.mailbox import MailboxAdapter, MailboxEntry, MailboxSession, RawMessage
from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.entities.mail_account import MailProtocol
from inboxsync.domain.entities.normalized_message import NormalizedMessage
from inboxsync.domain.errors import ConnectivityError, ParseError
from inboxsync.infrastructure.email.providers.pop3.auth import (
    Pop3Authenticator,
    Pop3Connection,
    pop3_errors,
    quit_session,
)
from inboxsync.infrastructure.email.rfc822 import parse_message, with_id_header


def _parse_uidl(listings: list[bytes]) -> list[MailboxEntry]:
    """Parse ``UIDL`` lines like ``b'1 000001a2b3'`` into entries ordered by message number."""
    entries = []
    for line in listings:
        parts = line.decode("utf-8", errors="ignore").split()
        if len(parts) >= 2 and parts[0].isdigit():
            entries.append(MailboxEntry(position=int(parts[0]), identifier=parts[1].strip()))
    entries.sort(key=lambda e: e.position)
    return entries


def _is_session_failure(reply) -> bool:
    if isinstance(reply, str):
        reply = reply.encode("utf-8", errors="ignore")
    return not reply.startswith(b"-ERR") or reply.startswith(b"-ERR EOF")


class Pop3MailboxSession(MailboxSession):
    """POP3 has no ordering on UIDLs; novelty is position in the listing."""

    def __init__(self, conn: Pop3Connection, entries: list[MailboxEntry]) -> None:
        self.conn = conn
        self.entries = entries

    def count(self) -> int:
        return len(self.entries)

    def tail(self, limit: int) -> list[MailboxEntry]:
        if limit <= 0:
            return []
        return self.entries[-limit:]

    def entries_after(self, cursor: SyncCursor) -> Optional[list[MailboxEntry]]:
        if cursor.is_empty:
            return list(self.entries)

        for index, entry in enumerate(self.entries):
            if entry.identifier == cursor.identifier:
                return self.entries[index + 1:]
        return None

    def _still_connected(self) -> bool:
        try:
            self.conn.noop()
        except (poplib.error_proto, OSError) as e:
            logger.debug(f"POP3 NOOP failed: {e}")
            return False
        return True

    def fetch(self, entry: MailboxEntry) -> RawMessage:
        try:
            _, lines, _ = self.conn.retr(entry.position)
        except poplib.error_proto as e:
            # poplib reports a closed socket and line overflows as error_proto too
            reply = e.args[0] if e.args else b""
            if _is_session_failure(reply) or not self._still_connected():
                raise ConnectivityError(f"POP3 RETR {entry.position} failed: {e}") from e
            raise ParseError(f"RETR {entry.position} ({entry.identifier}) rejected: {e}", entry.identifier) from e
        except OSError as e:
            raise ConnectivityError(f"POP3 RETR {entry.position} failed: {e}") from e

        if not lines:
            raise ParseError(f"RETR {entry.position} returned no data", entry.identifier)

        data = b"\r\n".join(lines) + b"\r\n"
        # POP3 carries no read state
        return RawMessage(entry=entry, data=with_id_header(entry.identifier, data), is_read=True)


class Pop3MailboxAdapter(MailboxAdapter):
    protocol = MailProtocol.POP3

    def _stat(self, conn: Pop3Connection) -> int:
        with pop3_errors("STAT"):
            total, _size = conn.stat()
        return total

    def verify_connection(self) -> None:
        conn = Pop3Authenticator(self.config, self.timeout).login()
        try:
            total = self._stat(conn)
        finally:
            quit_session(conn)
        logger.info(f"POP3 connection verified for {self.config.describe()} ({total} messages)")

    @contextmanager
    def session(self) -> Iterator[Pop3MailboxSession]:
        conn = Pop3Authenticator(self.config, self.timeout).login()
        try:
            # STAT first so the server refreshes its view of the maildrop
            total = self._stat(conn)
            with pop3_errors("UIDL"):
                _, listings, _ = conn.uidl()
            entries = _parse_uidl(listings)
            if len(entries) != total:
                logger.warning(f"POP3 STAT reports {total} messages but UIDL lists {len(entries)}")
            logger.debug(
                f"POP3 UIDL for {self.config.email}: {len(entries)} entries"
                + (f", newest {entries[-1].identifier}" if entries else "")
            )
            yield Pop3MailboxSession(conn, entries)
        finally:
            quit_session(conn)

    def parse(self, raw: RawMessage) -> NormalizedMessage:
        return parse_message(raw.data, "pop3", raw.is_read, raw.entry.identifier)
