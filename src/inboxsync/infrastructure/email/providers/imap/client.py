from __future__ import annotations

import imaplib
import re
from contextlib import contextmanager
from typing import Iterator, Optional

from loguru import logger

from inboxsync.application.ports.mailbox import MailboxAdapter, MailboxEntry, MailboxSession, RawMessage
from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.entities.mail_account import MailProtocol
from inboxsync.domain.entities.normalized_message import NormalizedMessage
from inboxsync.domain.errors import ConnectivityError, ParseError
from inboxsync.infrastructure.email.providers.imap.auth import (
    ImapAuthenticator,
    ImapConnection,
    imap_errors,
    logout,
)
from inboxsync.infrastructure.email.rfc822 import parse_message, with_id_header

MAILBOX = "INBOX"
SEEN_FLAG = b"\\Seen"

_SEQ_UID = re.compile(rb"^(\d+) \(.*?UID (\d+)")
_FLAGS = re.compile(rb"FLAGS \(([^)]*)\)")


def _parse_seq_uids(data: list) -> list[MailboxEntry]:
    """Parse ``FETCH (UID)`` responses like ``b'3 (UID 103)'``."""
    entries = []
    for item in data:
        meta = item[0] if isinstance(item, tuple) else item
        if not meta:
            continue
        match = _SEQ_UID.match(meta)
        if match:
            entries.append(MailboxEntry(position=int(match.group(1)), identifier=match.group(2).decode()))
    entries.sort(key=lambda e: int(e.identifier))
    return entries


class ImapMailboxSession(MailboxSession):
    def __init__(self, conn: ImapConnection, total: int) -> None:
        self.conn = conn
        self.total = total

    def count(self) -> int:
        return self.total

    def tail(self, limit: int) -> list[MailboxEntry]:
        if self.total == 0 or limit <= 0:
            return []

        # Sequence numbers are always 1..N, so the newest k is a contiguous range
        start = max(1, self.total - limit + 1)
        with imap_errors("FETCH"):
            typ, data = self.conn.fetch(f"{start}:{self.total}", "(UID)")
        if typ != "OK":
            raise ConnectivityError(f"FETCH {start}:{self.total} failed: {data}")

        entries = _parse_seq_uids(data)
        entries.sort(key=lambda e: e.position)
        return entries

    def entries_after(self, cursor: SyncCursor) -> Optional[list[MailboxEntry]]:
        if cursor.is_empty:
            last_uid = 0
        else:
            try:
                last_uid = int(cursor.identifier)
            except (TypeError, ValueError):
                logger.warning(f"IMAP cursor {cursor} is not a UID")
                return None

        if self.total == 0:
            return []

        with imap_errors("UID FETCH"):
            typ, data = self.conn.uid("FETCH", f"{last_uid + 1}:*", "(UID)")
        if typ != "OK":
            raise ConnectivityError(f"UID FETCH {last_uid + 1}:* failed: {data}")

        # "n:*" always matches the highest UID, even when it is below n
        return [e for e in _parse_seq_uids(data) if int(e.identifier) > last_uid]

    def fetch(self, entry: MailboxEntry) -> RawMessage:
        with imap_errors("UID FETCH"):
            try:
                typ, data = self.conn.uid("FETCH", entry.identifier, "(FLAGS BODY.PEEK[HEADER] BODY.PEEK[TEXT])")
            except imaplib.IMAP4.abort:
                raise
            except imaplib.IMAP4.error as e:
                raise ParseError(f"UID FETCH {entry.identifier} rejected: {e}", entry.identifier) from e

        if typ != "OK" or not data or data[0] is None:
            raise ParseError(f"UID FETCH {entry.identifier} returned {typ}", entry.identifier)

        header = text = b""
        meta_parts: list[bytes] = []
        for item in data:
            if isinstance(item, tuple):
                meta, literal = item[0], item[1]
                meta_parts.append(meta)
                if b"BODY[HEADER]" in meta:
                    header = literal
                elif b"BODY[TEXT]" in meta:
                    text = literal
            elif isinstance(item, bytes):
                meta_parts.append(item)

        if not header and not text:
            raise ParseError(f"UID {entry.identifier} has no message parts", entry.identifier)

        flags = _FLAGS.search(b" ".join(meta_parts))
        is_read = bool(flags) and SEEN_FLAG in flags.group(1).split()

        return RawMessage(entry=entry, data=with_id_header(entry.identifier, header + text), is_read=is_read)


class ImapMailboxAdapter(MailboxAdapter):
    protocol = MailProtocol.IMAP

    def _select(self, conn: ImapConnection) -> int:
        with imap_errors("SELECT"):
            typ, data = conn.select(MAILBOX, readonly=True)
        if typ != "OK":
            raise ConnectivityError(f"Failed to select {MAILBOX}: {data}")
        return int(data[0] or 0)

    def verify_connection(self) -> None:
        conn = ImapAuthenticator(self.config, self.timeout).login()
        try:
            total = self._select(conn)
        finally:
            logout(conn)
        logger.info(f"IMAP connection verified for {self.config.describe()} ({total} messages)")

    @contextmanager
    def session(self) -> Iterator[ImapMailboxSession]:
        conn = ImapAuthenticator(self.config, self.timeout).login()
        try:
            total = self._select(conn)
            logger.debug(f"IMAP {MAILBOX} opened for {self.config.email}: {total} messages")
            yield ImapMailboxSession(conn, total)
        finally:
            logout(conn)

    def parse(self, raw: RawMessage) -> NormalizedMessage:
        return parse_message(raw.data, "imap", raw.is_read, raw.entry.identifier)
