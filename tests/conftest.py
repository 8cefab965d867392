"""Shared fixtures: in-process fake IMAP and POP3 servers."""

from __future__ import annotations

import hashlib
import imaplib
import poplib
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from email.utils import format_datetime
from typing import Optional

import pytest
from loguru import logger

from inboxsync.application.use_cases.sync_mailbox import MailboxSyncController
from inboxsync.domain.entities.mail_account import AccountConfig, MailProtocol
from inboxsync.infrastructure.email.factory import adapter_for

BASE_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
PASSWORD = "s3cret"


def make_message(
    subject: Optional[str] = "Hello",
    sender: Optional[str] = '"Alice Kim" <alice@example.com>',
    body: Optional[str] = "Plain body",
    date: Optional[datetime] = BASE_TIME,
    html: Optional[str] = None,
) -> bytes:
    msg = EmailMessage()
    if sender is not None:
        msg["From"] = sender
    msg["To"] = "me@example.com"
    if subject is not None:
        msg["Subject"] = subject
    if date is not None:
        msg["Date"] = format_datetime(date)

    if html is not None and body is not None:
        msg.set_content(body)
        msg.add_alternative(html, subtype="html")
    elif html is not None:
        msg.set_content(html, subtype="html")
    elif body is not None:
        msg.set_content(body)
    return msg.as_bytes()


@dataclass
class StoredMessage:
    identifier: str
    data: bytes
    seen: bool = False


@dataclass
class FakeMailbox:
    """Server-side state shared by the fake IMAP and POP3 connections."""

    messages: list[StoredMessage] = field(default_factory=list)
    password: str = PASSWORD
    broken: set[str] = field(default_factory=set)
    fetched: list[str] = field(default_factory=list)
    sessions_opened: int = 0
    sessions_closed: int = 0
    uidl_reversed: bool = False
    connections: list = field(default_factory=list)
    drop_after: Optional[int] = None

    def add(self, identifier: str, data: Optional[bytes] = None, seen: bool = False) -> None:
        self.messages.append(StoredMessage(identifier, data or make_message(subject=f"Message {identifier}"), seen))

    def position_of(self, identifier: str) -> tuple[int, StoredMessage]:
        for seq, msg in enumerate(self.messages, start=1):
            if msg.identifier == identifier:
                return seq, msg
        raise KeyError(identifier)

    @property
    def dropped(self) -> bool:
        """The server hung up after `drop_after` successful fetches."""
        return self.drop_after is not None and len(self.fetched) >= self.drop_after


class FakeImapConnection:
    error = imaplib.IMAP4.error
    abort = imaplib.IMAP4.abort

    mailbox: FakeMailbox
    ssl = True

    def __init__(self, host: str = "", port: int = 993, timeout: Optional[float] = None, **kwargs) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.readonly: Optional[bool] = None
        self.mailbox.sessions_opened += 1
        self.mailbox.connections.append(self)

    def login(self, user: str, password: str):
        if password != self.mailbox.password:
            raise imaplib.IMAP4.error("[AUTHENTICATIONFAILED] Invalid credentials (Failure)")
        return "OK", [b"Logged in"]

    def select(self, mailbox: str = "INBOX", readonly: bool = False):
        self.readonly = readonly
        return "OK", [str(len(self.mailbox.messages)).encode()]

    def fetch(self, message_set: str, parts: str):
        assert parts == "(UID)"
        start, end = (int(x) for x in message_set.split(":"))
        msgs = self.mailbox.messages
        return "OK", [f"{seq} (UID {msgs[seq - 1].identifier})".encode() for seq in range(start, end + 1)]

    def uid(self, command: str, *args):
        if command != "FETCH":
            raise AssertionError(f"unexpected UID {command}: the adapter must stay read-only")

        message_set, parts = args
        if parts == "(UID)":
            start = int(message_set.split(":")[0])
            msgs = self.mailbox.messages
            matches = [(seq, m) for seq, m in enumerate(msgs, start=1) if int(m.identifier) >= start]
            if not matches and msgs:
                # RFC 3501: "*" is the highest UID, so "n:*" always matches it
                matches = [(len(msgs), msgs[-1])]
            if not matches:
                return "OK", [None]
            return "OK", [f"{seq} (UID {m.identifier})".encode() for seq, m in matches]

        assert "BODY.PEEK[HEADER]" in parts and "BODY.PEEK[TEXT]" in parts
        try:
            seq, msg = self.mailbox.position_of(message_set)
        except KeyError:
            return "OK", [None]
        if self.mailbox.dropped:
            raise imaplib.IMAP4.abort("socket error: EOF")
        if message_set in self.mailbox.broken:
            return "NO", [b"Message unavailable"]

        self.mailbox.fetched.append(message_set)
        sep = b"\r\n\r\n" if b"\r\n\r\n" in msg.data else b"\n\n"
        header, found, text = msg.data.partition(sep)
        header += found
        flags = "\\Seen" if msg.seen else ""
        return "OK", [
            (f"{seq} (UID {msg.identifier} FLAGS ({flags}) BODY[HEADER] {{{len(header)}}}".encode(), header),
            (f" BODY[TEXT] {{{len(text)}}}".encode(), text),
            b")",
        ]

    def logout(self):
        self.mailbox.sessions_closed += 1
        return "BYE", [b"Logging out"]


class FakePop3Connection:
    mailbox: FakeMailbox
    ssl = True

    def __init__(self, host: str, port: int = 995, timeout: Optional[float] = None, **kwargs) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.mailbox.sessions_opened += 1
        self.mailbox.connections.append(self)

    def user(self, name: str) -> bytes:
        return b"+OK"

    def pass_(self, password: str) -> bytes:
        if password != self.mailbox.password:
            raise poplib.error_proto(b"-ERR [AUTH] Authentication failed")
        return b"+OK Logged in"

    def stat(self) -> tuple[int, int]:
        return len(self.mailbox.messages), sum(len(m.data) for m in self.mailbox.messages)

    def uidl(self):
        lines = [f"{seq} {m.identifier}".encode() for seq, m in enumerate(self.mailbox.messages, start=1)]
        if self.mailbox.uidl_reversed:
            lines.reverse()
        return b"+OK", lines, sum(len(line) for line in lines)

    def retr(self, which: int):
        if self.mailbox.dropped:
            raise poplib.error_proto(b"-ERR EOF")
        msg = self.mailbox.messages[which - 1]
        if msg.identifier in self.mailbox.broken:
            raise poplib.error_proto(b"-ERR no such message")
        self.mailbox.fetched.append(msg.identifier)
        lines = msg.data.replace(b"\r\n", b"\n").split(b"\n")
        return b"+OK", lines, len(msg.data)

    def noop(self) -> bytes:
        if self.mailbox.dropped:
            raise poplib.error_proto(b"-ERR EOF")
        return b"+OK"

    def quit(self) -> bytes:
        self.mailbox.sessions_closed += 1
        return b"+OK Bye"


@pytest.fixture
def log_messages():
    """Capture loguru warnings and errors."""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="WARNING")
    yield messages
    logger.remove(handler_id)


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def imap_server(monkeypatch, mailbox) -> FakeMailbox:
    """Route imaplib connections to the fake mailbox."""
    ssl_cls = type("FakeIMAP4_SSL", (FakeImapConnection,), {"mailbox": mailbox, "ssl": True})
    plain_cls = type("FakeIMAP4", (FakeImapConnection,), {"mailbox": mailbox, "ssl": False})
    monkeypatch.setattr(imaplib, "IMAP4_SSL", ssl_cls)
    monkeypatch.setattr(imaplib, "IMAP4", plain_cls)
    return mailbox


@pytest.fixture
def pop3_server(monkeypatch, mailbox) -> FakeMailbox:
    """Route poplib connections to the fake mailbox."""
    monkeypatch.setattr(poplib, "POP3_SSL", type("FakePOP3_SSL", (FakePop3Connection,), {"mailbox": mailbox, "ssl": True}))
    monkeypatch.setattr(poplib, "POP3", type("FakePOP3", (FakePop3Connection,), {"mailbox": mailbox, "ssl": False}))
    return mailbox


def account_config(protocol: MailProtocol, password: str = PASSWORD, use_ssl: bool = True) -> AccountConfig:
    return AccountConfig(
        protocol=protocol,
        host=f"{protocol.value.lower()}.example.com",
        port=protocol.default_port(use_ssl),
        use_ssl=use_ssl,
        email="me@example.com",
        password=password,
    )


@pytest.fixture
def imap_config() -> AccountConfig:
    return account_config(MailProtocol.IMAP)


@pytest.fixture
def pop3_config() -> AccountConfig:
    return account_config(MailProtocol.POP3)


class MailboxHarness:
    """Deliver mail to a fake server and poll it through the real adapter."""

    def __init__(self, protocol: MailProtocol, mailbox: FakeMailbox) -> None:
        self.protocol = protocol
        self.mailbox = mailbox
        self.delivered = 0

    def next_identifier(self) -> str:
        self.delivered += 1
        if self.protocol is MailProtocol.IMAP:
            return str(100 + self.delivered)
        # UIDLs are opaque: no ordering can be inferred from them
        return hashlib.sha1(str(self.delivered).encode()).hexdigest()[:12]

    def deliver(self, count: int = 1, date: Optional[datetime] = None) -> list[str]:
        identifiers = []
        for _ in range(count):
            identifier = self.next_identifier()
            sent = date or BASE_TIME + timedelta(minutes=self.delivered)
            self.mailbox.add(identifier, make_message(subject=f"Message {self.delivered}", date=sent))
            identifiers.append(identifier)
        return identifiers

    def controller(self, initial_batch_size: int = 10) -> MailboxSyncController:
        adapter = adapter_for(account_config(self.protocol), timeout=5)
        return MailboxSyncController(adapter, initial_batch_size=initial_batch_size)

    def id_of(self, identifier: str) -> str:
        return f"{self.protocol.value.lower()}-{identifier}"


@pytest.fixture(params=[MailProtocol.IMAP, MailProtocol.POP3], ids=["imap", "pop3"])
def harness(request, monkeypatch, mailbox) -> MailboxHarness:
    if request.param is MailProtocol.IMAP:
        request.getfixturevalue("imap_server")
    else:
        request.getfixturevalue("pop3_server")
    return MailboxHarness(request.param, mailbox)
