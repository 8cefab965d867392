from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from inboxsync.domain.cursor import SyncCursor


class MailProtocol(str, Enum):
    IMAP = "IMAP"
    POP3 = "POP3"

    def default_port(self, use_ssl: bool) -> int:
        if self is MailProtocol.IMAP:
            return 993 if use_ssl else 143
        return 995 if use_ssl else 110


@dataclass(frozen=True)
class AccountConfig:
    protocol: MailProtocol
    host: str
    port: int
    use_ssl: bool
    email: str
    password: str = field(repr=False)

    def describe(self) -> str:
        """Log-safe summary, never includes the password."""
        return f"{self.protocol.value} {self.email}@{self.host}:{self.port}{' (ssl)' if self.use_ssl else ''}"

    def without_password(self) -> AccountConfig:
        return replace(self, password="")

    def same_mailbox(self, other: AccountConfig) -> bool:
        """Same server-side maildrop; port or TLS changes do not count."""
        return (self.protocol, self.host.lower(), self.email.lower()) == (
            other.protocol,
            other.host.lower(),
            other.email.lower(),
        )


@dataclass(frozen=True)
class MailAccount:
    account_id: str
    alias: str
    config: AccountConfig
    cursor: SyncCursor = field(default_factory=SyncCursor.unset)

    def with_cursor(self, cursor: SyncCursor) -> MailAccount:
        return replace(self, cursor=cursor)

    def with_config(self, config: AccountConfig) -> MailAccount:
        """Store new server settings; a cursor from another mailbox is dropped."""
        cursor = self.cursor if self.config.same_mailbox(config) else SyncCursor.unset()
        return replace(self, config=config.without_password(), cursor=cursor)

    def with_password(self, password: str) -> MailAccount:
        # Passwords are supplied per poll and never stored alongside the account
        return replace(self, config=replace(self.config, password=password))
