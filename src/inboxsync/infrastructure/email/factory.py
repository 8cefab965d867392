"""Mailbox adapter factory: picks the protocol implementation once, per account."""

from __future__ import annotations

from typing import Optional

from inboxsync.application.ports.mailbox import MailboxAdapter
from inboxsync.domain.entities.mail_account import AccountConfig, MailProtocol
from inboxsync.infrastructure.email.providers.imap.client import ImapMailboxAdapter
from inboxsync.infrastructure.email.providers.pop3.client import Pop3MailboxAdapter

ADAPTERS: dict[MailProtocol, type[MailboxAdapter]] = {
    MailProtocol.IMAP: ImapMailboxAdapter,
    MailProtocol.POP3: Pop3MailboxAdapter,
}


def adapter_for(config: AccountConfig, timeout: Optional[float] = None) -> MailboxAdapter:
    """Create the adapter for ``config.protocol``.

    ``timeout`` defaults to the configured polling timeout.
    """
    if timeout is None:
        from inboxsync.infrastructure.settings import get_settings

        timeout = get_settings().mail_poll_timeout

    try:
        adapter_cls = ADAPTERS[MailProtocol(config.protocol)]
    except (KeyError, ValueError):
        raise ValueError(f"Unsupported mail protocol: {config.protocol}") from None
    return adapter_cls(config, timeout=timeout)
