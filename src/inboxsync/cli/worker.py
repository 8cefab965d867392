"""Mail polling worker - polls multiple mailboxes at configurable intervals."""

from __future__ import annotations

import os
import signal
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime

from loguru import logger

from inboxsync.application.ports.account_store import AccountStore
from inboxsync.application.use_cases.sync_mailbox import sync_account
from inboxsync.domain.entities.mail_account import AccountConfig, MailAccount, MailProtocol
from inboxsync.domain.entities.normalized_message import SyncMode
from inboxsync.domain.errors import MailSyncError
from inboxsync.infrastructure import get_account_store, get_settings
from inboxsync.infrastructure.email.factory import adapter_for
from inboxsync.cli.poll_once import config_from_settings


@dataclass
class MailboxConfig:
    """Configuration for a single mailbox."""
    name: str
    config: AccountConfig

    @property
    def account_id(self) -> str:
        return f"worker-{self.name}"


@dataclass
class WorkerStats:
    """Track worker statistics."""
    total_new: int = 0
    total_errors: int = 0
    last_poll: datetime | None = None
    polls_completed: int = 0
    by_mailbox: dict[str, int] = field(default_factory=dict)


class MailWorker:
    """
    Multi-mailbox polling worker.

    Polls configured mailboxes one after another, so polls for the same
    account never overlap. The first poll of a mailbox only establishes the
    cursor; its messages are logged as context, not counted as new.
    """

    def __init__(
        self,
        mailboxes: list[MailboxConfig],
        store: AccountStore,
        poll_interval_minutes: int = 5,
        timeout: float = 30.0,
        initial_batch_size: int = 10,
    ):
        self.mailboxes = mailboxes
        self.store = store
        self.poll_interval = poll_interval_minutes * 60  # Convert to seconds
        self.timeout = timeout
        self.initial_batch_size = initial_batch_size
        self.running = False
        self.stats = WorkerStats()

    def _load_account(self, mailbox: MailboxConfig) -> MailAccount:
        account = self.store.get(mailbox.account_id)
        if account is None:
            account = MailAccount(
                account_id=mailbox.account_id,
                alias=mailbox.name,
                config=mailbox.config.without_password(),
            )
            self.store.put(account)
            logger.info(f"Registered mailbox {mailbox.name} as {mailbox.account_id}")
        elif account.config != mailbox.config.without_password():
            if not account.config.same_mailbox(mailbox.config):
                logger.warning(f"Mailbox {mailbox.name} now points at {mailbox.config.describe()}; starting a fresh sync")
            account = account.with_config(mailbox.config)
            self.store.put(account)
        return account.with_password(mailbox.config.password)

    def _process_mailbox(self, mailbox: MailboxConfig) -> int:
        """Poll a single mailbox. Returns count of new messages."""
        logger.info(f"Polling mailbox: {mailbox.name} ({mailbox.config.describe()})")

        account = self._load_account(mailbox)
        adapter = adapter_for(mailbox.config, timeout=self.timeout)
        result = sync_account(account, self.store, adapter, self.initial_batch_size)

        if result.mode is SyncMode.INITIAL:
            logger.info(f"Mailbox {mailbox.name}: initial sync loaded {len(result.messages)} messages")
            return 0

        if result.mode is SyncMode.HEALED:
            logger.warning(f"Mailbox {mailbox.name}: cursor was lost, re-synced {len(result.messages)} messages")

        for msg in result.messages:
            logger.info(f"  [{mailbox.name}] {msg.sender_name}: {msg.subject[:60]}")
        logger.info(f"Mailbox {mailbox.name}: {len(result.messages)} new messages")
        return len(result.messages)

    def _poll_all_mailboxes(self) -> None:
        """Poll all configured mailboxes once."""
        self.stats.last_poll = datetime.now()
        logger.info(f"Starting poll cycle #{self.stats.polls_completed + 1}")

        for mailbox in self.mailboxes:
            try:
                count = self._process_mailbox(mailbox)
                self.stats.total_new += count
                self.stats.by_mailbox[mailbox.name] = (
                    self.stats.by_mailbox.get(mailbox.name, 0) + count
                )
            except MailSyncError as e:
                self.stats.total_errors += 1
                logger.error(f"Error polling {mailbox.name}: {e}")
            except Exception as e:
                self.stats.total_errors += 1
                logger.exception(f"Unexpected error polling {mailbox.name}: {e}")

        self.stats.polls_completed += 1
        self._log_stats()

    def _log_stats(self) -> None:
        s = self.stats
        logger.info(
            f"Worker stats: cycles={s.polls_completed} new={s.total_new} "
            f"failed={s.total_errors} per_mailbox={s.by_mailbox}"
        )

    def _handle_shutdown(self, signum, frame) -> None:
        logger.info(f"Signal {signum} received, stopping after the current cycle")
        self.running = False

    def _wait_for_next_cycle(self) -> None:
        # Short naps so a shutdown signal is honoured within seconds
        deadline = time.monotonic() + self.poll_interval
        while self.running:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            time.sleep(min(remaining, 10))

    def run(self) -> int:
        """Poll every mailbox, then again each interval until signalled."""
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)

        logger.info(
            f"Mail worker watching {len(self.mailboxes)} mailbox(es) "
            f"every {self.poll_interval // 60} min"
        )
        for mb in self.mailboxes:
            logger.info(f"  - {mb.name}: {mb.config.describe()}")

        self.running = True
        while self.running:
            self._poll_all_mailboxes()
            self._wait_for_next_cycle()

        logger.info("Mail worker stopped")
        self._log_stats()
        return 0


def get_mailboxes_from_env() -> list[MailboxConfig]:
    """
    Load mailbox configurations from environment variables.

    Supports two formats:

    1. Single mailbox:
       MAIL_PROTOCOL=IMAP
       MAIL_HOST=imap.example.com
       MAIL_EMAIL=me@example.com
       MAIL_PASSWORD=xxx

    2. Multiple mailboxes:
       MAIL_MAILBOXES=work,personal
       MAIL_WORK_PROTOCOL=IMAP
       MAIL_WORK_HOST=imap.work.com
       MAIL_WORK_PORT=993          # Optional, defaults per protocol/SSL
       MAIL_WORK_USE_SSL=true      # Optional
       MAIL_WORK_EMAIL=me@work.com
       MAIL_WORK_PASSWORD=xxx
       ...
    """
    mailboxes = []

    mailbox_names = os.getenv("MAIL_MAILBOXES", "").strip()

    if mailbox_names:
        for name in mailbox_names.split(","):
            name = name.strip().upper()
            if not name:
                continue
            host = os.getenv(f"MAIL_{name}_HOST")
            email = os.getenv(f"MAIL_{name}_EMAIL")
            password = os.getenv(f"MAIL_{name}_PASSWORD")

            if not (host and email and password):
                logger.warning(f"Mailbox {name} missing host, email or password, skipping")
                continue

            try:
                protocol = MailProtocol(os.getenv(f"MAIL_{name}_PROTOCOL", "IMAP").upper())
            except ValueError:
                logger.warning(f"Mailbox {name} has an unsupported protocol, skipping")
                continue

            use_ssl = os.getenv(f"MAIL_{name}_USE_SSL", "true").lower() == "true"
            port = int(os.getenv(f"MAIL_{name}_PORT") or protocol.default_port(use_ssl))

            mailboxes.append(MailboxConfig(
                name=name.lower(),
                config=AccountConfig(
                    protocol=protocol,
                    host=host,
                    port=port,
                    use_ssl=use_ssl,
                    email=email,
                    password=password,
                ),
            ))
            logger.info(f"Configured mailbox: {name.lower()} ({email})")

    else:
        try:
            cfg = config_from_settings(get_settings())
        except ValueError:
            return []
        name = cfg.email.split("@")[0]
        mailboxes.append(MailboxConfig(name=name, config=cfg))
        logger.info(f"Configured single mailbox: {name} ({cfg.email})")

    return mailboxes


def main() -> int:
    """Entry point for the mail worker."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level,
    )

    logger.info("=" * 60)
    logger.info(f"{settings.app_name} Mail Worker")
    logger.info("=" * 60)

    mailboxes = get_mailboxes_from_env()

    if not mailboxes:
        logger.error("No mailboxes configured! Set MAIL_HOST/MAIL_EMAIL/MAIL_PASSWORD or MAIL_MAILBOXES")
        return 1

    worker = MailWorker(
        mailboxes=mailboxes,
        store=get_account_store(),
        poll_interval_minutes=settings.mail_poll_minutes,
        timeout=settings.mail_poll_timeout,
        initial_batch_size=settings.mail_initial_batch_size,
    )

    return worker.run()


if __name__ == "__main__":
    raise SystemExit(main())
