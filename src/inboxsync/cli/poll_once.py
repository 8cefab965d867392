"""One-shot mailbox poll, cursor persisted in the local account store."""

from __future__ import annotations

import argparse
import sys

from loguru import logger

from inboxsync.application.use_cases.sync_mailbox import MailboxSyncController, sync_account
from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.entities.mail_account import AccountConfig, MailAccount, MailProtocol
from inboxsync.domain.errors import AuthenticationError, ConnectivityError
from inboxsync.infrastructure import get_account_store, get_settings
from inboxsync.infrastructure.email.factory import adapter_for
from inboxsync.infrastructure.settings import Settings


def config_from_settings(settings: Settings) -> AccountConfig:
    if not (settings.mail_host and settings.mail_email and settings.mail_password):
        raise ValueError("MAIL_HOST, MAIL_EMAIL and MAIL_PASSWORD must be set")
    return AccountConfig(
        protocol=MailProtocol(settings.mail_protocol),
        host=settings.mail_host,
        port=settings.mail_effective_port,
        use_ssl=settings.mail_use_ssl,
        email=settings.mail_email,
        password=settings.mail_password.get_secret_value(),
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Poll a mailbox for new messages")
    parser.add_argument("--check", action="store_true", help="Only verify host and credentials")
    parser.add_argument("--reset", action="store_true", help="Forget the stored cursor (next poll is an initial sync)")
    parser.add_argument("--account-id", default=None, help="Store key for the cursor (default: cli-<email>)")
    args = parser.parse_args(argv)

    settings = get_settings()
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)

    try:
        cfg = config_from_settings(settings)
    except ValueError as e:
        print(f"Configuration error: {e}")
        return 2

    if args.check:
        adapter = adapter_for(cfg, timeout=settings.mail_connect_timeout)
        try:
            MailboxSyncController(adapter).connect()
        except AuthenticationError as e:
            print(f"Authentication failed: {e}")
            return 1
        except ConnectivityError as e:
            print(f"Connection failed, check server settings: {e}")
            return 1
        print(f"Connection OK: {cfg.describe()}")
        return 0

    store = get_account_store()
    account_id = args.account_id or f"cli-{cfg.email}"
    account = store.get(account_id)
    if account is None:
        account = MailAccount(account_id=account_id, alias=cfg.email, config=cfg.without_password())
        store.put(account)
    elif account.config != cfg.without_password():
        if not account.config.same_mailbox(cfg):
            logger.warning(f"{account_id} now points at {cfg.describe()}; starting a fresh sync")
        account = account.with_config(cfg)
        store.put(account)

    if args.reset:
        store.save_cursor(account_id, SyncCursor.unset())
        print(f"Reset cursor for {account_id}")
        return 0

    try:
        result = sync_account(
            account.with_password(cfg.password),
            store,
            adapter_for(cfg, timeout=settings.mail_poll_timeout),
            settings.mail_initial_batch_size,
        )
    except (AuthenticationError, ConnectivityError) as e:
        print(f"Poll failed: {e}")
        return 1

    print(f"{result.mode.value} sync: {len(result.messages)} message(s), cursor {result.cursor}")
    for msg in result.messages:
        print(f"  {msg.received_at:%Y-%m-%d %H:%M}  {msg.sender_name[:25]:<25}  {msg.subject}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
