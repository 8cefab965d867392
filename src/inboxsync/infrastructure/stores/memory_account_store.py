"""In-process account store, for session-scoped use and tests."""

from __future__ import annotations

import threading
from typing import Optional

from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.entities.mail_account import MailAccount
from inboxsync.domain.errors import AccountNotFoundError


class InMemoryAccountStore:
    def __init__(self) -> None:
        self._accounts: dict[str, MailAccount] = {}
        self._lock = threading.Lock()

    def put(self, account: MailAccount) -> None:
        with self._lock:
            self._accounts[account.account_id] = account.with_password("")

    def get(self, account_id: str) -> Optional[MailAccount]:
        with self._lock:
            return self._accounts.get(account_id)

    def list(self) -> list[MailAccount]:
        with self._lock:
            return list(self._accounts.values())

    def delete(self, account_id: str) -> bool:
        with self._lock:
            return self._accounts.pop(account_id, None) is not None

    def save_cursor(self, account_id: str, cursor: SyncCursor) -> None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFoundError(f"Mail account {account_id} not found")
            self._accounts[account_id] = account.with_cursor(cursor)
