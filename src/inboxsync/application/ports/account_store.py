from __future__ import annotations
from typing import Optional, Protocol
from inboxsync.domain.cursor import SyncCursor
from inboxsync.domain.entities.mail_account import MailAccount

class AccountStore(Protocol):
    # Accounts are stored without their password
    def put(self, account: MailAccount) -> None: ...
    def get(self, account_id: str) -> Optional[MailAccount]: ...
    def list(self) -> list[MailAccount]: ...
    def delete(self, account_id: str) -> bool: ...
    def save_cursor(self, account_id: str, cursor: SyncCursor) -> None: ...
