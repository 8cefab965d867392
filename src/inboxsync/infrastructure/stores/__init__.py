"""Store implementations."""

from inboxsync.infrastructure.stores.memory_account_store import InMemoryAccountStore
from inboxsync.infrastructure.stores.sqlite_account_store import SQLiteAccountStore, get_account_store

__all__ = [
    "InMemoryAccountStore",
    "SQLiteAccountStore",
    "get_account_store",
]
