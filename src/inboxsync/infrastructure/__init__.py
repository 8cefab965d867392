# src/inboxsync/infrastructure/__init__.py
"""Infrastructure layer - mailbox protocols, storage, and configuration."""

from inboxsync.infrastructure.settings import Settings, get_settings
from inboxsync.infrastructure.stores import get_account_store

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Storage
    "get_account_store",
]
