"""SQLite store for mail accounts and their sync cursors."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from loguru import logger

from inboxsync.domain.cursor import CursorKind, SyncCursor
from inboxsync.domain.entities.mail_account import AccountConfig, MailAccount, MailProtocol
from inboxsync.domain.errors import AccountNotFoundError


class SQLiteAccountStore:
    """Mail account records keyed by account id. Passwords are never written."""

    def __init__(self, db_path: str | Path = "./data/inboxsync.db"):
        self.db_path = Path(db_path)
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connection() as conn:
            conn.executescript("""
                PRAGMA journal_mode=WAL;

                CREATE TABLE IF NOT EXISTS mail_accounts (
                    account_id TEXT PRIMARY KEY,
                    alias TEXT NOT NULL,
                    protocol TEXT NOT NULL CHECK(protocol IN ('IMAP','POP3')),
                    host TEXT NOT NULL,
                    port INTEGER NOT NULL,
                    use_ssl INTEGER NOT NULL,
                    email TEXT NOT NULL,
                    cursor_kind TEXT NOT NULL DEFAULT 'unset'
                        CHECK(cursor_kind IN ('unset','empty','at')),
                    cursor_value TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
            """)
            logger.info(f"SQLite account store initialized at {self.db_path}")

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> MailAccount:
        return MailAccount(
            account_id=row["account_id"],
            alias=row["alias"],
            config=AccountConfig(
                protocol=MailProtocol(row["protocol"]),
                host=row["host"],
                port=row["port"],
                use_ssl=bool(row["use_ssl"]),
                email=row["email"],
                password="",
            ),
            cursor=SyncCursor(CursorKind(row["cursor_kind"]), row["cursor_value"]),
        )

    def put(self, account: MailAccount) -> None:
        """Insert or replace an account, keeping its original creation time."""
        now = datetime.now(timezone.utc).isoformat()
        cfg = account.config

        with self._connection() as conn:
            conn.execute(
                """INSERT INTO mail_accounts
                   (account_id, alias, protocol, host, port, use_ssl, email,
                    cursor_kind, cursor_value, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(account_id) DO UPDATE SET
                    alias = excluded.alias,
                    protocol = excluded.protocol,
                    host = excluded.host,
                    port = excluded.port,
                    use_ssl = excluded.use_ssl,
                    email = excluded.email,
                    cursor_kind = excluded.cursor_kind,
                    cursor_value = excluded.cursor_value,
                    updated_at = excluded.updated_at""",
                (
                    account.account_id,
                    account.alias,
                    cfg.protocol.value,
                    cfg.host,
                    cfg.port,
                    int(cfg.use_ssl),
                    cfg.email,
                    account.cursor.kind.value,
                    account.cursor.identifier,
                    now,
                    now,
                ),
            )
        logger.info(f"Stored mail account {account.account_id} ({cfg.describe()})")

    def get(self, account_id: str) -> Optional[MailAccount]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM mail_accounts WHERE account_id = ?",
                (account_id,),
            ).fetchone()
        return self._row_to_account(row) if row else None

    def list(self) -> list[MailAccount]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM mail_accounts ORDER BY created_at").fetchall()
        return [self._row_to_account(row) for row in rows]

    def delete(self, account_id: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM mail_accounts WHERE account_id = ?",
                (account_id,),
            )
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted mail account {account_id}")
        return deleted

    def save_cursor(self, account_id: str, cursor: SyncCursor) -> None:
        with self._connection() as conn:
            updated = conn.execute(
                """UPDATE mail_accounts
                   SET cursor_kind = ?, cursor_value = ?, updated_at = ?
                   WHERE account_id = ?""",
                (cursor.kind.value, cursor.identifier, datetime.now(timezone.utc).isoformat(), account_id),
            ).rowcount
        if not updated:
            raise AccountNotFoundError(f"Mail account {account_id} not found")
        logger.debug(f"Saved cursor for {account_id}: {cursor}")


# Singleton instance
_store: SQLiteAccountStore | None = None


def get_account_store(db_path: str | None = None) -> SQLiteAccountStore:
    """Get or create SQLite account store singleton."""
    global _store
    if _store is None:
        from inboxsync.infrastructure.settings import get_settings

        settings = get_settings()
        _store = SQLiteAccountStore(db_path=db_path or settings.sqlite_db_path)
    return _store
