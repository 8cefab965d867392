from __future__ import annotations

import imaplib
from contextlib import contextmanager
from typing import Iterator, Union

from loguru import logger

from inboxsync.domain.entities.mail_account import AccountConfig
from inboxsync.domain.errors import AuthenticationError, ConnectivityError

ImapConnection = Union[imaplib.IMAP4, imaplib.IMAP4_SSL]


class ImapAuthenticator:
    """
    Responsible ONLY for establishing an authenticated IMAP connection.
    No mailbox selection, no fetching, no parsing.
    """

    def __init__(self, config: AccountConfig, timeout: float) -> None:
        self.config = config
        self.timeout = timeout

    def _open(self) -> ImapConnection:
        if self.config.use_ssl:
            return imaplib.IMAP4_SSL(host=self.config.host, port=self.config.port, timeout=self.timeout)
        return imaplib.IMAP4(host=self.config.host, port=self.config.port, timeout=self.timeout)

    def login(self) -> ImapConnection:
        """
        Returns an authenticated connection.
        Raises ConnectivityError for socket/TLS/timeout problems and
        AuthenticationError when the server rejects the credentials.
        """
        try:
            conn = self._open()
        except (imaplib.IMAP4.error, OSError) as e:
            raise ConnectivityError(f"Cannot reach IMAP server {self.config.host}:{self.config.port}: {e}") from e

        try:
            conn.login(self.config.email, self.config.password)
        except imaplib.IMAP4.abort as e:
            logout(conn)
            raise ConnectivityError(f"IMAP connection dropped during login: {e}") from e
        except imaplib.IMAP4.error as e:
            logout(conn)
            raise AuthenticationError(f"IMAP login rejected for {self.config.email}: {e}") from e
        except OSError as e:
            logout(conn)
            raise ConnectivityError(f"IMAP login failed for {self.config.email}: {e}") from e
        return conn


def logout(conn: ImapConnection) -> None:
    try:
        conn.logout()
    except (imaplib.IMAP4.error, OSError) as e:
        logger.debug(f"IMAP logout failed: {e}")


@contextmanager
def imap_errors(action: str) -> Iterator[None]:
    """Translate session-level imaplib/socket failures into ConnectivityError."""
    try:
        yield
    except imaplib.IMAP4.error as e:
        raise ConnectivityError(f"IMAP {action} failed: {e}") from e
    except OSError as e:
        raise ConnectivityError(f"IMAP {action} failed: {e}") from e
