from __future__ import annotations

import poplib
from contextlib import contextmanager
from typing import Iterator, Union

from loguru import logger

from inboxsync.domain.entities.mail_account import AccountConfig
from inboxsync.domain.errors import AuthenticationError, ConnectivityError

Pop3Connection = Union[poplib.POP3, poplib.POP3_SSL]


class Pop3Authenticator:
    """
    Responsible ONLY for establishing an authenticated POP3 connection.
    """

    def __init__(self, config: AccountConfig, timeout: float) -> None:
        self.config = config
        self.timeout = timeout

    def _open(self) -> Pop3Connection:
        if self.config.use_ssl:
            return poplib.POP3_SSL(self.config.host, self.config.port, timeout=self.timeout)
        return poplib.POP3(self.config.host, self.config.port, timeout=self.timeout)

    def login(self) -> Pop3Connection:
        try:
            conn = self._open()
        except (poplib.error_proto, OSError) as e:
            raise ConnectivityError(f"Cannot reach POP3 server {self.config.host}:{self.config.port}: {e}") from e

        try:
            conn.user(self.config.email)
            conn.pass_(self.config.password)
        except poplib.error_proto as e:
            quit_session(conn)
            raise AuthenticationError(f"POP3 login rejected for {self.config.email}: {e}") from e
        except OSError as e:
            quit_session(conn)
            raise ConnectivityError(f"POP3 login failed for {self.config.email}: {e}") from e
        return conn


def quit_session(conn: Pop3Connection) -> None:
    try:
        conn.quit()
    except (poplib.error_proto, OSError) as e:
        logger.debug(f"POP3 QUIT failed: {e}")


@contextmanager
def pop3_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (poplib.error_proto, OSError) as e:
        raise ConnectivityError(f"POP3 {action} failed: {e}") from e
