"""Sync cursor: where the last poll of a mailbox stopped."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

EMPTY_MAILBOX = "EMPTY_MAILBOX"

WireCursor = Optional[Union[str, int]]


class CursorKind(str, Enum):
    """The three states a stored cursor can be in."""

    UNSET = "unset"
    EMPTY = "empty"
    AT = "at"


@dataclass(frozen=True)
class SyncCursor:
    """Tagged cursor value.

    UNSET means the mailbox was never synced, EMPTY means the last poll saw an
    empty mailbox, AT carries the identifier of the newest message handed out.
    Identifiers are always kept as strings; IMAP adapters read them back as
    integers themselves.
    """

    kind: CursorKind
    identifier: Optional[str] = None

    def __post_init__(self) -> None:
        if self.kind is CursorKind.AT and not self.identifier:
            raise ValueError("AT cursor requires an identifier")
        if self.kind is not CursorKind.AT and self.identifier is not None:
            raise ValueError(f"{self.kind.value} cursor cannot carry an identifier")

    @classmethod
    def unset(cls) -> SyncCursor:
        return cls(CursorKind.UNSET)

    @classmethod
    def empty(cls) -> SyncCursor:
        return cls(CursorKind.EMPTY)

    @classmethod
    def at(cls, identifier: Union[str, int]) -> SyncCursor:
        return cls(CursorKind.AT, str(identifier).strip())

    @property
    def is_unset(self) -> bool:
        return self.kind is CursorKind.UNSET

    @property
    def is_empty(self) -> bool:
        return self.kind is CursorKind.EMPTY

    @classmethod
    def from_wire(cls, value: WireCursor) -> SyncCursor:
        """Read the opaque value a client stored after its previous poll.

        An empty string is treated like a missing cursor.
        """
        if value is None:
            return cls.unset()
        text = str(value).strip()
        if not text:
            return cls.unset()
        if text == EMPTY_MAILBOX:
            return cls.empty()
        return cls.at(text)

    def to_wire(self) -> Optional[str]:
        if self.kind is CursorKind.UNSET:
            return None
        if self.kind is CursorKind.EMPTY:
            return EMPTY_MAILBOX
        return self.identifier

    def __str__(self) -> str:
        if self.kind is CursorKind.AT:
            return f"at:{self.identifier}"
        return self.kind.value
