from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from inboxsync.domain.cursor import SyncCursor


@dataclass(frozen=True)
class NormalizedMessage:
    id: str  # protocol-tagged: imap-<uid> / pop3-<uidl>
    sender_name: str
    sender_address: str
    subject: str
    body: str
    received_at: datetime
    is_read: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "senderName": self.sender_name,
            "senderAddress": self.sender_address,
            "subject": self.subject,
            "body": self.body,
            "receivedAt": self.received_at.isoformat(),
            "isRead": self.is_read,
        }


class SyncMode(str, Enum):
    INITIAL = "initial"
    REFRESH = "refresh"
    HEALED = "healed"


@dataclass(frozen=True)
class PollResult:
    messages: tuple[NormalizedMessage, ...]
    cursor: SyncCursor
    mode: SyncMode
