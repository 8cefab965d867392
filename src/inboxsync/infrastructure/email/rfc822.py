from __future__ import annotations

from datetime import datetime, timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import Optional

from bs4 import BeautifulSoup

from inboxsync.domain.entities.normalized_message import NormalizedMessage
from inboxsync.domain.errors import ParseError

ID_HEADER = "X-Mailbox-Id"

UNKNOWN_SENDER = "Unknown"
NO_SUBJECT = "(No Subject)"
NO_CONTENT = "(No Content)"


def with_id_header(identifier: str, data: bytes) -> bytes:
    """Prefix raw message bytes with a header carrying the mailbox identifier."""
    return f"{ID_HEADER}: {identifier}\r\n".encode("ascii") + data


def _part_text(part) -> str:
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError):
        # Unknown or lying charset
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def _html_to_text(html: str) -> str:
    return BeautifulSoup(html, "html.parser").get_text("\n")


def _as_text(msg: EmailMessage) -> str:
    # Prefer text/plain; fallback to HTML converted to text
    body = msg.get_body(preferencelist=("plain", "html"))
    if body is None:
        return ""
    text = _part_text(body)
    if body.get_content_type() == "text/html":
        text = _html_to_text(text)
    return text.strip()


def _sender(msg: EmailMessage) -> tuple[str, str]:
    header = msg.get("From")
    if header is None:
        return UNKNOWN_SENDER, ""

    addresses = getattr(header, "addresses", ())
    if not addresses:
        return str(header).strip() or UNKNOWN_SENDER, ""

    first = addresses[0]
    address = first.addr_spec or ""
    return first.display_name or address or UNKNOWN_SENDER, address


def _received_at(msg: EmailMessage) -> datetime:
    # Date parsing can be messy; default to now if absent/unparseable
    try:
        header = msg.get("Date")
        date = header.datetime if header is not None else None
    except (AttributeError, TypeError, ValueError):
        date = None
    if date is None:
        return datetime.now(timezone.utc)
    if date.tzinfo is None:
        return date.replace(tzinfo=timezone.utc)
    return date.astimezone(timezone.utc)


def parse_message(data: bytes, id_prefix: str, is_read: bool, identifier: Optional[str] = None) -> NormalizedMessage:
    """Build a NormalizedMessage from raw bytes carrying an ``X-Mailbox-Id`` header.

    Raises ParseError when the message cannot be parsed at all; missing
    individual headers fall back to defaults.
    """
    try:
        msg = BytesParser(policy=policy.default).parsebytes(data)

        mailbox_id = (str(msg.get(ID_HEADER) or "")).strip() or identifier
        if not mailbox_id:
            raise ParseError(f"Message has no {ID_HEADER} header", identifier)

        sender_name, sender_address = _sender(msg)
        subject = str(msg.get("Subject") or "").strip()

        return NormalizedMessage(
            id=f"{id_prefix}-{mailbox_id}",
            sender_name=sender_name,
            sender_address=sender_address,
            subject=subject or NO_SUBJECT,
            body=_as_text(msg) or NO_CONTENT,
            received_at=_received_at(msg),
            is_read=is_read,
        )
    except ParseError:
        raise
    except Exception as e:
        raise ParseError(f"Failed to parse message {identifier or '?'}: {e}", identifier) from e
