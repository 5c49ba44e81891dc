from __future__ import annotations

from datetime import UTC, datetime
from email import policy
from email.message import Message
from email.parser import BytesParser
from email.utils import parsedate_to_datetime

from mailcheck.services.mail.errors import ParseError
from mailcheck.services.mail.sanitize import sanitize_html
from mailcheck.services.mail.types import MessageSummary

NO_SUBJECT = "(no subject)"
UNKNOWN = "Unknown"


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _header_text(msg: Message, name: str) -> str | None:
    value = msg.get(name)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _extract_bodies(msg: Message) -> tuple[str | None, str | None]:
    text_parts: list[str] = []
    html_parts: list[str] = []

    if msg.is_multipart():
        parts = list(msg.walk())
    else:
        parts = [msg]

    for part in parts:
        if part.is_multipart():
            continue
        if (part.get_content_disposition() or "").lower() == "attachment":
            continue

        content_type = (part.get_content_type() or "").lower()
        if content_type not in {"text/plain", "text/html"}:
            continue

        payload_bytes = part.get_payload(decode=True) or b""
        charset = part.get_content_charset() or "utf-8"
        try:
            payload_text = payload_bytes.decode(charset, errors="replace")
        except LookupError:
            payload_text = payload_bytes.decode("utf-8", errors="replace")

        if not payload_text.strip():
            continue
        if content_type == "text/plain":
            text_parts.append(payload_text)
        else:
            html_parts.append(payload_text)

    body_text = "\n\n".join(p.strip() for p in text_parts) or None
    body_html = "\n\n".join(p.strip() for p in html_parts) or None
    return body_text, body_html


def parse_message(
    raw: bytes,
    *,
    message_id: int,
    unread: bool | None = None,
    date_format: str = "%d.%m.%Y, %H:%M:%S",
) -> MessageSummary:
    if not isinstance(raw, (bytes, bytearray)) or not raw.strip():
        raise ParseError(f"message {message_id} has no content")

    try:
        msg = BytesParser(policy=policy.default).parsebytes(bytes(raw))
        sender = _header_text(msg, "From")
        recipient = _header_text(msg, "To")
        subject = _header_text(msg, "Subject")
        timestamp = _parse_date(_header_text(msg, "Date"))
        body_text, body_html = _extract_bodies(msg)
    except Exception as e:  # noqa: BLE001
        raise ParseError(f"message {message_id} could not be decoded: {e}") from e

    return MessageSummary(
        id=message_id,
        sender=sender or UNKNOWN,
        recipient=recipient,
        subject=subject or NO_SUBJECT,
        date=timestamp.strftime(date_format) if timestamp else UNKNOWN,
        timestamp=timestamp,
        body=sanitize_html(body_html) or body_text,
        unread=unread,
    )


def sort_newest_first(messages: list[MessageSummary]) -> list[MessageSummary]:
    # Stable: equal timestamps keep fetch order; undated messages go last.
    dated = [m for m in messages if m.timestamp is not None]
    undated = [m for m in messages if m.timestamp is None]
    dated.sort(key=lambda m: m.timestamp, reverse=True)
    return dated + undated
