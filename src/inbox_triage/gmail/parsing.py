"""Helpers for parsing Gmail API messages into internal models."""

from __future__ import annotations

import base64
import re
from datetime import datetime, timezone
from email.utils import parseaddr
from typing import Any
from urllib.parse import parse_qs, unquote

from inbox_triage.models import Message, MessageBody, Sender, UnsubscribeTarget

METADATA_HEADERS: tuple[str, ...] = (
    "From",
    "To",
    "Subject",
    "Date",
    "List-Unsubscribe",
    "List-Unsubscribe-Post",
)

NO_SUBJECT = "(no subject)"

_ANGLE_RE = re.compile(r"<([^>]+)>")


def _header_map(message: dict[str, Any]) -> dict[str, str]:
    payload = message.get("payload") or {}
    headers = payload.get("headers") or []
    result: dict[str, str] = {}
    for h in headers:
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first for now.
            result.setdefault(name.lower(), value)
    return result


def parse_sender(value: str | None) -> Sender:
    """Parse a From header into a Sender.

    ``"Jane <jane@example.com>"`` gives name "Jane"; a bare address uses the
    address as the display name.
    """
    if not value:
        return Sender()
    name, addr = parseaddr(value)
    addr = addr.strip()
    name = name.strip() or addr
    return Sender(name=name, email=addr)


def parse_list_unsubscribe(
    header: str | None,
    post_header: str | None = None,
) -> UnsubscribeTarget | None:
    """Parse List-Unsubscribe / List-Unsubscribe-Post headers.

    Returns None when the header is absent or advertises nothing usable.
    """
    if not header:
        return None

    urls: list[str] = []
    mailto: str | None = None
    mailto_subject: str | None = None

    entries = _ANGLE_RE.findall(header) or [p.strip() for p in header.split(",")]
    for raw in entries:
        entry = raw.strip()
        lowered = entry.lower()
        if lowered.startswith("https://"):
            urls.append(entry)
        elif lowered.startswith("mailto:") and mailto is None:
            address, _, query = entry[len("mailto:") :].partition("?")
            mailto = unquote(address).strip() or None
            subjects = parse_qs(query).get("subject")
            if subjects:
                mailto_subject = subjects[0]

    if not urls and mailto is None:
        return None

    one_click = bool(post_header and "one-click" in post_header.lower())
    return UnsubscribeTarget(
        urls=tuple(urls),
        mailto=mailto,
        mailto_subject=mailto_subject,
        one_click=one_click,
    )


def has_attachments(part: dict[str, Any] | None) -> bool:
    """True when any MIME part below ``part`` carries a filename."""
    if not part:
        return False
    if part.get("filename"):
        return True
    return any(has_attachments(p) for p in part.get("parts") or [])


def _internal_date(message: dict[str, Any]) -> datetime:
    raw = message.get("internalDate")
    try:
        millis = int(raw) if raw is not None else None
    except (TypeError, ValueError):
        millis = None
    if millis is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)


def message_to_model(message: dict[str, Any], thread_message_count: int = 1) -> Message:
    """Convert a Gmail API message (format=metadata) to a Message.

    Args:
        message: Gmail API message dict.
        thread_message_count: Number of messages in the message's thread.

    Returns:
        Message: Parsed metadata model.
    """

    hm = _header_map(message)

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        label_ids = []
    labels = frozenset(str(x) for x in label_ids if isinstance(x, str))

    list_unsubscribe = hm.get("list-unsubscribe")

    return Message(
        id=str(message.get("id") or ""),
        thread_id=str(message.get("threadId") or ""),
        sender=parse_sender(hm.get("from")),
        subject=hm.get("subject") or NO_SUBJECT,
        snippet=message.get("snippet") or "",
        date=_internal_date(message),
        labels=labels,
        has_attachments=has_attachments(message.get("payload")),
        has_list_unsubscribe=bool(list_unsubscribe),
        unsubscribe_target=parse_list_unsubscribe(list_unsubscribe, hm.get("list-unsubscribe-post")),
        is_unread="UNREAD" in labels,
        is_starred="STARRED" in labels,
        thread_message_count=max(thread_message_count, 1),
    )


def _decode_b64(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("utf-8"))
    return raw.decode("utf-8", errors="replace")


def _collect_bodies(part: dict[str, Any], found: dict[str, str]) -> None:
    mime = (part.get("mimeType") or "").lower()
    data = (part.get("body") or {}).get("data")
    if data and not part.get("filename"):
        if mime.startswith("text/html"):
            found.setdefault("html", _decode_b64(data))
        elif mime.startswith("text/plain"):
            found.setdefault("plain", _decode_b64(data))
    for p in part.get("parts") or []:
        _collect_bodies(p, found)


def message_to_body(message: dict[str, Any]) -> MessageBody:
    """Extract the displayable body from a Gmail API message (format=full).

    HTML is preferred over plain text; the snippet is the last resort.
    """
    hm = _header_map(message)
    found: dict[str, str] = {}
    _collect_bodies(message.get("payload") or {}, found)

    if "html" in found:
        return MessageBody(body_text=found["html"], is_html=True, to=hm.get("to", ""))
    if "plain" in found:
        return MessageBody(body_text=found["plain"], is_html=False, to=hm.get("to", ""))
    return MessageBody(body_text=message.get("snippet") or "", is_html=False, to=hm.get("to", ""))
