"""Utilities for parsing raw RFC822 messages into structured models."""

from __future__ import annotations

import html
import re
from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.errors import MessageError
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime

from ..core.errors import ParseError
from ..core.models import FetchedMessage, Message

_TAG_PATTERN = re.compile(r"<[^>]+>")
_BLOCK_PATTERN = re.compile(
    r"<\s*(script|style)[^>]*>.*?<\s*/\s*\1\s*>", re.IGNORECASE | re.DOTALL
)
_BREAK_PATTERN = re.compile(r"<\s*(br|/p|/div|/tr|/li)[^>]*>", re.IGNORECASE)
_BLANK_LINES = re.compile(r"\n\s*\n+")
_SPACES = re.compile(r"[ \t\r\f\v]+")


class MessageParser:
    """Convert raw fetch results into :class:`Message` records."""

    def __init__(self) -> None:
        """Prepare internal parser instance."""
        self._parser = BytesParser(policy=policy.default)

    def parse(self, fetched: FetchedMessage, folder: str) -> Message:
        """Parse one fetched message; raise :class:`ParseError` on bad input."""
        if not fetched.raw or not fetched.raw.strip():
            raise ParseError(fetched.seq, "empty message body")
        try:
            message = self._parser.parsebytes(fetched.raw)
            sender = _format_addresses(message.get_all("From", []))
            to = _format_addresses(message.get_all("To", []))
            subject = str(message.get("Subject") or "").strip()
            received_at = _try_parse_datetime(message.get("Date"))
            body_text = extract_text(message)
        except (MessageError, LookupError, TypeError, ValueError) as exc:
            raise ParseError(fetched.seq, str(exc) or type(exc).__name__) from exc

        return Message(
            seq=fetched.seq,
            uid=fetched.uid,
            sender=sender,
            to=to,
            subject=subject,
            received_at=received_at,
            body_text=body_text,
            folder_path=folder,
        )


def extract_text(message: EmailMessage) -> str:
    """Return the plain text body, deriving it from HTML when necessary."""
    plain_chunks: list[str] = []
    html_chunks: list[str] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type not in ("text/plain", "text/html"):
            continue
        try:
            content_obj = part.get_content()
        except LookupError:
            # Unknown charset; decode what we can.
            payload = part.get_payload(decode=True) or b""
            content_obj = payload.decode("utf-8", errors="replace")
        if not isinstance(content_obj, str):
            continue
        content = content_obj.strip()
        if not content:
            continue
        if content_type == "text/plain":
            plain_chunks.append(content)
        else:
            html_chunks.append(content)

    if plain_chunks:
        return "\n\n".join(plain_chunks)
    if html_chunks:
        return html_to_text("\n".join(html_chunks))
    return ""


def html_to_text(markup: str) -> str:
    """Strip tags from ``markup`` keeping rough line structure."""
    text = _BLOCK_PATTERN.sub(" ", markup)
    text = _BREAK_PATTERN.sub("\n", text)
    text = _TAG_PATTERN.sub(" ", text)
    text = html.unescape(text)
    lines = [_SPACES.sub(" ", line).strip() for line in text.splitlines()]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


def _format_addresses(headers: Iterable[object]) -> str:
    pairs = [
        f"{name} <{address}>" if name else address
        for name, address in getaddresses([str(header) for header in headers])
        if address
    ]
    return ", ".join(pairs)


def _try_parse_datetime(header_value: object) -> datetime | None:
    if header_value is None:
        return None
    try:
        return parsedate_to_datetime(str(header_value))
    except (TypeError, ValueError):
        return None


__all__ = ["MessageParser", "extract_text", "html_to_text"]
