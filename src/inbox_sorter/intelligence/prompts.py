"""Prompt templates for classification, invoices and the daily digest."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from textwrap import dedent
from typing import TYPE_CHECKING

from ..core.models import Message

if TYPE_CHECKING:
    from .digest import MessageDigest

CLASSIFICATION_SYSTEM = (
    "You sort business email into folders. "
    "Answer with exactly one category name from the list and nothing else."
)

INVOICE_SYSTEM = "You extract structured data from invoices. Respond with JSON only."

MESSAGE_SUMMARY_SYSTEM = (
    "You analyse email. Respond with JSON only, without markdown fences."
)

DIGEST_SYSTEM = (
    "You write short, direct summaries of a day's email. "
    "Follow the requested layout exactly, with no introduction or closing."
)

_MESSAGE_SUMMARY_SCHEMA = dedent(
    """
    Analyse this email and return ONLY JSON matching:
    {
      "summary": string,            # at most two sentences
      "priority": "high"|"medium"|"low",
      "action_required": boolean,
      "action_items": [string]      # concrete steps taken from the email
    }
    Only list actions that follow from this email's content. Add
    "Reply to this email" when it expects an answer.
    """
).strip()

_INVOICE_SCHEMA = dedent(
    """
    Extract the invoice details from this email. Return ONLY JSON matching:
    {
      "total_amount": number|null,   # amount due, tax included
      "currency": string|null,       # ISO code such as EUR
      "invoice_date": string|null,   # YYYY-MM-DD
      "invoice_number": string|null,
      "issuer": string|null,         # company that sent the invoice
      "due_date": string|null        # YYYY-MM-DD
    }
    """
).strip()


def build_classification_prompt(
    message: Message, categories: Sequence[str], *, excerpt: str
) -> str:
    """Ask for one label out of ``categories`` for ``message``."""
    lines = [
        "Classify this email into exactly one of these categories: "
        + ", ".join(categories),
        "",
        *_header_lines(message),
        "Content:",
        excerpt,
        "",
        "Reply with the category name only.",
    ]
    return "\n".join(lines)


def build_invoice_prompt(message: Message, *, excerpt: str) -> str:
    """Ask for the invoice fields of ``message`` as a JSON object."""
    lines = [_INVOICE_SCHEMA, "", *_header_lines(message), "Content:", excerpt]
    return "\n".join(lines)


def build_message_summary_prompt(
    message: Message, *, category: str | None, excerpt: str
) -> str:
    """Ask for a summary, priority and action items for one message."""
    lines = [
        _MESSAGE_SUMMARY_SCHEMA,
        "",
        *_header_lines(message),
        f"Category: {category or '(none)'}",
        "Content:",
        excerpt,
    ]
    return "\n".join(lines)


def build_digest_prompt(day: date, entries: Sequence[MessageDigest]) -> str:
    """Ask for an overview of ``entries`` laid out in fixed sections."""
    lines = [f"Summarise these {len(entries)} emails received on {day:%d/%m/%Y}:", ""]
    for entry in entries:
        actions = ", ".join(entry.action_items) or "none"
        lines.extend(
            [
                f"- Sender: {entry.sender or '(unknown sender)'}",
                f"  Subject: {entry.subject or '(no subject)'}",
                f"  Priority: {entry.priority.value}",
                f"  Category: {entry.category or '(none)'}",
                f"  Folder: {entry.folder}",
                f"  Summary: {entry.summary}",
                f"  Actions: {actions}",
            ]
        )
    lines.extend(
        [
            "",
            "Use exactly these sections:",
            "### Priority emails",
            "### Actions required",
            "### Other emails",
            "List priority emails one per line as **subject** - sender with a "
            "one sentence summary. List the 3 to 5 most important actions in "
            "order. Group the remaining emails by category in a few sentences. "
            "Mention dates, times and amounts when they are known.",
        ]
    )
    return "\n".join(lines)


def _header_lines(message: Message) -> list[str]:
    return [
        f"From: {message.sender or '(unknown sender)'}",
        f"Subject: {message.subject or '(no subject)'}",
    ]


__all__ = [
    "CLASSIFICATION_SYSTEM",
    "DIGEST_SYSTEM",
    "INVOICE_SYSTEM",
    "MESSAGE_SUMMARY_SYSTEM",
    "build_classification_prompt",
    "build_digest_prompt",
    "build_invoice_prompt",
    "build_message_summary_prompt",
]
