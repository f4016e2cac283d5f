"""Daily digest of the day's mail, from the LLM with deterministic fallbacks."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from ..core.models import Message
from .llm import LLMClient, LLMError
from .prompts import (
    DIGEST_SYSTEM,
    MESSAGE_SUMMARY_SYSTEM,
    build_digest_prompt,
    build_message_summary_prompt,
)

LOGGER = logging.getLogger(__name__)

EMPTY_OVERVIEW = "No messages to summarise."

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_URGENT_PATTERNS = (
    re.compile(r"\burgent\b", re.IGNORECASE),
    re.compile(r"\basap\b", re.IGNORECASE),
    re.compile(r"\baction required\b", re.IGNORECASE),
)
_ACTION_PREFIXES = ("please", "todo", "action", "kindly")


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SummaryPayload(BaseModel):
    """Per-message analysis returned by the model."""

    model_config = ConfigDict(extra="ignore")

    summary: str = Field(min_length=1)
    priority: Priority = Priority.MEDIUM
    action_required: bool = Field(
        default=False,
        validation_alias=AliasChoices("action_required", "actionRequired"),
    )
    action_items: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("action_items", "actionItems"),
    )

    @field_validator("summary", mode="before")
    @classmethod
    def _strip_summary(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("priority", mode="before")
    @classmethod
    def _normalise_priority(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {member.value for member in Priority}:
                return lowered
        return Priority.MEDIUM

    @field_validator("action_items", mode="before")
    @classmethod
    def _clean_items(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            return [
                _normalise_line(item)
                for item in value
                if isinstance(item, str) and item.strip()
            ]
        return value


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class MessageDigest:
    """Summary of one message in the digest."""

    uid: int | None
    folder: str
    sender: str
    subject: str
    category: str | None
    summary: str
    priority: Priority = Priority.MEDIUM
    action_required: bool = False
    action_items: tuple[str, ...] = ()
    used_fallback: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "uid": self.uid,
            "folder": self.folder,
            "sender": self.sender,
            "subject": self.subject,
            "category": self.category,
            "summary": self.summary,
            "priority": self.priority.value,
            "action_required": self.action_required,
            "action_items": list(self.action_items),
            "used_fallback": self.used_fallback,
        }


@dataclass(slots=True)
class DailyDigest:
    """Overview of one day's mail."""

    day: date
    messages: list[MessageDigest] = field(default_factory=list)
    category_counts: dict[str, int] = field(default_factory=dict)
    action_items: list[str] = field(default_factory=list)
    overview: str = EMPTY_OVERVIEW
    overview_fallback: bool = False

    @property
    def total(self) -> int:
        return len(self.messages)

    @property
    def high_priority(self) -> list[MessageDigest]:
        return [entry for entry in self.messages if entry.priority is Priority.HIGH]

    @property
    def action_required_count(self) -> int:
        return sum(1 for entry in self.messages if entry.action_required)

    def to_dict(self, *, top_priority: int = 3) -> dict[str, object]:
        return {
            "day": self.day.isoformat(),
            "total": self.total,
            "high_priority_count": len(self.high_priority),
            "action_required_count": self.action_required_count,
            "category_counts": dict(self.category_counts),
            "top_priority": [
                entry.to_dict() for entry in self.high_priority[:top_priority]
            ],
            "action_items": list(self.action_items),
            "overview": self.overview,
            "overview_fallback": self.overview_fallback,
            "messages": [entry.to_dict() for entry in self.messages],
        }


class DigestBuilder:
    """Summarise each message, then the whole day."""

    def __init__(
        self,
        llm_client: LLMClient | None,
        *,
        excerpt_chars: int = 1500,
        max_action_items: int = 5,
        summary_max_tokens: int = 300,
        overview_max_tokens: int = 800,
        temperature: float = 0.3,
    ) -> None:
        self._llm_client = llm_client
        self._excerpt_chars = excerpt_chars
        self._max_action_items = max_action_items
        self._summary_max_tokens = summary_max_tokens
        self._overview_max_tokens = overview_max_tokens
        self._temperature = temperature

    def summarize(self, message: Message) -> MessageDigest:
        """Summarise ``message``, falling back to heuristics on any failure."""
        excerpt = message.body_text.strip()[: self._excerpt_chars]
        payload: SummaryPayload | None = None
        if self._llm_client is not None:
            prompt = build_message_summary_prompt(
                message, category=message.assigned_category, excerpt=excerpt
            )
            try:
                raw_output = self._llm_client.generate(
                    prompt,
                    system=MESSAGE_SUMMARY_SYSTEM,
                    json_output=True,
                    max_tokens=self._summary_max_tokens,
                    temperature=self._temperature,
                )
                payload = parse_summary_output(raw_output)
            except (LLMError, ValueError) as exc:
                LOGGER.warning(
                    "Summary failed for UID %s in %s: %s",
                    message.uid,
                    message.folder_path,
                    exc,
                )

        used_fallback = payload is None
        if payload is None:
            payload = build_fallback_summary(message)
        action_items = tuple(payload.action_items)
        return MessageDigest(
            uid=message.uid,
            folder=message.folder_path,
            sender=message.sender,
            subject=message.subject,
            category=message.assigned_category,
            summary=payload.summary,
            priority=payload.priority,
            action_required=payload.action_required or bool(action_items),
            action_items=action_items,
            used_fallback=used_fallback,
        )

    def build(self, messages: Iterable[Message], *, day: date) -> DailyDigest:
        """Summarise ``messages`` received on ``day``."""
        entries = [self.summarize(message) for message in messages]
        digest = DailyDigest(day=day, messages=entries)
        if not entries:
            return digest

        for entry in entries:
            name = entry.category or "(unclassified)"
            digest.category_counts[name] = digest.category_counts.get(name, 0) + 1
        digest.action_items = [
            f"{entry.subject}: {item}"
            for entry in entries
            if entry.action_required
            for item in entry.action_items
        ][: self._max_action_items]

        overview = self._overview(day, entries)
        if overview is None:
            digest.overview = build_fallback_overview(digest)
            digest.overview_fallback = True
        else:
            digest.overview = overview
        LOGGER.info(
            "Digest for %s: %s message(s), %s high priority",
            day.isoformat(),
            digest.total,
            len(digest.high_priority),
        )
        return digest

    def _overview(self, day: date, entries: Sequence[MessageDigest]) -> str | None:
        if self._llm_client is None:
            return None
        try:
            answer = self._llm_client.generate(
                build_digest_prompt(day, entries),
                system=DIGEST_SYSTEM,
                max_tokens=self._overview_max_tokens,
                temperature=self._temperature,
            )
        except LLMError as exc:
            LOGGER.warning("Overall summary failed for %s: %s", day.isoformat(), exc)
            return None
        return answer.strip() or None


def parse_summary_output(raw: str) -> SummaryPayload:
    """Validate the model's JSON answer, tolerating prose around it."""
    match = _JSON_OBJECT.search(raw)
    if match is None:
        raise ValueError("LLM output contained no JSON object")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ValueError("LLM output was not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError("LLM output must be a JSON object")
    try:
        return SummaryPayload.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"LLM output failed validation: {exc}") from exc


def build_fallback_summary(message: Message) -> SummaryPayload:
    """Summarise ``message`` from its subject and first body lines."""
    segments = [message.subject.strip()] if message.subject.strip() else []
    for line in message.body_text.splitlines():
        cleaned = _normalise_line(line)
        if cleaned:
            segments.append(cleaned)
        if len(segments) >= 3:
            break
    summary = " ".join(segments)[:300] or "No summary available."

    actions = [
        _normalise_line(line)
        for line in message.body_text.splitlines()
        if _looks_like_action(line)
    ][:5]
    text = f"{message.subject}\n{message.body_text}"
    if any(pattern.search(text) for pattern in _URGENT_PATTERNS):
        priority = Priority.HIGH
    elif actions:
        priority = Priority.MEDIUM
    else:
        priority = Priority.LOW
    return SummaryPayload(
        summary=summary,
        priority=priority,
        action_required=bool(actions),
        action_items=actions,
    )


def build_fallback_overview(digest: DailyDigest) -> str:
    """Describe ``digest`` from its counts alone."""
    lines = [f"{digest.total} message(s) received on {digest.day.isoformat()}."]
    by_category = ", ".join(
        f"{name} ({count})" for name, count in digest.category_counts.items()
    )
    lines.append(f"By category: {by_category}.")
    if digest.high_priority:
        subjects = "; ".join(
            entry.subject or "(no subject)" for entry in digest.high_priority[:3]
        )
        lines.append(f"High priority: {subjects}.")
    if digest.action_items:
        lines.append("Actions:")
        lines.extend(f"- {item}" for item in digest.action_items)
    return "\n".join(lines)


def _looks_like_action(line: str) -> bool:
    cleaned = line.strip()
    if not cleaned:
        return False
    if cleaned.lower().startswith(_ACTION_PREFIXES):
        return True
    return any(pattern.search(cleaned) for pattern in _URGENT_PATTERNS)


def _normalise_line(line: str) -> str:
    return re.sub(r"\s+", " ", line.strip())


__all__ = [
    "DailyDigest",
    "DigestBuilder",
    "EMPTY_OVERVIEW",
    "MessageDigest",
    "Priority",
    "SummaryPayload",
    "build_fallback_overview",
    "build_fallback_summary",
    "parse_summary_output",
]
