"""Core domain models used across the application."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Folder attributes reported by LIST (RFC 3501, RFC 6154).
NOSELECT_FLAG = "\\noselect"
NONEXISTENT_FLAG = "\\nonexistent"
VIRTUAL_FLAGS = frozenset({"\\all", "\\flagged"})


@dataclass(frozen=True, slots=True)
class FolderInfo:
    """A mailbox folder as reported by the server."""

    name: str
    wire_name: str
    delimiter: str | None = None
    flags: tuple[str, ...] = ()

    @property
    def selectable(self) -> bool:
        lowered = {flag.lower() for flag in self.flags}
        return NOSELECT_FLAG not in lowered and NONEXISTENT_FLAG not in lowered

    @property
    def virtual(self) -> bool:
        """Whether the folder is a server-side view over other folders."""
        return any(flag.lower() in VIRTUAL_FLAGS for flag in self.flags)


@dataclass(slots=True)
class FetchedMessage:
    """Raw FETCH result joined from its attribute and body responses."""

    seq: int
    uid: int | None
    raw: bytes


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class Message:
    """One mail item under consideration for sorting.

    ``seq`` is only meaningful inside the session that fetched it; ``uid``
    is the stable identifier used for every mutation.
    """

    seq: int
    uid: int | None
    sender: str
    to: str
    subject: str
    received_at: datetime | None
    body_text: str
    folder_path: str
    assigned_category: str | None = None

    @property
    def key(self) -> tuple[str, int | None]:
        """Identity of the message across folders."""
        return (self.folder_path, self.uid)


@dataclass(frozen=True, slots=True)
class Category:
    """Named classification bucket backed by a folder of the same name."""

    name: str

    @property
    def key(self) -> str:
        return self.name.casefold()


class CategorySet:
    """Ordered, case-insensitive set of categories with a fallback member."""

    def __init__(self, names: Iterable[str], fallback: str) -> None:
        self._fallback = Category(fallback)
        self._members: dict[str, Category] = {}
        for name in names:
            cleaned = name.strip()
            if cleaned:
                self._members.setdefault(cleaned.casefold(), Category(cleaned))
        self._members.setdefault(self._fallback.key, self._fallback)

    @property
    def fallback(self) -> Category:
        return self._fallback

    def resolve(self, label: str | None) -> Category | None:
        """Return the category matching ``label`` ignoring case, if any."""
        if not label:
            return None
        return self._members.get(label.strip().casefold())

    def names(self) -> list[str]:
        return [category.name for category in self._members.values()]

    def __iter__(self) -> Iterator[Category]:
        return iter(self._members.values())

    def __len__(self) -> int:
        return len(self._members)

    def __repr__(self) -> str:
        return f"CategorySet({self.names()!r}, fallback={self._fallback.name!r})"


class ClassificationBatch:
    """Messages grouped by assigned category, in classification order."""

    def __init__(self) -> None:
        self._groups: dict[str, list[Message]] = {}

    @classmethod
    def from_messages(cls, messages: Iterable[Message]) -> ClassificationBatch:
        batch = cls()
        for message in messages:
            batch.add(message)
        return batch

    def add(self, message: Message) -> None:
        if message.assigned_category is None:
            raise ValueError(f"message #{message.seq} has not been classified")
        self._groups.setdefault(message.assigned_category, []).append(message)

    def items(self) -> Iterator[tuple[str, list[Message]]]:
        for category, messages in self._groups.items():
            yield category, list(messages)

    def counts(self) -> dict[str, int]:
        return {category: len(messages) for category, messages in self._groups.items()}

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._groups.values())


class RunStage(str, Enum):
    """Stages of a sorting run."""

    IDLE = "idle"
    BUILDING_CATEGORIES = "building_categories"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    GROUPING = "grouping"
    RECONCILING = "reconciling"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class CategoryOutcome:
    """Result of relocating one category's messages."""

    category: str
    moved: int = 0
    skipped_uids: int = 0
    skipped_virtual: int = 0
    already_sorted: int = 0
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(slots=True)
class SortReport:
    """Summary of a sorting run returned to callers."""

    stage: RunStage = RunStage.IDLE
    moved: dict[str, int] = field(default_factory=dict)
    classified: dict[str, int] = field(default_factory=dict)
    skipped_without_uid: int = 0
    skipped_virtual: int = 0
    already_sorted: int = 0
    failed_categories: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    error_kind: str | None = None

    @property
    def success(self) -> bool:
        return self.stage is RunStage.COMPLETED

    @property
    def moved_total(self) -> int:
        return sum(self.moved.values())

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "stage": self.stage.value,
            "moved": dict(self.moved),
            "classified": dict(self.classified),
            "moved_total": self.moved_total,
            "skipped_without_uid": self.skipped_without_uid,
            "skipped_virtual": self.skipped_virtual,
            "already_sorted": self.already_sorted,
            "failed_categories": dict(self.failed_categories),
            "error": self.error,
            "error_kind": self.error_kind,
        }


__all__ = [
    "Category",
    "CategoryOutcome",
    "CategorySet",
    "ClassificationBatch",
    "FetchedMessage",
    "FolderInfo",
    "Message",
    "RunStage",
    "SortReport",
]
