"""Error taxonomy for sorting runs.

Only :class:`MailConnectionError` is fatal to a run. Every other error kind
is recovered close to where it happens: a folder is skipped, a message is
dropped, a category falls back, or one category batch is abandoned while
the rest of the run carries on.
"""

from __future__ import annotations


class InboxSorterError(RuntimeError):
    """Base class for all sorting errors."""


class MailConnectionError(InboxSorterError):
    """The mail session could not be established or was lost."""


class FolderListError(InboxSorterError):
    """The server refused to enumerate folders."""


class FetchError(InboxSorterError):
    """Opening or searching a folder failed."""

    def __init__(self, folder: str, message: str) -> None:
        super().__init__(f"{folder}: {message}")
        self.folder = folder


class ParseError(InboxSorterError):
    """A fetched message could not be turned into a :class:`Message`."""

    def __init__(self, seq: int, message: str) -> None:
        super().__init__(f"message #{seq}: {message}")
        self.seq = seq


class ClassificationError(InboxSorterError):
    """The classifier produced no usable label."""


class ReconciliationError(InboxSorterError):
    """Relocating one category batch failed at some protocol step."""

    def __init__(
        self, category: str, uid_count: int, step: str, message: str
    ) -> None:
        super().__init__(
            f"category '{category}' ({uid_count} UID(s)) failed at {step}: {message}"
        )
        self.category = category
        self.uid_count = uid_count
        self.step = step


class FolderCreationError(ReconciliationError):
    """A destination folder was missing and could not be created."""

    def __init__(self, folder: str, message: str) -> None:
        super().__init__(folder, 0, "create-folder", message)
        self.folder = folder


class InvalidMessageError(InboxSorterError):
    """A message cannot be mutated because it carries no UID."""

    def __init__(self, seq: int, folder: str) -> None:
        super().__init__(f"message #{seq} in {folder} has no UID")
        self.seq = seq
        self.folder = folder


__all__ = [
    "ClassificationError",
    "FetchError",
    "FolderCreationError",
    "FolderListError",
    "InboxSorterError",
    "InvalidMessageError",
    "MailConnectionError",
    "ParseError",
    "ReconciliationError",
]
