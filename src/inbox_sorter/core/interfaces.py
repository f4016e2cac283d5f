"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from .models import FetchedMessage, FolderInfo, Message


class MailStoreClient(Protocol):
    """Mail store protocol surface the sorting core depends on.

    Folder arguments are wire names (already encoded for the server).
    Message arguments to ``fetch`` are sequence numbers; mutation methods
    take UIDs.
    """

    def connect(self) -> None:
        """Open the transport and authenticate."""
        raise NotImplementedError

    def close(self) -> None:
        """Log out and release the transport."""
        raise NotImplementedError

    def noop(self) -> None:
        """Probe the connection; raise if it is no longer usable."""
        raise NotImplementedError

    def list_folders(self) -> list[FolderInfo]:
        """Return every folder the server reports."""
        raise NotImplementedError

    def select(self, folder: str, *, readonly: bool) -> int:
        """Open ``folder`` and return its message count."""
        raise NotImplementedError

    def search(self, criteria: Sequence[str]) -> list[int]:
        """Return sequence numbers matching ``criteria`` in the open folder."""
        raise NotImplementedError

    def fetch(self, seqs: Sequence[int]) -> Iterable[FetchedMessage]:
        """Yield raw bodies joined with their UIDs."""
        raise NotImplementedError

    def add_flags(self, uids: Sequence[int], flags: Sequence[str]) -> None:
        """Add ``flags`` to the given UIDs in the open folder."""
        raise NotImplementedError

    def copy(self, uids: Sequence[int], destination: str) -> None:
        """Copy UIDs from the open folder into ``destination``."""
        raise NotImplementedError

    def expunge(self) -> None:
        """Permanently remove messages flagged deleted in the open folder."""
        raise NotImplementedError

    def create_folder(self, folder: str) -> None:
        """Create a new folder."""
        raise NotImplementedError


class MessageParserProtocol(Protocol):
    """Minimal protocol implemented by message parsers."""

    def parse(self, fetched: FetchedMessage, folder: str) -> Message:
        """Convert a raw fetch result into a :class:`Message`."""
        raise NotImplementedError


__all__ = ["MailStoreClient", "MessageParserProtocol"]
