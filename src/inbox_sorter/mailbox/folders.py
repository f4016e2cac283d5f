"""Folder listing, category derivation and lazy folder creation."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from ..core.config import CategorySource
from ..core.errors import FolderCreationError, FolderListError
from ..core.models import CategorySet, FolderInfo
from ..transport.imap_client import ImapError
from ..transport.session import MailSession
from .naming import encode_folder_name, same_folder

LOGGER = logging.getLogger(__name__)

INBOX = "INBOX"
SYSTEM_PREFIX = "["


def is_category_candidate(folder: FolderInfo | str) -> bool:
    """Whether a folder may double as a classification category.

    The inbox and bracketed system namespaces such as ``[Gmail]`` never
    qualify, whatever order the server lists them in.
    """
    if isinstance(folder, FolderInfo):
        if not folder.selectable:
            return False
        name = folder.name
    else:
        name = folder
    stripped = name.strip()
    if not stripped:
        return False
    if stripped.upper() == INBOX:
        return False
    return not stripped.startswith(SYSTEM_PREFIX)


class FolderDirectory:
    """Enumerate folders and turn them into a category taxonomy."""

    def __init__(
        self,
        *,
        fallback_category: str = "Autre",
        category_source: CategorySource = CategorySource.FOLDERS,
        fixed_categories: Sequence[str] = (),
    ) -> None:
        if not fallback_category.strip():
            raise ValueError("fallback_category must not be blank")
        if category_source is CategorySource.FIXED and not fixed_categories:
            LOGGER.warning("Fixed category source configured without categories")
        self._fallback = fallback_category.strip()
        self._source = category_source
        self._fixed = tuple(fixed_categories)

    @property
    def fallback_category(self) -> str:
        return self._fallback

    def list_folders(self, session: MailSession) -> list[FolderInfo]:
        """Return every folder on the server."""
        try:
            folders = session.client.list_folders()
        except ImapError as exc:
            session.mark_broken(exc)
            raise FolderListError(f"Folder listing rejected: {exc}") from exc
        LOGGER.debug("Server reported %s folder(s)", len(folders))
        return folders

    def selectable_folders(self, session: MailSession) -> list[FolderInfo]:
        """Folders that can be opened for fetching."""
        return [
            folder for folder in self.list_folders(session) if folder.selectable
        ]

    def build_categories(self, session: MailSession) -> CategorySet:
        """Derive this run's categories; degrade to the fallback on errors."""
        if self._source is CategorySource.FIXED:
            names = [name for name in self._fixed if is_category_candidate(name)]
            return CategorySet(names, self._fallback)

        try:
            folders = self.list_folders(session)
        except FolderListError as exc:
            LOGGER.warning(
                "Could not list folders, sorting into '%s' only: %s",
                self._fallback,
                exc,
            )
            return CategorySet((), self._fallback)

        categories = CategorySet(
            (folder.name for folder in folders if is_category_candidate(folder)),
            self._fallback,
        )
        LOGGER.info("Categories for this run: %s", ", ".join(categories.names()))
        return categories

    def ensure_folder_exists(
        self,
        session: MailSession,
        name: str,
        *,
        known: Iterable[FolderInfo] | None = None,
    ) -> str:
        """Return the wire name of folder ``name``, creating it when missing.

        Existing folders are matched ignoring case and under both display
        and encoded spellings; the server's own wire name is reused for a
        match.
        """
        folders = list(known) if known is not None else self.list_folders(session)
        wire_name = encode_folder_name(name)
        for folder in folders:
            if same_folder(folder.name, name) or same_folder(
                folder.wire_name, wire_name
            ):
                LOGGER.debug("Folder '%s' exists as '%s'", name, folder.wire_name)
                return folder.wire_name

        LOGGER.info("Creating folder '%s' (wire name '%s')", name, wire_name)
        try:
            session.client.create_folder(wire_name)
        except ImapError as exc:
            session.mark_broken(exc)
            raise FolderCreationError(name, str(exc)) from exc
        return wire_name


__all__ = ["FolderDirectory", "INBOX", "is_category_candidate"]
