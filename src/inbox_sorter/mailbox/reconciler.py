"""Relocate classified messages into their category folders."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from ..core.errors import (
    FolderCreationError,
    FolderListError,
    InvalidMessageError,
    MailConnectionError,
    ReconciliationError,
)
from ..core.models import CategoryOutcome, ClassificationBatch, FolderInfo, Message
from ..transport.imap_client import ImapError
from ..transport.session import MailSession
from .folders import FolderDirectory
from .naming import encode_folder_name, same_folder

LOGGER = logging.getLogger(__name__)

SEEN = "\\Seen"
DELETED = "\\Deleted"


class FolderReconciler:
    """Move each category's messages into the folder of the same name.

    Every category is a bulkhead: a failure while relocating one category
    is recorded on its outcome and the next category is attempted. Within
    a category and source folder the steps are strictly sequential and
    ``EXPUNGE`` only runs once ``COPY`` has been acknowledged.
    """

    def __init__(self, directory: FolderDirectory) -> None:
        self._directory = directory

    def reconcile(
        self,
        session: MailSession,
        batch: ClassificationBatch,
        outcomes: dict[str, CategoryOutcome] | None = None,
    ) -> dict[str, CategoryOutcome]:
        """Relocate every category in ``batch`` and report per category.

        Outcomes are written into ``outcomes`` as categories are handled.
        When the session is lost and cannot be reopened, the remaining
        categories are marked as not attempted and
        :class:`MailConnectionError` is raised; whatever was recorded so far
        stays in ``outcomes``.
        """
        if outcomes is None:
            outcomes = {}
        if len(batch) == 0:
            return outcomes

        # Classification may have outlived the server's idle timeout.
        session.ensure_ready()
        known = self._snapshot_folders(session)

        pending = list(batch.items())
        for index, (category, messages) in enumerate(pending):
            outcome = CategoryOutcome(category=category)
            outcomes[category] = outcome
            movable = self._drop_without_uid(messages, outcome)
            if not movable:
                continue
            try:
                if not session.is_connected():
                    session.ensure_ready()
                self._reconcile_category(session, category, movable, known, outcome)
            except MailConnectionError as exc:
                LOGGER.error("Mail session lost while sorting '%s': %s", category, exc)
                outcome.error = str(exc)
                for later_category, later_messages in pending[index + 1 :]:
                    outcomes[later_category] = CategoryOutcome(
                        category=later_category,
                        error=f"not attempted: {exc}",
                    )
                    LOGGER.error(
                        "Category '%s' (%s UID(s)) not attempted",
                        later_category,
                        len(later_messages),
                    )
                raise
            except ReconciliationError as exc:
                LOGGER.error("Relocation failed: %s", exc)
                outcome.error = str(exc)
        return outcomes

    def _reconcile_category(
        self,
        session: MailSession,
        category: str,
        messages: Sequence[Message],
        known: list[FolderInfo] | None,
        outcome: CategoryOutcome,
    ) -> None:
        try:
            destination = self._directory.ensure_folder_exists(
                session, category, known=known
            )
        except FolderListError as exc:
            raise ReconciliationError(
                category, len(messages), "list-folders", str(exc)
            ) from exc
        except FolderCreationError as exc:
            raise ReconciliationError(
                category, len(messages), exc.step, str(exc.__cause__ or exc)
            ) from exc
        if known is not None and not any(
            folder.wire_name == destination for folder in known
        ):
            known.append(FolderInfo(name=category, wire_name=destination))

        for source, group in _group_by_source(messages):
            if same_folder(source, category):
                LOGGER.debug("%s message(s) already in '%s'", len(group), category)
                outcome.already_sorted += len(group)
                continue
            source_folder = _find_folder(known, source)
            if source_folder is not None and source_folder.virtual:
                LOGGER.warning(
                    "Not moving %s message(s) out of virtual folder %s",
                    len(group),
                    source,
                )
                outcome.skipped_virtual += len(group)
                continue
            source_wire = (
                source_folder.wire_name
                if source_folder is not None
                else encode_folder_name(source)
            )
            uids = [message.uid for message in group if message.uid is not None]
            self._relocate(session, category, source_wire, destination, uids)
            outcome.moved += len(uids)
            LOGGER.info(
                "Moved %s message(s) from %s to '%s'", len(uids), source, category
            )

    def _relocate(
        self,
        session: MailSession,
        category: str,
        source: str,
        destination: str,
        uids: list[int],
    ) -> None:
        step = "select"
        try:
            session.select(source, readonly=False)
            client = session.client
            step = "mark-seen"
            client.add_flags(uids, [SEEN])
            step = "copy"
            client.copy(uids, destination)
            step = "mark-deleted"
            client.add_flags(uids, [DELETED])
            step = "expunge"
            client.expunge()
        except ImapError as exc:
            session.mark_broken(exc)
            raise ReconciliationError(category, len(uids), step, str(exc)) from exc

    def _snapshot_folders(self, session: MailSession) -> list[FolderInfo] | None:
        try:
            return self._directory.list_folders(session)
        except FolderListError as exc:
            LOGGER.warning("Folder snapshot unavailable before moving: %s", exc)
            return None

    @staticmethod
    def _drop_without_uid(
        messages: Sequence[Message], outcome: CategoryOutcome
    ) -> list[Message]:
        kept = []
        for message in messages:
            if message.uid is None:
                skipped = InvalidMessageError(message.seq, message.folder_path)
                LOGGER.warning("Not moving %s", skipped)
                outcome.skipped_uids += 1
                continue
            kept.append(message)
        return kept


def _group_by_source(
    messages: Sequence[Message],
) -> list[tuple[str, list[Message]]]:
    groups: dict[str, list[Message]] = {}
    for message in messages:
        groups.setdefault(message.folder_path, []).append(message)
    return list(groups.items())


def _find_folder(known: list[FolderInfo] | None, name: str) -> FolderInfo | None:
    for folder in known or ():
        if same_folder(folder.name, name) or same_folder(folder.wire_name, name):
            return folder
    return None


__all__ = ["DELETED", "FolderReconciler", "SEEN"]
