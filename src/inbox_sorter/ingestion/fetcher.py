"""Message fetching across one or many folders."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, tzinfo

from ..core.datetime_utils import imap_date, local_day, resolve_timezone
from ..core.errors import FetchError, ParseError
from ..core.interfaces import MessageParserProtocol
from ..core.models import FolderInfo, Message
from ..mailbox.naming import decode_folder_name, encode_folder_name
from ..transport.imap_client import ImapError
from ..transport.session import MailSession

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FetchCriteria:
    """Which messages a fetch should return.

    ``since`` becomes a server-side ``SINCE`` bound. ``same_day_only``
    additionally keeps only messages whose date, truncated to midnight in
    the fetcher's time zone, equals ``since`` exactly; servers only filter
    by whole days and may disagree with us about where a day starts.
    """

    only_unread: bool = True
    since: date | None = None
    same_day_only: bool = False
    limit: int | None = None
    readonly: bool = True

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit <= 0:
            raise ValueError("limit must be positive")
        if self.same_day_only and self.since is None:
            raise ValueError("same_day_only requires a since date")

    @classmethod
    def today(
        cls,
        *,
        only_unread: bool = True,
        limit: int | None = None,
        timezone: tzinfo | None = None,
        now: datetime | None = None,
        readonly: bool = True,
    ) -> FetchCriteria:
        """Criteria for messages received today in ``timezone``."""
        zone = timezone or resolve_timezone(None)
        current = now if now is not None else datetime.now(zone)
        return cls(
            only_unread=only_unread,
            since=local_day(current, zone),
            same_day_only=True,
            limit=limit,
            readonly=readonly,
        )

    def search_criteria(self) -> list[str]:
        """Translate into IMAP ``SEARCH`` keys."""
        criteria = ["UNSEEN" if self.only_unread else "ALL"]
        if self.since is not None:
            criteria.extend(["SINCE", imap_date(self.since)])
        return criteria


class MessageFetcher:
    """Retrieve, parse and filter messages from the open session."""

    def __init__(
        self,
        parser: MessageParserProtocol,
        *,
        batch_size: int = 25,
        timezone: tzinfo | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._parser = parser
        self._batch_size = batch_size
        self._timezone = timezone or resolve_timezone(None)

    @property
    def timezone(self) -> tzinfo:
        return self._timezone

    def fetch(
        self, session: MailSession, folder: str, criteria: FetchCriteria
    ) -> list[Message]:
        """Return messages in ``folder`` matching ``criteria``.

        ``folder`` may be given in display or wire form. Selecting or
        searching failures raise :class:`FetchError`; messages that fail to
        parse are logged and left out.
        """
        wire_name = encode_folder_name(folder)
        display_name = decode_folder_name(wire_name)
        try:
            session.select(wire_name, readonly=criteria.readonly)
            seqs = session.client.search(criteria.search_criteria())
        except ImapError as exc:
            session.mark_broken(exc)
            raise FetchError(display_name, str(exc)) from exc

        if not seqs:
            LOGGER.info("No matching messages in %s", display_name)
            return []

        seqs = sorted(seqs)
        if criteria.limit is not None and len(seqs) > criteria.limit:
            LOGGER.debug(
                "Keeping newest %s of %s match(es) in %s",
                criteria.limit,
                len(seqs),
                display_name,
            )
            seqs = seqs[-criteria.limit :]

        messages: list[Message] = []
        for chunk in _chunked(seqs, self._batch_size):
            try:
                fetched = list(session.client.fetch(chunk))
            except ImapError as exc:
                session.mark_broken(exc)
                raise FetchError(display_name, str(exc)) from exc
            for item in fetched:
                try:
                    messages.append(self._parser.parse(item, display_name))
                except ParseError as exc:
                    LOGGER.warning(
                        "Skipping unparseable message in %s: %s", display_name, exc
                    )

        if criteria.same_day_only and criteria.since is not None:
            messages = self._keep_same_day(messages, criteria.since)

        LOGGER.info("Fetched %s message(s) from %s", len(messages), display_name)
        return messages

    def fetch_many(
        self,
        session: MailSession,
        folders: Iterable[FolderInfo | str],
        criteria: FetchCriteria,
    ) -> list[Message]:
        """Fetch from every folder, skipping those that cannot be read."""
        messages: list[Message] = []
        seen: set[tuple[str, int | None]] = set()
        for folder in folders:
            wire_name = folder.wire_name if isinstance(folder, FolderInfo) else folder
            try:
                fetched = self.fetch(session, wire_name, criteria)
            except FetchError as exc:
                LOGGER.warning("Skipping folder %s: %s", exc.folder, exc)
                continue
            for message in fetched:
                if message.uid is not None and message.key in seen:
                    continue
                seen.add(message.key)
                messages.append(message)
        return messages

    def _keep_same_day(self, messages: list[Message], day: date) -> list[Message]:
        kept = []
        for message in messages:
            if message.received_at is None:
                LOGGER.debug("Dropping undated message #%s", message.seq)
                continue
            if local_day(message.received_at, self._timezone) == day:
                kept.append(message)
        if len(kept) != len(messages):
            LOGGER.debug(
                "Day filter kept %s of %s message(s)", len(kept), len(messages)
            )
        return kept


def _chunked(values: Sequence[int], size: int) -> Iterable[list[int]]:
    for start in range(0, len(values), size):
        yield list(values[start : start + size])


__all__ = ["FetchCriteria", "MessageFetcher"]
