"""IMAP transport adapter implementing the mail store protocol surface."""

from __future__ import annotations

import imaplib
import logging
import re
from collections.abc import Callable, Iterable, Iterator, Sequence
from types import TracebackType
from typing import Any

from ..core.config import ImapSettings
from ..core.interfaces import MailStoreClient
from ..core.models import FetchedMessage, FolderInfo
from ..mailbox.naming import decode_folder_name, quote_mailbox

LOGGER = logging.getLogger(__name__)

_FETCH_ITEMS = "(UID BODY.PEEK[])"
_SEQ_PATTERN = re.compile(rb"^\s*(\d+)\s+\(")
_UID_PATTERN = re.compile(rb"\bUID\s+(\d+)", re.IGNORECASE)
_LIST_PATTERN = re.compile(
    rb'^\((?P<flags>[^)]*)\)\s+(?P<delimiter>"(?:[^"\\]|\\.)*"|NIL)\s+(?P<name>.*)$',
    re.IGNORECASE,
)


class ImapError(RuntimeError):
    """Wrap low level IMAP errors with additional context."""


class ImapConnectionLost(ImapError):
    """The server or network dropped the connection mid-command."""


class ImapClient(MailStoreClient):
    """Thin wrapper around ``imaplib`` offering typed helpers."""

    def __init__(self, settings: ImapSettings) -> None:
        """Initialise the client with configuration settings."""
        self._settings = settings
        self._connection: imaplib.IMAP4 | imaplib.IMAP4_SSL | None = None
        self._selected: str | None = None

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> ImapClient:
        """Connect on entering a context manager scope."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure resources are released on context exit."""
        self.close()

    @property
    def selected_folder(self) -> str | None:
        return self._selected

    # Session lifecycle --------------------------------------------------------
    def connect(self) -> None:
        """Establish the IMAP connection and authenticate."""
        if self._connection is not None:
            return

        username = self._settings.username
        password = self._settings.password
        if username is None or password is None:
            raise ImapError("IMAP credentials are not configured")

        timeout = self._settings.connect_timeout_seconds
        try:
            if self._settings.use_ssl:
                LOGGER.debug(
                    "Connecting to IMAP host %s:%s via SSL",
                    self._settings.host,
                    self._settings.port,
                )
                connection: imaplib.IMAP4 | imaplib.IMAP4_SSL = imaplib.IMAP4_SSL(
                    self._settings.host, self._settings.port, timeout=timeout
                )
            else:
                LOGGER.debug(
                    "Connecting to IMAP host %s:%s without SSL",
                    self._settings.host,
                    self._settings.port,
                )
                connection = imaplib.IMAP4(
                    self._settings.host, self._settings.port, timeout=timeout
                )
        except (imaplib.IMAP4.error, OSError) as exc:  # pragma: no cover - network
            raise ImapError(
                f"Failed to connect to IMAP server {self._settings.host}"
            ) from exc

        LOGGER.debug("Authenticating as %s", username)
        try:
            connection.login(username, password)
        except (imaplib.IMAP4.error, OSError) as exc:
            _shutdown_quietly(connection)
            raise ImapError(
                f"Failed to log in to IMAP server {self._settings.host}"
            ) from exc
        self._connection = connection
        self._selected = None

    def close(self) -> None:
        """Terminate the IMAP session cleanly."""
        if self._connection is None:
            return
        connection = self._connection
        self._connection = None
        try:
            if self._selected is not None:
                LOGGER.debug("Closing folder %s", self._selected)
                connection.close()
        except (imaplib.IMAP4.error, OSError):  # pragma: no cover - server state
            LOGGER.debug("IMAP close raised; continuing with logout")
        finally:
            self._selected = None
            try:
                connection.logout()
            except (imaplib.IMAP4.error, OSError):  # pragma: no cover
                LOGGER.debug("IMAP logout raised; suppressing during shutdown")

    def noop(self) -> None:
        """Send NOOP to verify the connection is still alive."""
        self._command("NOOP", lambda conn: conn.noop())

    # Folder operations --------------------------------------------------------
    def list_folders(self) -> list[FolderInfo]:
        """Return all folders reported by ``LIST "" *``."""
        data = self._command("LIST", lambda conn: conn.list())
        folders: list[FolderInfo] = []
        for entry in _join_literals(data):
            folder = parse_list_entry(entry)
            if folder is None:
                LOGGER.debug("Ignoring unparseable LIST entry %r", entry)
                continue
            folders.append(folder)
        return folders

    def select(self, folder: str, *, readonly: bool) -> int:
        """Open ``folder`` and return the number of messages it holds."""
        mode = "read-only" if readonly else "read-write"
        LOGGER.debug("Selecting folder %s (%s)", folder, mode)
        self._selected = None
        data = self._command(
            f"SELECT {folder}",
            lambda conn: conn.select(quote_mailbox(folder), readonly=readonly),
        )
        self._selected = folder
        try:
            return int(data[0]) if data and data[0] else 0
        except (TypeError, ValueError):
            return 0

    def create_folder(self, folder: str) -> None:
        """Create ``folder`` on the server."""
        LOGGER.debug("Creating folder %s", folder)
        self._command(
            f"CREATE {folder}", lambda conn: conn.create(quote_mailbox(folder))
        )

    # Message operations -------------------------------------------------------
    def search(self, criteria: Sequence[str]) -> list[int]:
        """Return sequence numbers matching ``criteria`` in the open folder."""
        self._require_selected()
        LOGGER.debug("Searching with criteria %s", " ".join(criteria))
        data = self._command(
            "SEARCH", lambda conn: conn.search(None, *criteria)
        )
        raw_ids = data[0].split() if data and data[0] else []
        return [int(raw) for raw in raw_ids]

    def fetch(self, seqs: Sequence[int]) -> Iterable[FetchedMessage]:
        """Fetch full bodies plus UIDs for the given sequence numbers."""
        self._require_selected()
        if not seqs:
            return []
        message_set = ",".join(str(seq) for seq in seqs)
        LOGGER.debug("Fetching %s message(s)", len(seqs))
        data = self._command(
            "FETCH", lambda conn: conn.fetch(message_set, _FETCH_ITEMS)
        )
        assembler = FetchAssembler()
        assembler.feed(data)
        return list(assembler.completed(expected=seqs))

    def add_flags(self, uids: Sequence[int], flags: Sequence[str]) -> None:
        """Add ``flags`` to the given UIDs in the open folder."""
        self._require_selected()
        uid_set = _uid_set(uids)
        flag_list = f"({' '.join(flags)})"
        LOGGER.debug("Adding flags %s to UIDs %s", flag_list, uid_set)
        self._command(
            "UID STORE",
            lambda conn: conn.uid("STORE", uid_set, "+FLAGS.SILENT", flag_list),
        )

    def copy(self, uids: Sequence[int], destination: str) -> None:
        """Copy UIDs from the open folder into ``destination``."""
        self._require_selected()
        uid_set = _uid_set(uids)
        LOGGER.debug("Copying UIDs %s to %s", uid_set, destination)
        self._command(
            "UID COPY",
            lambda conn: conn.uid("COPY", uid_set, quote_mailbox(destination)),
        )

    def expunge(self) -> None:
        """Remove messages flagged ``\\Deleted`` from the open folder."""
        self._require_selected()
        LOGGER.debug("Expunging %s", self._selected)
        self._command("EXPUNGE", lambda conn: conn.expunge())

    # Internal helpers ---------------------------------------------------------
    def _require_connection(self) -> imaplib.IMAP4 | imaplib.IMAP4_SSL:
        if self._connection is None:
            raise ImapError("IMAP connection has not been established")
        return self._connection

    def _require_selected(self) -> None:
        if self._selected is None:
            raise ImapError("No folder is selected")

    def _command(
        self,
        label: str,
        call: Callable[[imaplib.IMAP4], tuple[str, list[Any]]],
    ) -> list[Any]:
        connection = self._require_connection()
        try:
            status, data = call(connection)
        except imaplib.IMAP4.readonly as exc:
            raise ImapError(f"{label} refused, folder became read-only: {exc}") from exc
        except imaplib.IMAP4.abort as exc:
            raise ImapConnectionLost(f"{label} aborted: {exc}") from exc
        except OSError as exc:
            raise ImapConnectionLost(f"{label} failed on the socket: {exc}") from exc
        except imaplib.IMAP4.error as exc:
            raise ImapError(f"{label} rejected: {exc}") from exc
        if status != "OK":
            raise ImapError(f"{label} returned {status}: {_describe(data)}")
        return data


class FetchAssembler:
    """Join per-message FETCH attributes and bodies into complete results.

    A server may return ``UID`` before or after the body literal, or in a
    separate untagged response altogether, so the UID and the body for a
    sequence number are collected independently and paired at the end.
    """

    def __init__(self) -> None:
        self._uids: dict[int, int] = {}
        self._bodies: dict[int, bytes] = {}
        self._order: list[int] = []

    def feed(self, data: Sequence[tuple[bytes, bytes] | bytes | None]) -> None:
        current: int | None = None
        for entry in data:
            if isinstance(entry, tuple) and len(entry) == 2:
                header, payload = entry
                seq = _match_seq(header)
                if seq is None:
                    continue
                current = seq
                self._note(seq)
                self._bodies[seq] = payload
                self._capture_uid(seq, header)
            elif isinstance(entry, bytes):
                seq = _match_seq(entry)
                if seq is not None:
                    current = seq
                    self._note(seq)
                    self._capture_uid(seq, entry)
                elif current is not None:
                    # Trailing attributes of the preceding literal, e.g. b" UID 7)".
                    self._capture_uid(current, entry)

    def completed(self, expected: Sequence[int] = ()) -> Iterator[FetchedMessage]:
        wanted = set(expected)
        for seq in self._order:
            raw = self._bodies.get(seq)
            if raw is None:
                # Unsolicited FETCH (flag updates) carry no body.
                if seq in wanted:
                    LOGGER.warning("No body returned for message #%s", seq)
                continue
            uid = self._uids.get(seq)
            if uid is None:
                LOGGER.warning("No UID returned for message #%s", seq)
            yield FetchedMessage(seq=seq, uid=uid, raw=raw)
        missing = [seq for seq in expected if seq not in self._order]
        if missing:
            LOGGER.warning("Server returned nothing for message(s) %s", missing)

    def _note(self, seq: int) -> None:
        if seq not in self._order:
            self._order.append(seq)

    def _capture_uid(self, seq: int, chunk: bytes) -> None:
        match = _UID_PATTERN.search(chunk)
        if match:
            self._uids[seq] = int(match.group(1))


def parse_list_entry(entry: bytes | str) -> FolderInfo | None:
    """Parse one ``LIST`` response line into a :class:`FolderInfo`."""
    if isinstance(entry, str):
        entry = entry.encode("utf-8")
    match = _LIST_PATTERN.match(entry.strip())
    if match is None:
        return None
    flags = tuple(
        flag.decode("ascii", errors="replace")
        for flag in match.group("flags").split()
    )
    raw_delimiter = match.group("delimiter")
    delimiter = None
    if raw_delimiter.upper() != b"NIL":
        unescaped = raw_delimiter[1:-1].replace(b"\\\\", b"\\")
        delimiter = unescaped.decode("ascii", errors="replace")
    raw_name = match.group("name").strip()
    if raw_name.startswith(b'"') and raw_name.endswith(b'"') and len(raw_name) >= 2:
        raw_name = raw_name[1:-1].replace(b'\\"', b'"').replace(b"\\\\", b"\\")
    try:
        wire_name = raw_name.decode("utf-8")
    except UnicodeDecodeError:
        wire_name = raw_name.decode("latin-1")
    return FolderInfo(
        name=decode_folder_name(wire_name),
        wire_name=wire_name,
        delimiter=delimiter,
        flags=flags,
    )


def _join_literals(
    data: Sequence[tuple[bytes, bytes] | bytes | None],
) -> Iterator[bytes]:
    """Flatten LIST data where names arrive as ``{n}`` literals."""
    for entry in data:
        if entry is None:
            continue
        if isinstance(entry, tuple):
            header, literal = entry
            prefix = re.sub(rb"\{\d+\}\s*$", b"", header)
            escaped = literal.replace(b"\\", b"\\\\").replace(b'"', b'\\"')
            yield prefix + b'"' + escaped + b'"'
        else:
            yield entry


def _match_seq(chunk: bytes) -> int | None:
    match = _SEQ_PATTERN.match(chunk)
    return int(match.group(1)) if match else None


def _uid_set(uids: Sequence[int]) -> str:
    if not uids:
        raise ImapError("No UIDs supplied")
    return ",".join(str(uid) for uid in uids)


def _shutdown_quietly(connection: imaplib.IMAP4) -> None:
    try:
        connection.shutdown()
    except OSError:  # pragma: no cover - socket already gone
        LOGGER.debug("IMAP socket shutdown raised after failed login")


def _describe(data: object) -> str:
    if isinstance(data, list) and data:
        first = data[0]
        if isinstance(first, bytes):
            return first.decode("utf-8", errors="replace")
    return repr(data)


__all__ = [
    "FetchAssembler",
    "ImapClient",
    "ImapConnectionLost",
    "ImapError",
    "parse_list_entry",
]
