"""Explicit lifecycle handle for one mail store connection."""

from __future__ import annotations

import logging
from enum import Enum
from types import TracebackType

from ..core.errors import MailConnectionError
from ..core.interfaces import MailStoreClient
from .imap_client import ImapConnectionLost, ImapError

LOGGER = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Connection states a :class:`MailSession` moves through."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"
    ENDED = "ended"


class MailSession:
    """Single-owner handle over a :class:`MailStoreClient`.

    Components receive the session explicitly instead of sharing a module
    level connection, so two runs never interleave commands on one socket.
    Only one folder is open at a time; selecting a folder replaces the
    previous one.
    """

    def __init__(self, client: MailStoreClient, *, label: str = "mail") -> None:
        self._client = client
        self._label = label
        self._state = SessionState.DISCONNECTED
        self._selected: tuple[str, bool] | None = None

    def __enter__(self) -> MailSession:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disconnect()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def client(self) -> MailStoreClient:
        """Return the underlying client; only valid while ``READY``."""
        if self._state is not SessionState.READY:
            raise MailConnectionError(
                f"{self._label} session is {self._state.value}, not ready"
            )
        return self._client

    @property
    def selected_folder(self) -> str | None:
        return self._selected[0] if self._selected else None

    def is_connected(self) -> bool:
        return self._state is SessionState.READY

    def connect(self) -> None:
        """Open and authenticate the connection."""
        if self._state is SessionState.READY:
            return
        self._state = SessionState.CONNECTING
        self._selected = None
        try:
            self._client.connect()
        except (ImapError, OSError) as exc:
            self._state = SessionState.ERROR
            LOGGER.error("Could not open %s session: %s", self._label, exc)
            raise MailConnectionError(
                f"Could not open {self._label} session: {exc}"
            ) from exc
        self._state = SessionState.READY
        LOGGER.info("%s session ready", self._label.capitalize())

    def disconnect(self) -> None:
        """Close the connection; never raises."""
        if self._state in (SessionState.DISCONNECTED, SessionState.ENDED):
            return
        try:
            self._client.close()
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning(
                "Ignoring error while closing %s session: %s", self._label, exc
            )
        finally:
            self._state = SessionState.ENDED
            self._selected = None
        LOGGER.debug("%s session ended", self._label.capitalize())

    def ensure_ready(self) -> None:
        """Reconnect when the session is not ready or no longer answers."""
        if self._state is SessionState.READY:
            try:
                self._client.noop()
                return
            except ImapError as exc:
                LOGGER.warning(
                    "%s session went stale (%s); reconnecting",
                    self._label.capitalize(),
                    exc,
                )
                self.mark_broken(exc)
        if self._state is not SessionState.DISCONNECTED:
            self.disconnect()
        self.connect()

    def select(self, folder: str, *, readonly: bool) -> int:
        """Open ``folder`` (wire name), replacing whichever folder was open."""
        client = self.client
        self._selected = None
        try:
            count = client.select(folder, readonly=readonly)
        except ImapError as exc:
            self.mark_broken(exc)
            raise
        self._selected = (folder, readonly)
        return count

    def mark_broken(self, exc: BaseException) -> None:
        """Record a transport failure so the next ``ensure_ready`` reconnects."""
        if isinstance(exc, (ImapConnectionLost, OSError)):
            self._state = SessionState.ERROR
            self._selected = None


__all__ = ["MailSession", "SessionState"]
