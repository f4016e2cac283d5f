"""Tests for the mail session lifecycle."""

from __future__ import annotations

import pytest
from fakes import FakeMailStore

from inbox_sorter.core.errors import MailConnectionError
from inbox_sorter.transport import ImapConnectionLost, ImapError, MailSession
from inbox_sorter.transport.session import SessionState


def test_connect_failure_reports_connection_error() -> None:
    store = FakeMailStore()
    store.fail("connect", ImapError("authentication failed"))
    session = MailSession(store)

    with pytest.raises(MailConnectionError, match="authentication failed"):
        session.connect()

    assert session.state is SessionState.ERROR
    assert not session.is_connected()


def test_client_is_only_available_while_ready() -> None:
    session = MailSession(FakeMailStore(), label="imap")

    with pytest.raises(MailConnectionError, match="disconnected"):
        _ = session.client

    session.connect()
    assert session.client is not None


def test_disconnect_is_idempotent_and_never_raises() -> None:
    store = FakeMailStore()
    store.fail("close", ImapError("logout refused"))
    session = MailSession(store)
    session.connect()

    session.disconnect()
    session.disconnect()

    assert session.state is SessionState.ENDED
    assert store.count("close") == 1


def test_ensure_ready_reconnects_after_dead_noop() -> None:
    store = FakeMailStore()
    store.fail("noop", ImapConnectionLost("socket closed"), times=1)
    session = MailSession(store)
    session.connect()

    session.ensure_ready()

    assert session.is_connected()
    assert store.connect_count == 2


def test_ensure_ready_keeps_healthy_session() -> None:
    store = FakeMailStore()
    session = MailSession(store)
    session.connect()

    session.ensure_ready()

    assert store.connect_count == 1
    assert store.count("noop") == 1


def test_select_replaces_the_open_folder() -> None:
    store = FakeMailStore()
    store.add_folder("INBOX")
    store.add_folder("Factures")
    with MailSession(store) as session:
        session.select("INBOX", readonly=True)
        session.select("Factures", readonly=False)
        assert session.selected_folder == "Factures"

    assert store.selected is None


def test_lost_connection_during_select_marks_session_broken() -> None:
    store = FakeMailStore()
    store.add_folder("INBOX")
    store.fail("select", ImapConnectionLost("reset by peer"))
    session = MailSession(store)
    session.connect()

    with pytest.raises(ImapConnectionLost):
        session.select("INBOX", readonly=True)

    assert session.state is SessionState.ERROR
    assert session.selected_folder is None
