"""Tests for the IMAP transport adapter."""

# pylint: disable=protected-access

from __future__ import annotations

import imaplib
from unittest.mock import MagicMock

import pytest

from inbox_sorter.core.config import ImapSettings
from inbox_sorter.transport import ImapClient, ImapConnectionLost, ImapError
from inbox_sorter.transport.imap_client import FetchAssembler, parse_list_entry


def _client_with(mock_connection: MagicMock) -> ImapClient:
    settings = ImapSettings(
        host="imap.test",
        port=993,
        username="user",
        password="password",
        use_ssl=False,
    )
    client = ImapClient(settings)
    client._connection = mock_connection  # type: ignore[attr-defined]
    return client


def test_list_folders_parses_flags_delimiters_and_literals() -> None:
    mock_connection = MagicMock()
    mock_connection.list.return_value = (
        "OK",
        [
            b'(\\HasNoChildren) "/" "INBOX"',
            b'(\\HasChildren \\Noselect) "/" "[Gmail]"',
            b'(\\All \\HasNoChildren) "/" "[Gmail]/All Mail"',
            b'(\\HasNoChildren) "/" Re&AOc-us',
            (b'(\\HasNoChildren) "/" {8}', b"Factures"),
            b"",
        ],
    )
    client = _client_with(mock_connection)

    folders = client.list_folders()

    assert [folder.name for folder in folders] == [
        "INBOX",
        "[Gmail]",
        "[Gmail]/All Mail",
        "Reçus",
        "Factures",
    ]
    assert folders[1].selectable is False
    assert folders[2].virtual is True
    assert folders[3].wire_name == "Re&AOc-us"
    assert folders[0].delimiter == "/"


def test_parse_list_entry_handles_nil_delimiter_and_garbage() -> None:
    folder = parse_list_entry('(\\Noinferiors) NIL "Archive"')
    assert folder is not None
    assert folder.delimiter is None
    assert folder.name == "Archive"
    assert parse_list_entry(b"not a list line") is None


def test_fetch_joins_uid_and_body_in_either_order() -> None:
    mock_connection = MagicMock()
    mock_connection.select.return_value = ("OK", [b"2"])
    mock_connection.fetch.return_value = (
        "OK",
        [
            (b"1 (UID 11 BODY[] {5}", b"first"),
            b")",
            (b"2 (BODY[] {6}", b"second"),
            b" UID 12)",
        ],
    )
    client = _client_with(mock_connection)
    client.select("INBOX", readonly=True)

    fetched = list(client.fetch([1, 2]))

    assert [(item.seq, item.uid, item.raw) for item in fetched] == [
        (1, 11, b"first"),
        (2, 12, b"second"),
    ]
    mock_connection.fetch.assert_called_once_with("1,2", "(UID BODY.PEEK[])")
    mock_connection.select.assert_called_once_with('"INBOX"', readonly=True)


def test_fetch_assembler_ignores_unsolicited_flag_updates() -> None:
    assembler = FetchAssembler()
    assembler.feed(
        [
            b"7 (FLAGS (\\Seen))",
            (b"3 (UID 30 BODY[] {4}", b"body"),
            b")",
        ]
    )

    completed = list(assembler.completed(expected=[3]))

    assert [(item.seq, item.uid) for item in completed] == [(3, 30)]


def test_fetch_assembler_keeps_messages_missing_uid() -> None:
    assembler = FetchAssembler()
    assembler.feed([(b"4 (BODY[] {4}", b"body"), b")"])

    completed = list(assembler.completed(expected=[4]))

    assert completed[0].uid is None


def test_mutations_use_uid_commands_and_quoted_destination() -> None:
    mock_connection = MagicMock()
    mock_connection.select.return_value = ("OK", [b"3"])
    mock_connection.uid.return_value = ("OK", [None])
    mock_connection.expunge.return_value = ("OK", [None])
    client = _client_with(mock_connection)

    client.select("INBOX", readonly=False)
    client.add_flags([5, 6], ["\\Seen"])
    client.copy([5, 6], "Re&AOc-us")
    client.expunge()

    mock_connection.uid.assert_any_call("STORE", "5,6", "+FLAGS.SILENT", "(\\Seen)")
    mock_connection.uid.assert_any_call("COPY", "5,6", '"Re&AOc-us"')
    mock_connection.expunge.assert_called_once_with()


def test_non_ok_status_raises_imap_error() -> None:
    mock_connection = MagicMock()
    mock_connection.select.return_value = ("OK", [b"1"])
    mock_connection.uid.return_value = ("NO", [b"[TRYCREATE] Mailbox doesn't exist"])
    client = _client_with(mock_connection)
    client.select("INBOX", readonly=False)

    with pytest.raises(ImapError, match="TRYCREATE"):
        client.copy([1], "Missing")


def test_aborted_command_is_reported_as_connection_lost() -> None:
    mock_connection = MagicMock()
    mock_connection.noop.side_effect = imaplib.IMAP4.abort("socket closed")
    client = _client_with(mock_connection)

    with pytest.raises(ImapConnectionLost):
        client.noop()


def test_commands_require_a_selected_folder() -> None:
    client = _client_with(MagicMock())

    with pytest.raises(ImapError, match="No folder is selected"):
        client.search(["UNSEEN"])


def test_close_logs_out_even_when_close_fails() -> None:
    mock_connection = MagicMock()
    mock_connection.select.return_value = ("OK", [b"1"])
    mock_connection.close.side_effect = imaplib.IMAP4.error("no mailbox")
    client = _client_with(mock_connection)
    client.select("INBOX", readonly=True)

    client.close()

    mock_connection.logout.assert_called_once_with()
    assert client.selected_folder is None


def test_failed_login_shuts_the_socket_down(monkeypatch: pytest.MonkeyPatch) -> None:
    mock_connection = MagicMock()
    mock_connection.login.side_effect = imaplib.IMAP4.error("AUTHENTICATIONFAILED")
    factory = MagicMock(return_value=mock_connection)
    factory.error = imaplib.IMAP4.error
    monkeypatch.setattr(imaplib, "IMAP4", factory)
    client = ImapClient(
        ImapSettings(host="imap.test", username="user", password="bad", use_ssl=False)
    )

    with pytest.raises(ImapError, match="log in"):
        client.connect()

    mock_connection.shutdown.assert_called_once_with()
    mock_connection.logout.assert_not_called()
