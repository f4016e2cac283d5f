"""Tests for folder-name normalisation."""

from __future__ import annotations

from inbox_sorter.mailbox.naming import (
    decode_folder_name,
    encode_folder_name,
    folder_key,
    quote_mailbox,
    same_folder,
)


def test_accented_names_round_trip_through_modified_utf7() -> None:
    assert encode_folder_name("Reçus") == "Re&AOc-us"
    assert decode_folder_name("Re&AOc-us") == "Reçus"
    assert decode_folder_name(b"Priorit&AOk-") == "Priorité"


def test_ascii_names_and_ampersands() -> None:
    assert encode_folder_name("Factures") == "Factures"
    assert encode_folder_name("R&D") == "R&-D"
    assert decode_folder_name("R&-D") == "R&D"


def test_encoding_is_not_applied_twice() -> None:
    assert encode_folder_name("Re&AOc-us") == "Re&AOc-us"


def test_same_folder_compares_both_forms_ignoring_case() -> None:
    assert same_folder("factures", "Factures")
    assert same_folder("Reçus", "Re&AOc-us")
    assert same_folder("REÇUS", "Re&AOc-us")
    assert not same_folder("Reçus", "Recus")
    assert folder_key("Re&AOc-us") == "reçus"


def test_quote_mailbox_escapes_specials() -> None:
    assert quote_mailbox("My Folder") == '"My Folder"'
    assert quote_mailbox('a"b\\c') == '"a\\"b\\\\c"'
