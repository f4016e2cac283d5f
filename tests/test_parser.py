"""Tests for RFC822 parsing into messages."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from pathlib import Path

import pytest
from fakes import make_raw

from inbox_sorter.core.errors import ParseError
from inbox_sorter.core.models import FetchedMessage
from inbox_sorter.ingestion import MessageParser
from inbox_sorter.ingestion.parser import html_to_text

FIXTURE_PATH = Path(__file__).parent / "fixtures" / "invoice_email.eml"


def test_message_parser_extracts_headers_and_plain_body() -> None:
    payload = FIXTURE_PATH.read_bytes()
    parser = MessageParser()

    message = parser.parse(FetchedMessage(seq=3, uid=101, raw=payload), "INBOX")

    assert message.seq == 3
    assert message.uid == 101
    assert message.folder_path == "INBOX"
    assert message.subject == "Votre facture n° 2026-042"
    assert message.sender == "Société Générale <factures@example.fr>"
    assert message.to == "Alice <alice@example.com>, bob@example.com"
    assert message.received_at == datetime(
        2026, 10, 18, 8, 15, tzinfo=timezone(timedelta(hours=2))
    )
    assert "1.234,56 EUR" in message.body_text
    assert "Échéance" in message.body_text
    assert "<b>" not in message.body_text
    assert message.assigned_category is None


def test_html_only_message_is_converted_to_text() -> None:
    email = EmailMessage()
    email["From"] = "news@example.com"
    email["Subject"] = "Newsletter"
    email.set_content(
        "<html><head><style>p {color: red}</style></head>"
        "<body><p>Hello there</p><p>Second &amp; last</p></body></html>",
        subtype="html",
    )

    message = MessageParser().parse(
        FetchedMessage(seq=1, uid=1, raw=email.as_bytes()), "INBOX"
    )

    assert message.body_text == "Hello there\nSecond & last"
    assert message.received_at is None


def test_html_to_text_drops_scripts_and_keeps_breaks() -> None:
    markup = "<div>One<br>Two</div><script>alert('x')</script><li>Three</li>"
    assert html_to_text(markup) == "One\nTwo\nThree"


def test_missing_uid_is_preserved() -> None:
    message = MessageParser().parse(
        FetchedMessage(seq=9, uid=None, raw=make_raw("No uid")), "Travail"
    )
    assert message.uid is None
    assert message.key == ("Travail", None)


def test_unparseable_date_becomes_none() -> None:
    raw = re.sub(rb"Date: [^\r\n]+", b"Date: someday soon", make_raw("Bad date"))
    message = MessageParser().parse(FetchedMessage(seq=1, uid=1, raw=raw), "INBOX")
    assert message.received_at is None


@pytest.mark.parametrize("raw", [b"", b"   \r\n"])
def test_empty_payload_raises_parse_error(raw: bytes) -> None:
    with pytest.raises(ParseError) as excinfo:
        MessageParser().parse(FetchedMessage(seq=4, uid=40, raw=raw), "INBOX")
    assert excinfo.value.seq == 4
