"""Tests for the command-line interface."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest
from fakes import FakeMailStore, StubLLM, build_test_orchestrator, make_raw

from inbox_sorter import cli
from inbox_sorter.core.config import AppSettings


@pytest.fixture
def store(monkeypatch: pytest.MonkeyPatch) -> FakeMailStore:
    mail = FakeMailStore()
    mail.add_folder("INBOX")
    mail.add_folder("Factures")
    mail.add_message("INBOX", make_raw("Your invoice"))
    mail.add_message("INBOX", make_raw("Hello"))
    llm = StubLLM({"invoice": "Factures"})
    monkeypatch.setattr(
        cli, "build_orchestrator", lambda _settings: build_test_orchestrator(mail, llm)
    )
    return mail


def _run(*argv: str) -> int:
    args = cli.build_parser().parse_args(list(argv))
    return cli.execute(args, AppSettings())


def test_main_info_exits_cleanly(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["info"])

    assert excinfo.value.code == 0
    assert "Inbox Sorter is ready" in capsys.readouterr().out


def test_sort_prints_summary(
    store: FakeMailStore, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run("sort") == 0

    output = capsys.readouterr().out
    assert "Run completed." in output
    assert "Moved 2 message(s):" in output
    assert store.folders["INBOX"] == []


def test_classify_outputs_json_without_moving(
    store: FakeMailStore, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run("classify", "--folder", "INBOX", "--json") == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["classified"] == {"Factures": 1, "Autre": 1}
    assert payload["moved"] == {}
    assert len(store.folders["INBOX"]) == 2


def test_sort_category_requires_category(
    store: FakeMailStore, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run("sort-category") == 2
    assert "requires --category" in capsys.readouterr().out
    assert store.count("connect") == 0


def test_sort_category_reports_moved_count(
    store: FakeMailStore, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run("sort-category", "--category", "Factures") == 0
    assert "Moved 1 message(s) into 'Factures'." in capsys.readouterr().out
    assert store.subjects("INBOX") == ["Hello"]


def test_non_positive_limit_is_rejected(
    store: FakeMailStore, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run("sort", "--limit", "0") == 2
    assert "--limit must be positive" in capsys.readouterr().out
    assert store.count("connect") == 0


def test_failed_run_exits_non_zero(store: FakeMailStore) -> None:
    store.folders.pop("INBOX")

    assert _run("sort") == 1


def test_digest_prints_todays_messages(
    store: FakeMailStore, capsys: pytest.CaptureFixture[str]
) -> None:
    store.add_message("INBOX", make_raw("Fresh invoice", date=datetime.now(UTC)))

    assert _run("digest") == 0

    output = capsys.readouterr().out
    assert "1 message(s)" in output
    assert "'Fresh invoice'" in output
    assert len(store.folders["INBOX"]) == 3


def test_digest_json_output(
    store: FakeMailStore, capsys: pytest.CaptureFixture[str]
) -> None:
    store.add_message("INBOX", make_raw("Fresh invoice", date=datetime.now(UTC)))

    assert _run("digest", "--all-folders", "--json") == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["digest"]["total"] == 1
    assert payload["digest"]["category_counts"] == {"Factures": 1}
