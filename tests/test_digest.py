"""Tests for the daily mail digest."""

from __future__ import annotations

from datetime import date

import pytest
from fakes import StubLLM

from inbox_sorter.core.models import Message
from inbox_sorter.intelligence import DigestBuilder
from inbox_sorter.intelligence.digest import (
    EMPTY_OVERVIEW,
    Priority,
    parse_summary_output,
)

DAY = date(2026, 10, 18)


def _message(
    subject: str,
    body: str = "Hello",
    *,
    uid: int = 1,
    category: str | None = "Autre",
) -> Message:
    return Message(
        seq=uid,
        uid=uid,
        sender="Acme <billing@acme.test>",
        to="me@example.com",
        subject=subject,
        received_at=None,
        body_text=body,
        folder_path="INBOX",
        assigned_category=category,
    )


def test_summary_uses_the_model_answer() -> None:
    llm = StubLLM(
        json_answer=(
            '{"summary": " Invoice F-12 is due. ", "priority": "HIGH", '
            '"actionRequired": true, "actionItems": ["Pay  by Friday", " "]}'
        )
    )

    entry = DigestBuilder(llm).summarize(_message("Invoice F-12", category="Factures"))

    assert entry.summary == "Invoice F-12 is due."
    assert entry.priority is Priority.HIGH
    assert entry.action_required
    assert entry.action_items == ("Pay by Friday",)
    assert not entry.used_fallback
    assert entry.category == "Factures"
    assert llm.calls[0]["json_output"] is True
    assert llm.calls[0]["max_tokens"] == 300
    assert "Category: Factures" in llm.prompts[0]


def test_build_counts_categories_and_asks_for_an_overview() -> None:
    llm = StubLLM(
        default="Quiet day with one invoice.",
        json_answer='{"summary": "Short.", "action_items": ["Reply to this email"]}',
    )
    messages = [
        _message("Invoice", uid=1, category="Factures"),
        _message("Lunch", uid=2),
        _message("Newsletter", uid=3),
    ]

    digest = DigestBuilder(llm, max_action_items=2).build(messages, day=DAY)

    assert digest.total == 3
    assert digest.category_counts == {"Factures": 1, "Autre": 2}
    assert digest.action_required_count == 3
    assert digest.action_items == [
        "Invoice: Reply to this email",
        "Lunch: Reply to this email",
    ]
    assert digest.overview == "Quiet day with one invoice."
    assert not digest.overview_fallback
    overview_prompt = llm.prompts[-1]
    assert "received on 18/10/2026" in overview_prompt
    assert "Subject: Newsletter" in overview_prompt


def test_failures_fall_back_to_deterministic_text() -> None:
    llm = StubLLM(error_on=("invoice",))
    message = _message(
        "URGENT invoice",
        "Please pay before Friday.\n\nThanks",
        category="Factures",
    )

    digest = DigestBuilder(llm).build([message], day=DAY)

    entry = digest.messages[0]
    assert entry.used_fallback
    assert entry.priority is Priority.HIGH
    assert entry.summary == "URGENT invoice Please pay before Friday. Thanks"
    assert entry.action_items == ("Please pay before Friday.",)
    assert digest.overview_fallback
    assert digest.overview.splitlines() == [
        "1 message(s) received on 2026-10-18.",
        "By category: Factures (1).",
        "High priority: URGENT invoice.",
        "Actions:",
        "- URGENT invoice: Please pay before Friday.",
    ]
    assert digest.to_dict()["top_priority"][0]["subject"] == "URGENT invoice"


def test_plain_answer_is_not_a_summary() -> None:
    llm = StubLLM(default="Sure, here is a summary")

    entry = DigestBuilder(llm).summarize(_message("Hello there", "See you soon"))

    assert entry.used_fallback
    assert entry.priority is Priority.LOW
    assert not entry.action_required


def test_empty_day_skips_the_model() -> None:
    llm = StubLLM()

    digest = DigestBuilder(llm).build([], day=DAY)

    assert digest.overview == EMPTY_OVERVIEW
    assert digest.to_dict()["total"] == 0
    assert llm.prompts == []


def test_without_a_model_everything_is_deterministic() -> None:
    digest = DigestBuilder(None).build([_message("Lunch")], day=DAY)

    assert digest.messages[0].used_fallback
    assert digest.overview_fallback
    assert digest.overview.startswith("1 message(s) received on 2026-10-18.")


def test_parse_summary_output_tolerates_prose_and_odd_priorities() -> None:
    payload = parse_summary_output(
        'Result:\n{"summary": "Meeting moved", "priority": "urgent!"}'
    )

    assert payload.summary == "Meeting moved"
    assert payload.priority is Priority.MEDIUM
    assert payload.action_items == []


@pytest.mark.parametrize(
    "raw",
    ["no json here", '{"summary": ""}', '{"summary": "x", "action_items": 3}'],
)
def test_parse_summary_output_rejects_unusable_answers(raw: str) -> None:
    with pytest.raises(ValueError):
        parse_summary_output(raw)
