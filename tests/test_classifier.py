"""Tests for the classification gateway."""

from __future__ import annotations

import pytest
from fakes import StubLLM

from inbox_sorter.core.models import CategorySet, Message
from inbox_sorter.intelligence import ClassifierGateway
from inbox_sorter.intelligence.classifier import normalise_label

CATEGORIES = CategorySet(["Factures", "Travail", "Newsletters"], "Autre")


def _message(seq: int, subject: str, body: str = "Body") -> Message:
    return Message(
        seq=seq,
        uid=seq * 10,
        sender="sender@example.com",
        to="me@example.com",
        subject=subject,
        received_at=None,
        body_text=body,
        folder_path="INBOX",
    )


def _gateway(llm: object | None, **kwargs: object) -> ClassifierGateway:
    kwargs.setdefault("sleep", lambda _: None)
    return ClassifierGateway(llm, **kwargs)  # type: ignore[arg-type]


def test_known_label_is_returned_with_canonical_case() -> None:
    llm = StubLLM({"invoice": '  "factures".\nBecause it is an invoice'})

    assert _gateway(llm).classify(_message(1, "Your invoice"), CATEGORIES) == "Factures"


@pytest.mark.parametrize(
    "llm",
    [
        StubLLM(error_on=["invoice"]),
        StubLLM(default="Shopping"),
        StubLLM(default="   \n  "),
        None,
    ],
    ids=["provider-error", "unknown-label", "empty-answer", "no-client"],
)
def test_classification_failures_fall_back(llm: StubLLM | None) -> None:
    result = _gateway(llm).classify(_message(1, "Your invoice"), CATEGORIES)

    assert result == "Autre"


def test_unexpected_errors_fall_back_too() -> None:
    class Exploding:
        provider_id = "exploding"

        def generate(self, prompt: str, **_: object) -> str:
            raise KeyError(prompt[:5])

    assert _gateway(Exploding()).classify(_message(1, "Hi"), CATEGORIES) == "Autre"


def test_prompt_lists_categories_and_bounded_excerpt() -> None:
    llm = StubLLM()
    gateway = _gateway(llm, excerpt_chars=50)

    gateway.classify(_message(1, "Hello", body="x" * 400), CATEGORIES)

    prompt = llm.prompts[0]
    assert "Factures, Travail, Newsletters, Autre" in prompt
    assert "Subject: Hello" in prompt
    # Excerpts never shrink below the minimum.
    assert "x" * 200 in prompt
    assert "x" * 201 not in prompt


def test_classify_many_preserves_order_and_pauses_between_batches() -> None:
    pauses: list[float] = []
    llm = StubLLM({"invoice": "Factures", "meeting": "Travail"})
    gateway = ClassifierGateway(
        llm, batch_size=2, batch_delay_seconds=1.5, sleep=pauses.append
    )
    messages = [
        _message(1, "Invoice 1"),
        _message(2, "Meeting notes"),
        _message(3, "Random"),
        _message(4, "Invoice 2"),
        _message(5, "Meeting again"),
    ]

    result = gateway.classify_many(messages, CATEGORIES)

    assert [message.assigned_category for message in result] == [
        "Factures",
        "Travail",
        "Autre",
        "Factures",
        "Travail",
    ]
    assert pauses == [1.5, 1.5]


def test_classify_many_handles_empty_input() -> None:
    assert _gateway(StubLLM()).classify_many([], CATEGORIES) == []


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Travail", "Travail"),
        ("\n\n**Travail**\nreason", "Travail"),
        ("'Factures'.", "Factures"),
        ("", ""),
    ],
)
def test_normalise_label(raw: str, expected: str) -> None:
    assert normalise_label(raw) == expected
