"""Structured data extraction for invoice mail."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.models import Message
from .llm import LLMClient, LLMError
from .prompts import INVOICE_SYSTEM, build_invoice_prompt

LOGGER = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class InvoiceData(BaseModel):
    """Invoice fields returned by the extraction model."""

    model_config = ConfigDict(extra="ignore")

    total_amount: float | None = Field(
        default=None, description="Amount due, tax included"
    )
    currency: str | None = Field(default=None, description="ISO currency code")
    invoice_date: str | None = Field(default=None, description="Issue date")
    invoice_number: str | None = Field(default=None, description="Invoice reference")
    issuer: str | None = Field(default=None, description="Issuing company")
    due_date: str | None = Field(default=None, description="Payment due date")

    @field_validator("total_amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = re.sub(r"[^\d,.\-]", "", value)
            if "," in cleaned and "." in cleaned:
                if cleaned.rfind(",") > cleaned.rfind("."):
                    # 1.234,56
                    cleaned = cleaned.replace(".", "").replace(",", ".")
                else:
                    cleaned = cleaned.replace(",", "")
            else:
                cleaned = cleaned.replace(",", ".")
            return cleaned or None
        return value

    @field_validator(
        "currency",
        "invoice_date",
        "invoice_number",
        "issuer",
        "due_date",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        if isinstance(value, (int, float)):
            return str(value)
        return value


@dataclass(slots=True)
class AnalyzedInvoice:
    """Extraction outcome for one message."""

    uid: int | None
    folder: str
    subject: str
    sender: str
    data: InvoiceData | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "uid": self.uid,
            "folder": self.folder,
            "subject": self.subject,
            "sender": self.sender,
            "data": self.data.model_dump() if self.data is not None else None,
            "error": self.error,
        }


class InvoiceExtractor:
    """Ask the LLM for invoice fields and validate its answer."""

    def __init__(
        self,
        llm_client: LLMClient | None,
        *,
        excerpt_chars: int = 3000,
        max_tokens: int = 500,
        temperature: float = 0.1,
    ) -> None:
        self._llm_client = llm_client
        self._excerpt_chars = excerpt_chars
        self._max_tokens = max_tokens
        self._temperature = temperature

    def extract(self, message: Message) -> AnalyzedInvoice:
        """Extract invoice data from ``message``; errors end up in the result."""
        result = AnalyzedInvoice(
            uid=message.uid,
            folder=message.folder_path,
            subject=message.subject,
            sender=message.sender,
        )
        if self._llm_client is None:
            result.error = "no extraction model configured"
            return result

        prompt = build_invoice_prompt(
            message, excerpt=message.body_text.strip()[: self._excerpt_chars]
        )
        try:
            raw_output = self._llm_client.generate(
                prompt,
                system=INVOICE_SYSTEM,
                json_output=True,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
            result.data = parse_invoice_output(raw_output)
        except (LLMError, ValueError) as exc:
            LOGGER.warning(
                "Invoice extraction failed for UID %s in %s: %s",
                message.uid,
                message.folder_path,
                exc,
            )
            result.error = str(exc)
        return result

    def extract_many(self, messages: Iterable[Message]) -> list[AnalyzedInvoice]:
        return [self.extract(message) for message in messages]


def parse_invoice_output(raw: str) -> InvoiceData:
    """Validate the model's JSON answer, tolerating prose around it."""
    match = _JSON_OBJECT.search(raw)
    if match is None:
        raise ValueError("LLM output contained no JSON object")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ValueError("LLM output was not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError("LLM output must be a JSON object")
    try:
        return InvoiceData.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"LLM output failed validation: {exc}") from exc


__all__ = [
    "AnalyzedInvoice",
    "InvoiceData",
    "InvoiceExtractor",
    "parse_invoice_output",
]
