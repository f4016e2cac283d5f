"""LLM-backed classification and extraction."""

from .classifier import ClassifierGateway
from .digest import DailyDigest, DigestBuilder, MessageDigest
from .invoices import AnalyzedInvoice, InvoiceData, InvoiceExtractor
from .llm import (
    LLMClient,
    LLMError,
    OllamaClient,
    OpenAIChatClient,
    build_llm_client,
)

__all__ = [
    "AnalyzedInvoice",
    "ClassifierGateway",
    "DailyDigest",
    "DigestBuilder",
    "InvoiceData",
    "InvoiceExtractor",
    "LLMClient",
    "LLMError",
    "MessageDigest",
    "OllamaClient",
    "OpenAIChatClient",
    "build_llm_client",
]
