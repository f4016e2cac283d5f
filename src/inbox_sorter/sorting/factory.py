"""Wire settings into a ready-to-run :class:`SortingOrchestrator`."""

from __future__ import annotations

import logging

from ..core.config import AppSettings
from ..core.datetime_utils import resolve_timezone
from ..ingestion.fetcher import MessageFetcher
from ..ingestion.parser import MessageParser
from ..intelligence.classifier import ClassifierGateway
from ..intelligence.digest import DigestBuilder
from ..intelligence.invoices import InvoiceExtractor
from ..intelligence.llm import LLMClient, build_llm_client
from ..mailbox.folders import FolderDirectory
from ..mailbox.reconciler import FolderReconciler
from ..transport.imap_client import ImapClient
from ..transport.session import MailSession
from .orchestrator import SessionFactory, SortingOrchestrator

LOGGER = logging.getLogger(__name__)


def build_session_factory(settings: AppSettings) -> SessionFactory:
    """Return a callable opening a fresh session per run."""

    def _factory() -> MailSession:
        return MailSession(ImapClient(settings.imap), label="imap")

    return _factory


def build_orchestrator(
    settings: AppSettings,
    *,
    session_factory: SessionFactory | None = None,
    llm_client: LLMClient | None = None,
) -> SortingOrchestrator:
    """Assemble every collaborator from ``settings``."""
    sorting = settings.sorting
    client = llm_client
    if client is None and settings.llm.base_url and settings.llm.model:
        client = build_llm_client(settings.llm)
    if client is None:
        LOGGER.warning(
            "No LLM configured; every message will sort into '%s'",
            sorting.fallback_category,
        )

    directory = FolderDirectory(
        fallback_category=sorting.fallback_category,
        category_source=sorting.category_source,
        fixed_categories=sorting.categories,
    )
    fetcher = MessageFetcher(
        MessageParser(),
        batch_size=sorting.fetch_batch_size,
        timezone=resolve_timezone(sorting.timezone),
    )
    classifier = ClassifierGateway(
        client,
        excerpt_chars=sorting.excerpt_chars,
        batch_size=sorting.classify_batch_size,
        batch_delay_seconds=sorting.classify_batch_delay_seconds,
    )
    return SortingOrchestrator(
        session_factory or build_session_factory(settings),
        directory,
        fetcher,
        classifier,
        FolderReconciler(directory),
        source_folder=settings.imap.source_folder,
        limit=sorting.limit,
        invoice_extractor=InvoiceExtractor(client),
        invoice_category=sorting.invoice_category,
        digest_builder=DigestBuilder(client),
    )


__all__ = ["build_orchestrator", "build_session_factory"]
