"""Coordinate one sorting run from folder listing to relocation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from ..core.errors import FetchError, FolderListError, InboxSorterError
from ..core.models import (
    CategoryOutcome,
    CategorySet,
    ClassificationBatch,
    Message,
    RunStage,
    SortReport,
)
from ..ingestion.fetcher import FetchCriteria, MessageFetcher
from ..intelligence.classifier import ClassifierGateway
from ..intelligence.digest import DailyDigest, DigestBuilder
from ..intelligence.invoices import AnalyzedInvoice, InvoiceExtractor
from ..mailbox.folders import FolderDirectory
from ..mailbox.reconciler import FolderReconciler
from ..transport.session import MailSession

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[], MailSession]

ALL_FOLDERS = "*"


@dataclass(slots=True)
class RunPlan:
    """What a single run fetches and whether it relocates."""

    folder: str | None
    criteria: FetchCriteria
    relocate: bool = True
    target_category: str | None = None

    @property
    def label(self) -> str:
        scope = "all folders" if self.folder is None else self.folder
        mode = "unread" if self.criteria.only_unread else "all"
        return f"{mode} messages in {scope}"


@dataclass(slots=True)
class InvoiceReport:
    """Classification summary plus the invoices found in the run."""

    report: SortReport
    invoices: list[AnalyzedInvoice] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        payload = self.report.to_dict()
        payload["invoices"] = [invoice.to_dict() for invoice in self.invoices]
        return payload


@dataclass(slots=True)
class DigestReport:
    """Classification summary plus the digest of the day's mail."""

    report: SortReport
    digest: DailyDigest | None = None

    def to_dict(self) -> dict[str, object]:
        payload = self.report.to_dict()
        payload["digest"] = self.digest.to_dict() if self.digest else None
        return payload


class SortingOrchestrator:
    """Drive the fetch, classify, group and reconcile stages.

    Each run opens its own :class:`MailSession` from ``session_factory``
    and always closes it before returning, so runs never share a
    connection. Public ``sort_*`` methods return a :class:`SortReport`
    instead of raising; a connection failure is reported with
    ``error_kind="MailConnectionError"``.
    """

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        session_factory: SessionFactory,
        directory: FolderDirectory,
        fetcher: MessageFetcher,
        classifier: ClassifierGateway,
        reconciler: FolderReconciler,
        *,
        source_folder: str = "INBOX",
        limit: int | None = None,
        invoice_extractor: InvoiceExtractor | None = None,
        invoice_category: str = "Factures",
        digest_builder: DigestBuilder | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._directory = directory
        self._fetcher = fetcher
        self._classifier = classifier
        self._reconciler = reconciler
        self._source_folder = source_folder
        self._limit = limit
        self._invoice_extractor = invoice_extractor
        self._invoice_category = invoice_category
        self._digest_builder = digest_builder or DigestBuilder(None)

    @property
    def source_folder(self) -> str:
        return self._source_folder

    # Public API ---------------------------------------------------------------
    def sort_unread_in_folder(
        self, folder: str | None = None, *, limit: int | None = None
    ) -> SortReport:
        """Classify and move unread messages of one folder."""
        return self.execute(self._plan(folder, only_unread=True, limit=limit))

    def sort_all_in_folder(
        self, folder: str | None = None, *, limit: int | None = None
    ) -> SortReport:
        """Classify and move every message of one folder."""
        return self.execute(self._plan(folder, only_unread=False, limit=limit))

    def sort_today_in_folder(
        self, folder: str | None = None, *, limit: int | None = None
    ) -> SortReport:
        """Classify and move unread messages received today."""
        criteria = FetchCriteria.today(
            limit=limit or self._limit,
            timezone=self._fetcher.timezone,
            readonly=False,
        )
        return self.execute(
            RunPlan(folder=folder or self._source_folder, criteria=criteria)
        )

    def sort_unread_across_all_folders(
        self, *, limit: int | None = None
    ) -> SortReport:
        """Classify and move unread messages of every selectable folder."""
        return self.execute(
            self._plan(None, all_folders=True, only_unread=True, limit=limit)
        )

    def sort_all_across_all_folders(self, *, limit: int | None = None) -> SortReport:
        """Classify and move every message of every selectable folder."""
        return self.execute(
            self._plan(None, all_folders=True, only_unread=False, limit=limit)
        )

    def sort_into_specific_category(self, folder: str | None, category: str) -> int:
        """Move unread messages of ``folder`` classified as ``category``.

        ``category`` joins the run's category set even when no folder of
        that name exists yet. Returns how many messages were moved; raises
        :class:`MailConnectionError` when the session cannot be used and
        :class:`InboxSorterError` when the run fails otherwise.
        """
        if not category.strip():
            raise ValueError("category must not be blank")
        plan = self._plan(folder, only_unread=True, limit=None)
        plan.target_category = category.strip()
        report = SortReport()
        session = self._session_factory()
        try:
            self._run(session, plan, report)
        finally:
            session.disconnect()
        if report.stage is RunStage.FAILED:
            raise InboxSorterError(report.error or "sorting failed")
        return report.moved_total

    def classify_unread_in_folder(
        self, folder: str | None = None, *, limit: int | None = None
    ) -> SortReport:
        """Classify unread messages without moving anything."""
        return self.execute(
            self._plan(folder, only_unread=True, limit=limit, relocate=False)
        )

    def classify_all_across_all_folders(
        self, *, only_unread: bool = True, limit: int | None = None
    ) -> SortReport:
        """Classify messages of every folder without moving anything."""
        plan = self._plan(
            None,
            all_folders=True,
            only_unread=only_unread,
            limit=limit,
            relocate=False,
        )
        return self.execute(plan)

    def analyze_invoices(
        self,
        folder: str | None = None,
        *,
        all_folders: bool = False,
        only_unread: bool = True,
        limit: int | None = None,
    ) -> InvoiceReport:
        """Classify without moving and extract data from invoice mail."""
        plan = self._plan(
            folder,
            all_folders=all_folders,
            only_unread=only_unread,
            limit=limit,
            relocate=False,
        )
        report, batch = self._classify_without_moving(plan)
        messages = [
            message
            for category, grouped in batch.items()
            if category.casefold() == self._invoice_category.casefold()
            for message in grouped
        ]
        if not messages:
            return InvoiceReport(report=report)
        if self._invoice_extractor is None:
            LOGGER.warning("No invoice extractor configured")
            return InvoiceReport(report=report)
        LOGGER.info("Extracting data from %s invoice(s)", len(messages))
        return InvoiceReport(
            report=report, invoices=self._invoice_extractor.extract_many(messages)
        )

    def digest_today(
        self,
        folder: str | None = None,
        *,
        all_folders: bool = False,
        limit: int | None = None,
    ) -> DigestReport:
        """Summarise today's unread mail without moving or flagging it."""
        criteria = FetchCriteria.today(
            limit=limit or self._limit, timezone=self._fetcher.timezone
        )
        plan = RunPlan(
            folder=None if all_folders else folder or self._source_folder,
            criteria=criteria,
            relocate=False,
        )
        report, batch = self._classify_without_moving(plan)
        if not report.success or criteria.since is None:
            return DigestReport(report=report)
        messages = [message for _, grouped in batch.items() for message in grouped]
        LOGGER.info("Building digest of %s message(s)", len(messages))
        return DigestReport(
            report=report,
            digest=self._digest_builder.build(messages, day=criteria.since),
        )

    def execute(self, plan: RunPlan) -> SortReport:
        """Run ``plan`` on a fresh session and report the outcome."""
        report = SortReport()
        session = self._session_factory()
        try:
            self._run(session, plan, report)
        except InboxSorterError as exc:
            self._fail(report, exc)
        finally:
            session.disconnect()
        return report

    def _classify_without_moving(
        self, plan: RunPlan
    ) -> tuple[SortReport, ClassificationBatch]:
        report = SortReport()
        batch = ClassificationBatch()
        session = self._session_factory()
        try:
            batch = self._run(session, plan, report)
        except InboxSorterError as exc:
            self._fail(report, exc)
        finally:
            session.disconnect()
        return report, batch

    # Stages -------------------------------------------------------------------
    def _run(
        self, session: MailSession, plan: RunPlan, report: SortReport
    ) -> ClassificationBatch:
        """Execute the stages; connection and fetch failures propagate."""
        LOGGER.info("Starting run over %s", plan.label)
        session.connect()

        self._enter(report, RunStage.BUILDING_CATEGORIES)
        categories = self._directory.build_categories(session)
        if plan.target_category is not None:
            categories = CategorySet(
                [*categories.names(), plan.target_category], categories.fallback.name
            )

        self._enter(report, RunStage.FETCHING)
        messages = self._fetch(session, plan)

        self._enter(report, RunStage.CLASSIFYING)
        self._classifier.classify_many(messages, categories)

        self._enter(report, RunStage.GROUPING)
        batch = ClassificationBatch.from_messages(messages)
        report.classified = batch.counts()

        if not plan.relocate:
            self._enter(report, RunStage.COMPLETED)
            return batch

        if plan.target_category is not None:
            batch = _only_category(batch, categories, plan.target_category)

        self._enter(report, RunStage.RECONCILING)
        outcomes: dict[str, CategoryOutcome] = {}
        try:
            self._reconciler.reconcile(session, batch, outcomes)
        finally:
            # Moves that happened before a lost session still count.
            _merge_outcomes(report, outcomes)

        attempted = [outcome for outcome in outcomes.values() if _attempted(outcome)]
        if attempted and all(outcome.failed for outcome in attempted):
            report.stage = RunStage.FAILED
            report.error = "every category failed to reconcile"
            report.error_kind = "ReconciliationError"
            LOGGER.error("Run failed: %s", report.error)
            return batch

        self._enter(report, RunStage.COMPLETED)
        LOGGER.info(
            "Run finished: moved %s message(s) %s", report.moved_total, report.moved
        )
        return batch

    def _fetch(self, session: MailSession, plan: RunPlan) -> list[Message]:
        if plan.folder is not None:
            return self._fetcher.fetch(session, plan.folder, plan.criteria)
        try:
            folders = self._directory.selectable_folders(session)
        except FolderListError as exc:
            raise FetchError(ALL_FOLDERS, str(exc)) from exc
        readable = []
        for folder in folders:
            if folder.virtual:
                LOGGER.debug("Skipping virtual folder %s", folder.name)
                continue
            readable.append(folder)
        LOGGER.info("Fetching from %s folder(s)", len(readable))
        return self._fetcher.fetch_many(session, readable, plan.criteria)

    def _plan(
        self,
        folder: str | None,
        *,
        all_folders: bool = False,
        only_unread: bool,
        limit: int | None,
        relocate: bool = True,
    ) -> RunPlan:
        criteria = FetchCriteria(
            only_unread=only_unread,
            limit=limit or self._limit,
            readonly=not relocate,
        )
        return RunPlan(
            folder=None if all_folders else folder or self._source_folder,
            criteria=criteria,
            relocate=relocate,
        )

    @staticmethod
    def _enter(report: SortReport, stage: RunStage) -> None:
        LOGGER.debug("Run stage %s -> %s", report.stage.value, stage.value)
        report.stage = stage

    @staticmethod
    def _fail(report: SortReport, exc: Exception) -> None:
        LOGGER.error("Run failed during %s: %s", report.stage.value, exc)
        report.stage = RunStage.FAILED
        report.error = str(exc)
        report.error_kind = type(exc).__name__


def _merge_outcomes(
    report: SortReport, outcomes: dict[str, CategoryOutcome]
) -> None:
    for name, outcome in outcomes.items():
        report.skipped_without_uid += outcome.skipped_uids
        report.skipped_virtual += outcome.skipped_virtual
        report.already_sorted += outcome.already_sorted
        if outcome.moved:
            report.moved[name] = outcome.moved
        if outcome.failed:
            report.failed_categories[name] = outcome.error or "failed"


def _attempted(outcome: CategoryOutcome) -> bool:
    return bool(outcome.moved or outcome.already_sorted or outcome.error)


def _only_category(
    batch: ClassificationBatch, categories: CategorySet, target: str
) -> ClassificationBatch:
    wanted = categories.resolve(target)
    kept = ClassificationBatch()
    for name, messages in batch.items():
        if wanted is not None and categories.resolve(name) == wanted:
            for message in messages:
                kept.add(message)
    return kept


__all__ = [
    "DigestReport",
    "InvoiceReport",
    "RunPlan",
    "SessionFactory",
    "SortingOrchestrator",
]
