"""FastAPI application exposing sorting runs over HTTP."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, Query, status as http_status
from pydantic import BaseModel, Field

from inbox_sorter.core import AppSettings, load_app_settings
from inbox_sorter.core.errors import InboxSorterError, MailConnectionError
from inbox_sorter.core.models import SortReport
from inbox_sorter.sorting import SortingOrchestrator, build_orchestrator

LOGGER = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_DEFAULT_ENV_FILE = _PROJECT_ROOT / ".env"
_ENV_FILE_OVERRIDE_VAR = "INBOX_SORTER_ENV_FILE"

OrchestratorFactory = Callable[[AppSettings], SortingOrchestrator]


class SortRequest(BaseModel):
    """Optional knobs accepted by the sort endpoints."""

    folder: str | None = Field(default=None, description="Folder to read from")
    limit: int | None = Field(default=None, ge=1, description="Newest N matches")


class CategoryRequest(BaseModel):
    """Body of ``POST /sort/category``."""

    folder: str | None = Field(default=None, description="Folder to read from")
    category: str = Field(min_length=1, description="Category to sort into")


class InvoiceRequest(SortRequest):
    """Body of ``POST /sort/invoices``."""

    all_folders: bool = Field(default=False, description="Scan every folder")
    only_unread: bool = Field(default=True, description="Skip read messages")


def create_app(
    settings: AppSettings | None = None,
    orchestrator_factory: OrchestratorFactory | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = settings or load_app_settings(env_file=_resolve_env_file())
    factory = orchestrator_factory or build_orchestrator
    app = FastAPI(title="Inbox Sorter")
    app.state.last_run = None
    app.state.running = 0

    async def _run(label: str, call: Callable[[SortingOrchestrator], Any]) -> Any:
        # Every request gets its own orchestrator and therefore its own
        # mail session.
        orchestrator = factory(app_settings)
        app.state.running += 1
        try:
            result = await asyncio.to_thread(call, orchestrator)
        finally:
            app.state.running -= 1
        app.state.last_run = {
            "operation": label,
            "finished_at": datetime.now(tz=UTC).isoformat(),
        }
        return result

    def _report_payload(label: str, report: SortReport) -> dict[str, Any]:
        if app.state.last_run is not None:
            app.state.last_run["success"] = report.success
        payload = report.to_dict()
        payload["operation"] = label
        return payload

    @app.get("/sort/status")
    async def sort_status() -> dict[str, Any]:
        """Describe the configuration and the most recent run."""
        return {
            "imap_host": app_settings.imap.host,
            "source_folder": app_settings.imap.source_folder,
            "category_source": app_settings.sorting.category_source.value,
            "fallback_category": app_settings.sorting.fallback_category,
            "llm_provider": app_settings.llm.provider.value,
            "running": app.state.running,
            "last_run": app.state.last_run,
        }

    @app.post("/sort")
    async def sort_unread(request: SortRequest | None = None) -> dict[str, Any]:
        """Sort unread messages of one folder."""
        body = request or SortRequest()
        report = await _run(
            "sort",
            lambda orch: orch.sort_unread_in_folder(body.folder, limit=body.limit),
        )
        return _report_payload("sort", report)

    @app.post("/sort/all")
    async def sort_all(request: SortRequest | None = None) -> dict[str, Any]:
        """Sort every message of one folder."""
        body = request or SortRequest()
        report = await _run(
            "sort-all",
            lambda orch: orch.sort_all_in_folder(body.folder, limit=body.limit),
        )
        return _report_payload("sort-all", report)

    @app.post("/sort/all-folders/unread")
    async def sort_all_folders_unread(
        request: SortRequest | None = None,
    ) -> dict[str, Any]:
        """Sort unread messages of every folder."""
        body = request or SortRequest()
        report = await _run(
            "sort-all-folders-unread",
            lambda orch: orch.sort_unread_across_all_folders(limit=body.limit),
        )
        return _report_payload("sort-all-folders-unread", report)

    @app.post("/sort/all-folders/all")
    async def sort_all_folders_all(
        request: SortRequest | None = None,
    ) -> dict[str, Any]:
        """Sort every message of every folder."""
        body = request or SortRequest()
        report = await _run(
            "sort-all-folders-all",
            lambda orch: orch.sort_all_across_all_folders(limit=body.limit),
        )
        return _report_payload("sort-all-folders-all", report)

    @app.post("/sort/category")
    async def sort_category(request: CategoryRequest) -> dict[str, Any]:
        """Move messages classified as one category."""
        try:
            moved = await _run(
                "sort-category",
                lambda orch: orch.sort_into_specific_category(
                    request.folder, request.category
                ),
            )
        except MailConnectionError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_502_BAD_GATEWAY, detail=str(exc)
            ) from exc
        except InboxSorterError as exc:
            return {
                "success": False,
                "operation": "sort-category",
                "category": request.category,
                "moved": 0,
                "error": str(exc),
            }
        return {
            "success": True,
            "operation": "sort-category",
            "category": request.category,
            "moved": moved,
            "error": None,
        }

    @app.post("/sort/invoices")
    async def analyze_invoices(request: InvoiceRequest | None = None) -> dict[str, Any]:
        """Classify without moving and extract invoice data."""
        body = request or InvoiceRequest()
        outcome = await _run(
            "invoices",
            lambda orch: orch.analyze_invoices(
                body.folder,
                all_folders=body.all_folders,
                only_unread=body.only_unread,
                limit=body.limit,
            ),
        )
        payload = outcome.to_dict()
        payload["operation"] = "invoices"
        return payload

    @app.get("/digest/today")
    async def digest_today(
        folder: str | None = None,
        all_folders: bool = False,
        limit: int | None = Query(default=None, ge=1),
    ) -> dict[str, Any]:
        """Summarise today's unread mail without moving it."""
        outcome = await _run(
            "digest",
            lambda orch: orch.digest_today(
                folder, all_folders=all_folders, limit=limit
            ),
        )
        payload = _report_payload("digest", outcome.report)
        payload["digest"] = outcome.digest.to_dict() if outcome.digest else None
        return payload

    return app


def _resolve_env_file() -> Path:
    override = os.getenv(_ENV_FILE_OVERRIDE_VAR)
    if override:
        return Path(override)
    return _DEFAULT_ENV_FILE


__all__ = ["create_app"]
