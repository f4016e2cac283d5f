"""Sorting runs and their wiring."""

from .factory import build_orchestrator, build_session_factory
from .orchestrator import DigestReport, InvoiceReport, RunPlan, SortingOrchestrator

__all__ = [
    "DigestReport",
    "InvoiceReport",
    "RunPlan",
    "SortingOrchestrator",
    "build_orchestrator",
    "build_session_factory",
]
