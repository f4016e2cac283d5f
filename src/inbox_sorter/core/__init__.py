"""Core utilities for configuration, logging, models, and errors."""

from .config import AppSettings, SortingSettings, load_app_settings
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "SortingSettings",
    "configure_logging",
    "load_app_settings",
]
