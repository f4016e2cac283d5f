"""Logging configuration helpers."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

from .config import LoggingSettings

# Request lines from the HTTP client would echo provider URLs on every
# classification call.
_QUIET_LOGGERS = {"httpx": "WARNING", "httpcore": "WARNING"}


def _structured_formatter() -> dict[str, Any]:
    """Key/value lines that log shippers can split without a parser."""
    return {
        "format": "ts={asctime} level={levelname} logger={name} msg={message!r}",
        "style": "{",
    }


def _plain_formatter() -> dict[str, Any]:
    return {
        "format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        "datefmt": "%H:%M:%S",
    }


def _resolve_level(raw: str) -> str:
    level = raw.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level '{raw}'")
    return level


def configure_logging(settings: LoggingSettings) -> None:
    """Install the console handler and levels described by ``settings``."""
    level = _resolve_level(settings.level)
    formatter = _structured_formatter() if settings.structured else _plain_formatter()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"console": formatter},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "console",
                    "level": level,
                },
            },
            "loggers": {
                name: {"level": quiet_level}
                for name, quiet_level in _QUIET_LOGGERS.items()
            },
            "root": {"handlers": ["console"], "level": level},
        }
    )
    logging.captureWarnings(True)


__all__ = ["configure_logging"]
