"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, date, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

__all__ = [
    "ensure_aware",
    "imap_date",
    "local_day",
    "resolve_timezone",
]

# IMAP dates use English month names whatever the process locale is.
_MONTHS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the zone called ``name`` or the process local zone."""
    if name:
        try:
            return ZoneInfo(name)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"Unknown timezone '{name}'") from exc
    local = datetime.now().astimezone().tzinfo
    return local if local is not None else UTC


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def local_day(value: datetime, zone: tzinfo) -> date:
    """Truncate ``value`` to its calendar day as seen from ``zone``."""
    return ensure_aware(value).astimezone(zone).date()


def imap_date(value: date) -> str:
    """Format ``value`` the way SEARCH SINCE/BEFORE expect (``18-Oct-2026``)."""
    return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year}"
