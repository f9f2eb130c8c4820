"""Datetime helpers for mail headers and the daily outcome calendar."""

from __future__ import annotations

from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime

# IMAP SEARCH dates are locale-independent (RFC 3501 date-text)
IMAP_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_today() -> date:
    """Calendar day of a check: the local date the check runs on."""
    return date.today()


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_message_date(raw_value: str | None) -> datetime | None:
    """Parse an RFC 5322 Date header into UTC, or None when absent/garbled."""
    if not raw_value:
        return None
    try:
        parsed = parsedate_to_datetime(str(raw_value).strip())
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    return as_utc(parsed)


def format_imap_date(day: date) -> str:
    """Format a date as IMAP date-text, e.g. 07-Mar-2025."""
    return f"{day.day:02d}-{IMAP_MONTHS[day.month - 1]}-{day.year:04d}"
