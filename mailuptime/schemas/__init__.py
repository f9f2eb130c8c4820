"""Pydantic schemas for API request/response validation."""

from mailuptime.schemas.status import (
    DailyOutcome,
    MailboxStatusRead,
    MailStatusRead,
)

__all__ = [
    "DailyOutcome",
    "MailboxStatusRead",
    "MailStatusRead",
]
