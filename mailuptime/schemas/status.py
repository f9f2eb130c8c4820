"""Schemas for daily mailbox status."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DailyOutcome(BaseModel):
    """Fields written for one mailbox on one calendar day."""

    model_config = ConfigDict(frozen=True)

    mailbox_name: str
    day: date
    pattern_matched: bool = False
    fail_pattern_matched: bool = False
    last_check_time: datetime
    last_received_time: datetime | None = None
    last_matched_subject: str | None = None
    last_failed_subject: str | None = None


class MailStatusRead(BaseModel):
    """Status of one mailbox for today; `error` is set when not checked yet."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    pattern_matched: bool = False
    fail_pattern_matched: bool = False
    last_checked: datetime | None = None
    last_received_date: datetime | None = None
    last_matched_subject: str | None = None
    last_failed_subject: str | None = None
    error: str | None = None


class MailboxStatusRead(MailStatusRead):
    """Dashboard row: today's status plus configuration flags."""

    name: str
    has_pattern_configuration: bool = False
    has_fail_pattern_configuration: bool = False
    has_sender_configuration: bool = False
    expected_senders: list[str] = Field(default_factory=list)
