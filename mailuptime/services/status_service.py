"""
Daily status store.

Exactly one row per (mailbox, calendar day). Writes go through a native
INSERT ... ON CONFLICT upsert so concurrent writers for the same key collapse
into one row (last writer wins). Lookups compare mailbox names
case-insensitively; storage keeps the configured casing.
"""

import logging
from datetime import date

from sqlalchemy import func
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mailuptime.core.mailbox_config import MailboxSettings, resolve_effective_config
from mailuptime.db.models import MailCheckRecord
from mailuptime.schemas.status import DailyOutcome, MailboxStatusRead, MailStatusRead
from mailuptime.utils.datetime_parsing import as_utc, local_today
from mailuptime.utils.normalization import normalize_mailbox_name

logger = logging.getLogger(__name__)

NOT_CHECKED_MESSAGE = "Mailbox not found or not yet checked today"

_CONFLICT_COLUMNS = ("mailbox_identifier", "day")


class StatusServiceError(Exception):
    """Base exception for status store errors."""

    pass


class PersistenceError(StatusServiceError):
    """Daily outcome could not be written."""

    pass


class StatusNotFoundError(StatusServiceError):
    """No outcome recorded today for the mailbox."""

    pass


def get_today(db: Session, mailbox_name: str, day: date | None = None) -> MailCheckRecord | None:
    """Today's record for a mailbox (case-insensitive name match)."""
    day = day or local_today()
    return (
        db.query(MailCheckRecord)
        .filter(
            func.lower(MailCheckRecord.mailbox_identifier) == normalize_mailbox_name(mailbox_name),
            MailCheckRecord.day == day,
        )
        .first()
    )


def require_today(db: Session, mailbox_name: str, day: date | None = None) -> MailCheckRecord:
    record = get_today(db, mailbox_name, day)
    if record is None:
        raise StatusNotFoundError(f"No record for {mailbox_name} on {day or local_today()}")
    return record


def _upsert_statement(db: Session, values: dict):
    dialect = db.get_bind().dialect.name
    update_values = {k: v for k, v in values.items() if k not in _CONFLICT_COLUMNS}

    if dialect == "postgresql":
        stmt = postgresql.insert(MailCheckRecord).values(**values)
        return stmt.on_conflict_do_update(
            constraint="uq_mail_check_records_mailbox_day",
            set_=update_values,
        )
    if dialect == "sqlite":
        stmt = sqlite.insert(MailCheckRecord).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=list(_CONFLICT_COLUMNS),
            set_=update_values,
        )
    if dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(MailCheckRecord).values(**values)
        return stmt.on_duplicate_key_update(**update_values)

    raise PersistenceError(f"Unsupported database dialect for upsert: {dialect}")


def upsert_outcome(db: Session, outcome: DailyOutcome) -> None:
    """
    Create or update the outcome row for (mailbox, day).

    Uses ON CONFLICT DO UPDATE so concurrent writers never create duplicates.
    Raises PersistenceError after rolling back on any database failure.
    """
    values = {
        "mailbox_identifier": outcome.mailbox_name,
        "day": outcome.day,
        "pattern_matched": outcome.pattern_matched,
        "fail_pattern_matched": outcome.fail_pattern_matched,
        "last_check_time": outcome.last_check_time,
        "last_received_time": outcome.last_received_time,
        "last_matched_subject": outcome.last_matched_subject,
        "last_failed_subject": outcome.last_failed_subject,
    }
    try:
        db.execute(_upsert_statement(db, values))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(
            f"Failed to persist outcome for {outcome.mailbox_name} on {outcome.day}: {type(exc).__name__}"
        ) from exc


def record_to_status(record: MailCheckRecord) -> MailStatusRead:
    return MailStatusRead(
        pattern_matched=record.pattern_matched,
        fail_pattern_matched=record.fail_pattern_matched,
        last_checked=as_utc(record.last_check_time),
        last_received_date=as_utc(record.last_received_time),
        last_matched_subject=record.last_matched_subject,
        last_failed_subject=record.last_failed_subject,
    )


def get_status(db: Session, mailbox_name: str, day: date | None = None) -> MailStatusRead:
    """
    Today's status for the query boundary.

    A mailbox that was never configured and one not yet checked today both
    come back with the same NotCheckedYet error field.
    """
    try:
        record = require_today(db, mailbox_name, day)
    except StatusNotFoundError:
        logger.debug("No record found for mailbox %s today", mailbox_name)
        return MailStatusRead(error=NOT_CHECKED_MESSAGE)
    return record_to_status(record)


def list_all_statuses(
    db: Session,
    mailbox_settings: MailboxSettings,
    day: date | None = None,
) -> list[MailboxStatusRead]:
    """Status of every configured mailbox, in configuration order."""
    day = day or local_today()
    statuses: list[MailboxStatusRead] = []
    for mailbox in mailbox_settings.mailboxes:
        config = resolve_effective_config(mailbox, mailbox_settings.defaults)
        status = get_status(db, config.name, day)
        statuses.append(
            MailboxStatusRead(
                name=config.name,
                **status.model_dump(),
                has_pattern_configuration=config.has_success_pattern,
                has_fail_pattern_configuration=config.has_fail_pattern,
                has_sender_configuration=config.has_sender_filter,
                expected_senders=list(config.expected_sender_emails),
            )
        )
    logger.info("Retrieved status for %s mailboxes", len(statuses))
    return statuses
