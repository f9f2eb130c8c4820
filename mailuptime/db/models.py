"""SQLAlchemy ORM models for daily mailbox check outcomes."""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from mailuptime.db.base import Base


class MailCheckRecord(Base):
    """
    One daily outcome per mailbox.

    Keyed by (mailbox_identifier, day) where day is the local date the check
    ran. Created by the first check of the day and updated in place by every
    later check of that day. Rows are never deleted here.
    """
    __tablename__ = "mail_check_records"
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mailbox_identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    pattern_matched: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    fail_pattern_matched: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_check_time: Mapped[datetime] = mapped_column(nullable=False)
    last_received_time: Mapped[datetime | None] = mapped_column(nullable=True)
    last_matched_subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_failed_subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    __table_args__ = (
        UniqueConstraint("mailbox_identifier", "day", name="uq_mail_check_records_mailbox_day"),
    )


# Case-insensitive lookups on the query path
Index(
    "ix_mail_check_records_lower_name_day",
    func.lower(MailCheckRecord.mailbox_identifier),
    MailCheckRecord.day,
)
