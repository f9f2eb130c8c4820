"""Daily mailbox check outcomes

Revision ID: 0001_mail_check_records
Revises:
Create Date: 2025-11-28

Tables:
- mail_check_records: one outcome per mailbox per calendar day
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_mail_check_records"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "mail_check_records",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("mailbox_identifier", sa.String(255), nullable=False),
        sa.Column("day", sa.Date, nullable=False),  # Local date the check ran
        sa.Column("pattern_matched", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("fail_pattern_matched", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_check_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_received_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_matched_subject", sa.Text, nullable=True),
        sa.Column("last_failed_subject", sa.Text, nullable=True),
        sa.UniqueConstraint(
            "mailbox_identifier", "day", name="uq_mail_check_records_mailbox_day"
        ),
    )
    op.create_index(
        "ix_mail_check_records_lower_name_day",
        "mail_check_records",
        [sa.text("lower(mailbox_identifier)"), "day"],
    )


def downgrade() -> None:
    op.drop_index("ix_mail_check_records_lower_name_day", table_name="mail_check_records")
    op.drop_table("mail_check_records")
