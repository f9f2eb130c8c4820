"""Utility modules."""

from mailuptime.utils.datetime_parsing import (
    as_utc,
    format_imap_date,
    local_today,
    parse_message_date,
    utc_now,
)
from mailuptime.utils.normalization import (
    address_matches_any,
    normalize_mailbox_name,
)

__all__ = [
    # Datetime
    "as_utc",
    "format_imap_date",
    "local_today",
    "parse_message_date",
    "utc_now",
    # Normalization
    "address_matches_any",
    "normalize_mailbox_name",
]
