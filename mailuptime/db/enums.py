"""Enum definitions for application constants."""

from enum import Enum


class MailProtocol(str, Enum):
    """Mail retrieval protocols supported by the mail source adapters."""
    IMAP = "imap"
    POP3 = "pop3"


class MonitorState(str, Enum):
    """
    Per-mailbox monitor states.

    IDLE → CHECKING → (MATCHED_TODAY | NOT_MATCHED | ERROR) → SLEEPING → CHECKING ...
    STOPPED once the loop is cancelled.
    """
    IDLE = "idle"
    CHECKING = "checking"
    MATCHED_TODAY = "matched_today"
    NOT_MATCHED = "not_matched"
    ERROR = "error"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class CycleOutcome(str, Enum):
    """Result of one monitor cycle."""
    SKIPPED = "skipped"  # Already matched today, no network check
    MATCHED = "matched"
    NOT_MATCHED = "not_matched"
    ERROR = "error"  # Retryable; nothing persisted


# Hard-coded fallbacks for inheritable mailbox fields
DEFAULT_PROTOCOL = MailProtocol.IMAP
DEFAULT_PORT = 993
DEFAULT_USE_TLS = True
DEFAULT_POLLING_SECONDS = 60
