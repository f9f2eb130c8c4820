"""Service layer modules."""

from mailuptime.services.mail_source import (
    MailAuthError,
    MailConnectionError,
    MailMessage,
    MailProtocolError,
    MailSession,
    MailSource,
    MailSourceError,
    get_mail_source,
)
from mailuptime.services.status_service import (
    PersistenceError,
    StatusNotFoundError,
    StatusServiceError,
)

__all__ = [
    # Mail source
    "MailAuthError",
    "MailConnectionError",
    "MailMessage",
    "MailProtocolError",
    "MailSession",
    "MailSource",
    "MailSourceError",
    "get_mail_source",
    # Status store
    "PersistenceError",
    "StatusNotFoundError",
    "StatusServiceError",
]
