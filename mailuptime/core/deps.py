"""FastAPI dependencies for database access and mailbox configuration."""

from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from mailuptime.core.mailbox_config import MailboxSettings


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Database session dependency.
    
    Yields a session from the app's session factory and ensures it's closed
    after the request.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_mailbox_settings(request: Request) -> MailboxSettings:
    """Mailbox configuration loaded once at app creation."""
    return request.app.state.mailbox_settings
