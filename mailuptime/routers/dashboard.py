"""Dashboard endpoints: status of every configured mailbox."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mailuptime.core.deps import get_db, get_mailbox_settings
from mailuptime.core.mailbox_config import MailboxSettings
from mailuptime.schemas.status import MailboxStatusRead
from mailuptime.services import status_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("/mailboxes", response_model=list[MailboxStatusRead])
def list_mailbox_statuses(
    db: Session = Depends(get_db),
    mailbox_settings: MailboxSettings = Depends(get_mailbox_settings),
):
    """Today's status for all configured mailboxes, in configuration order."""
    return status_service.list_all_statuses(db, mailbox_settings)
