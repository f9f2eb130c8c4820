"""
Per-mailbox status endpoints for uptime probes.

Probe-friendly status codes: 200 when the report is healthy, 503 otherwise.
"Not checked yet" and "checked but not matched" are both non-success; they
differ only in the message.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from mailuptime.core.deps import get_db
from mailuptime.core.structured_logging import build_log_context
from mailuptime.schemas.status import MailStatusRead
from mailuptime.services import status_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mailuptime", tags=["Mail Monitoring"])


def _unavailable(body: dict) -> JSONResponse:
    return JSONResponse(status_code=503, content=body)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


@router.get("/received-today/{mailbox_name}")
def check_received_today(mailbox_name: str, db: Session = Depends(get_db)):
    """200 if the expected report arrived today, 503 otherwise."""
    logger.info(
        "API call: received-today for %s",
        mailbox_name,
        extra=build_log_context(mailbox=mailbox_name, endpoint="received_today"),
    )
    result = status_service.get_status(db, mailbox_name)

    if result.error:
        return _unavailable({"message": result.error})

    if result.pattern_matched:
        return {
            "message": "Report received today",
            "lastChecked": _iso(result.last_checked),
            "lastReceivedDate": _iso(result.last_received_date),
        }

    return _unavailable({"message": "No report received today"})


@router.get("/pattern-matched/{mailbox_name}")
def check_pattern_matched(mailbox_name: str, db: Session = Depends(get_db)):
    """200 if a message matching the success pattern arrived today, 503 otherwise."""
    logger.info(
        "API call: pattern-matched for %s",
        mailbox_name,
        extra=build_log_context(mailbox=mailbox_name, endpoint="pattern_matched"),
    )
    result = status_service.get_status(db, mailbox_name)

    if result.error:
        return _unavailable({"message": result.error})

    if result.pattern_matched:
        return {
            "message": "Pattern matched",
            "lastChecked": _iso(result.last_checked),
            "lastReceivedDate": _iso(result.last_received_date),
            "lastMatchedSubject": result.last_matched_subject,
        }

    return _unavailable({"message": "Pattern not matched"})


@router.get("/fail-pattern-matched/{mailbox_name}")
def check_fail_pattern_matched(mailbox_name: str, db: Session = Depends(get_db)):
    """503 if today's report matched the fail pattern (or was not checked), 200 otherwise."""
    logger.info(
        "API call: fail-pattern-matched for %s",
        mailbox_name,
        extra=build_log_context(mailbox=mailbox_name, endpoint="fail_pattern_matched"),
    )
    result = status_service.get_status(db, mailbox_name)

    if result.error:
        return _unavailable({"message": result.error})

    if result.fail_pattern_matched:
        logger.warning(
            "Failure detected for %s, subject: %s",
            mailbox_name,
            result.last_failed_subject,
        )
        return _unavailable(
            {
                "message": "Failure pattern matched - issue detected",
                "lastChecked": _iso(result.last_checked),
                "lastFailedSubject": result.last_failed_subject,
            }
        )

    return {"message": "No failures detected"}


@router.get("/status/{mailbox_name}", response_model=MailStatusRead)
def get_status(mailbox_name: str, db: Session = Depends(get_db)):
    """Full status for today; `error` is populated when not checked yet."""
    return status_service.get_status(db, mailbox_name)
