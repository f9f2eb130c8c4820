"""Structured logging helpers (credential-safe)."""

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for a process entry point."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )


def build_log_context(
    *,
    mailbox: str | None = None,
    operation: str | None = None,
    protocol: str | None = None,
    polling_seconds: int | None = None,
    endpoint: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict; never carries credentials."""
    context: dict[str, Any] = {}
    if mailbox:
        context["mailbox"] = mailbox
    if operation:
        context["operation"] = operation
    if protocol:
        context["protocol"] = protocol
    if polling_seconds:
        context["polling_seconds"] = polling_seconds
    if endpoint:
        context["endpoint"] = endpoint
    return context
