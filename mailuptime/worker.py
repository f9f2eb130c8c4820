"""
Headless monitor process.

Usage:
    python -m mailuptime.worker

Runs one monitor loop per configured mailbox until SIGINT/SIGTERM.
"""

import asyncio
import logging
import signal

from mailuptime.core.config import settings
from mailuptime.core.mailbox_config import MailboxSettings, load_mailbox_settings
from mailuptime.core.migrations import ensure_migrations
from mailuptime.core.structured_logging import build_log_context, configure_logging
from mailuptime.db.session import SessionLocal, engine
from mailuptime.services.orchestrator import MonitorOrchestrator, default_mail_source_factory

logger = logging.getLogger(__name__)


async def run_worker(mailbox_settings: MailboxSettings) -> None:
    """Start all monitors and wait until a shutdown signal arrives."""
    orchestrator = MonitorOrchestrator(
        mailbox_settings,
        SessionLocal,
        default_mail_source_factory(settings.MAIL_TIMEOUT_SECONDS),
    )
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            # Windows event loops; KeyboardInterrupt still ends the process
            pass

    logger.info("Worker starting (%s mailboxes)", len(orchestrator.monitors))
    orchestrator.start()
    try:
        await stop_requested.wait()
    finally:
        await orchestrator.stop()
    logger.info("Worker stopped")


def main() -> None:
    """Entry point for the worker."""
    configure_logging(settings.log_level_value)
    mailbox_settings = load_mailbox_settings(settings.MAILBOX_CONFIG_PATH)
    ensure_migrations(engine, settings.AUTO_MIGRATE)
    try:
        asyncio.run(run_worker(mailbox_settings))
    except KeyboardInterrupt:
        logger.info("Worker shutting down")
    except Exception:
        logger.exception(
            "Worker crashed",
            extra=build_log_context(operation="worker"),
        )
        raise


if __name__ == "__main__":
    main()
