"""
Per-mailbox monitor.

Each cycle:
1. Skip the network entirely when today's record already shows a match.
2. Otherwise list today's candidates (optionally filtered by sender).
3. With a success pattern, scan candidates in server order and stop at the
   first match; without one, the newest candidate is the match.
4. Evaluate the fail pattern on the matched message.
5. Upsert today's outcome.

Steps 1 and 5 use their own short-lived sessions; no database connection
is held while the mail server is being polled.

Any failure in steps 2-5 is logged and retried after the normal interval;
nothing is persisted for that cycle. Cancellation is never caught here.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable

import anyio
from sqlalchemy.orm import Session

from mailuptime.core.mailbox_config import EffectiveConfig
from mailuptime.core.structured_logging import build_log_context
from mailuptime.db.enums import CycleOutcome, MonitorState
from mailuptime.schemas.status import DailyOutcome
from mailuptime.services import pattern_service, status_service
from mailuptime.services.mail_source import MailMessage, MailSession, MailSource
from mailuptime.utils.datetime_parsing import local_today, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckVerdict:
    """Outcome of one poll of the mail source (not persisted standalone)."""

    checked_at: datetime
    pattern_matched: bool = False
    fail_pattern_matched: bool = False
    last_received_at: datetime | None = None
    last_matched_subject: str | None = None
    last_failed_subject: str | None = None
    error: str | None = None

    def to_outcome(self, mailbox_name: str, day: date) -> DailyOutcome:
        return DailyOutcome(
            mailbox_name=mailbox_name,
            day=day,
            pattern_matched=self.pattern_matched,
            fail_pattern_matched=self.fail_pattern_matched,
            last_check_time=self.checked_at,
            last_received_time=self.last_received_at,
            last_matched_subject=self.last_matched_subject,
            last_failed_subject=self.last_failed_subject,
        )


@dataclass(frozen=True)
class CycleResult:
    outcome: CycleOutcome
    verdict: CheckVerdict | None = None

    @property
    def error(self) -> str | None:
        return self.verdict.error if self.verdict else None


async def _in_thread(func: Callable, *args, limiter: anyio.CapacityLimiter | None = None):
    # Abandon the blocking call on cancellation so shutdown is immediate
    return await anyio.to_thread.run_sync(func, *args, abandon_on_cancel=True, limiter=limiter)


class MailboxMonitor:
    """Polling loop for one mailbox."""

    def __init__(
        self,
        config: EffectiveConfig,
        mail_source: MailSource,
        session_factory: Callable[[], Session],
    ):
        self.config = config
        self.mail_source = mail_source
        self.session_factory = session_factory
        self.state = MonitorState.IDLE
        self.last_result: CycleResult | None = None
        self._limiter: anyio.CapacityLimiter | None = None

    @property
    def name(self) -> str:
        return self.config.name

    async def _blocking(self, func: Callable, *args):
        """Run a blocking call on this mailbox's own worker thread slot."""
        # Created lazily: a limiter binds to the running event loop
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(1)
        return await _in_thread(func, *args, limiter=self._limiter)

    def _log_context(self, operation: str) -> dict:
        return build_log_context(
            mailbox=self.name,
            operation=operation,
            protocol=self.config.protocol.value,
            polling_seconds=self.config.polling_frequency_seconds,
        )

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    async def run(self, shutdown: asyncio.Event) -> None:
        """Run cycles until shutdown is set or the task is cancelled."""
        logger.info(
            "Starting monitoring loop for mailbox %s with %ss interval",
            self.name,
            self.config.polling_frequency_seconds,
            extra=self._log_context("monitor_mailbox"),
        )
        try:
            while not shutdown.is_set():
                self.last_result = await self.run_cycle()
                self.state = MonitorState.SLEEPING
                await self._sleep(shutdown)
        except asyncio.CancelledError:
            logger.info("Monitoring cancelled for mailbox %s", self.name)
            raise
        finally:
            self.state = MonitorState.STOPPED
        logger.info("Monitoring loop ended for mailbox %s", self.name)

    async def _sleep(self, shutdown: asyncio.Event) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(shutdown.wait(), timeout=self.config.polling_frequency_seconds)

    async def run_cycle(self) -> CycleResult:
        """One check cycle; recoverable failures come back as ERROR results."""
        self.state = MonitorState.CHECKING
        today = local_today()
        logger.debug("Beginning check cycle for mailbox %s", self.name)

        try:
            if await self._blocking(self._matched_today, today):
                logger.debug(
                    "Mailbox %s: expected mail already arrived today, skipping check",
                    self.name,
                )
                self.state = MonitorState.MATCHED_TODAY
                return CycleResult(outcome=CycleOutcome.SKIPPED)

            verdict = await self.check_mailbox(today)
            await self._blocking(self._save_outcome, verdict.to_outcome(self.name, today))
        except Exception as exc:
            logger.warning(
                "Error checking mailbox %s (%s: %s). Will retry after %ss.",
                self.name,
                type(exc).__name__,
                exc,
                self.config.polling_frequency_seconds,
                extra=self._log_context("check_mailbox"),
            )
            self.state = MonitorState.ERROR
            return CycleResult(
                outcome=CycleOutcome.ERROR,
                verdict=CheckVerdict(checked_at=utc_now(), error=f"{type(exc).__name__}: {exc}"),
            )

        if verdict.fail_pattern_matched:
            logger.warning(
                "Mailbox %s: FAILURE PATTERN DETECTED - Subject: %s",
                self.name,
                verdict.last_failed_subject,
            )
        logger.info(
            "Check completed for %s: pattern_matched=%s fail_pattern_matched=%s",
            self.name,
            verdict.pattern_matched,
            verdict.fail_pattern_matched,
        )
        if verdict.pattern_matched:
            self.state = MonitorState.MATCHED_TODAY
            return CycleResult(outcome=CycleOutcome.MATCHED, verdict=verdict)
        self.state = MonitorState.NOT_MATCHED
        return CycleResult(outcome=CycleOutcome.NOT_MATCHED, verdict=verdict)

    # -------------------------------------------------------------------------
    # Status store (short-lived sessions, run in worker threads)
    # -------------------------------------------------------------------------

    def _matched_today(self, today: date) -> bool:
        with self.session_factory() as db:
            record = status_service.get_today(db, self.name, today)
            return record is not None and record.pattern_matched

    def _save_outcome(self, outcome: DailyOutcome) -> None:
        with self.session_factory() as db:
            status_service.upsert_outcome(db, outcome)

    # -------------------------------------------------------------------------
    # Mail source interaction
    # -------------------------------------------------------------------------

    async def check_mailbox(self, today: date) -> CheckVerdict:
        """Poll the mail source for today's candidates and evaluate them."""
        config = self.config
        checked_at = utc_now()
        logger.debug(
            "Checking mailbox %s via %s at %s:%s",
            self.name,
            config.protocol.value,
            config.host,
            config.port,
        )

        session: MailSession = await self._blocking(
            self.mail_source.connect, config.host, config.port, config.use_tls
        )
        try:
            await self._blocking(session.authenticate, config.username, config.password)
            refs = await self._blocking(session.list_since, today, config.expected_sender_emails)
            logger.debug("Search returned %s candidate messages for %s", len(refs), self.name)
            return await self._evaluate_candidates(session, refs, checked_at)
        finally:
            with contextlib.suppress(Exception):
                await self._blocking(session.close)

    async def _evaluate_candidates(
        self,
        session: MailSession,
        refs: list[str],
        checked_at: datetime,
    ) -> CheckVerdict:
        if not refs:
            logger.debug("No messages found for %s today", self.name)
            return CheckVerdict(checked_at=checked_at)

        config = self.config
        if config.has_success_pattern:
            matched: MailMessage | None = None
            newest: MailMessage | None = None
            for ref in refs:
                message = await self._blocking(session.fetch, ref)
                newest = message
                if pattern_service.matches_success(message, config):
                    matched = message
                    logger.info(
                        "Success pattern matched in message from %s. Subject: %s",
                        self.name,
                        message.subject,
                    )
                    break
            if matched is None:
                logger.warning("No messages matched success pattern for %s", self.name)
                # The scan ran to the end, so the last fetched message is the newest
                return CheckVerdict(
                    checked_at=checked_at,
                    last_received_at=newest.received_at if newest else None,
                )
        else:
            # Presence alone satisfies the check: take the newest candidate
            matched = await self._blocking(session.fetch, refs[-1])
            logger.debug("No success pattern configured, marking %s as matched", self.name)

        fail_match = pattern_service.matches_fail(matched, config)
        if fail_match:
            logger.warning(
                "FAILURE pattern matched in message from %s. Subject: %s",
                self.name,
                matched.subject,
            )
        return CheckVerdict(
            checked_at=checked_at,
            pattern_matched=True,
            fail_pattern_matched=fail_match,
            last_received_at=matched.received_at,
            last_matched_subject=matched.subject,
            last_failed_subject=matched.subject if fail_match else None,
        )
