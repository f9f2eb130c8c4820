"""Runs one independent monitor task per configured mailbox."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from sqlalchemy.orm import Session

from mailuptime.core.mailbox_config import EffectiveConfig, MailboxSettings
from mailuptime.db.enums import MailProtocol
from mailuptime.services.mail_source import MailSource, get_mail_source
from mailuptime.services.monitor_service import MailboxMonitor

logger = logging.getLogger(__name__)

MailSourceFactory = Callable[[EffectiveConfig], MailSource]


def default_mail_source_factory(timeout: float) -> MailSourceFactory:
    def _factory(config: EffectiveConfig) -> MailSource:
        return get_mail_source(MailProtocol(config.protocol), timeout=timeout)

    return _factory


class MonitorOrchestrator:
    """
    Owns the mailbox monitors and their lifecycle.

    start() returns the join handle (a task that completes once every monitor
    loop has ended); stop() signals shutdown, cancels in-flight work and waits
    for the join. Monitors never share state besides the status store.
    """

    def __init__(
        self,
        mailbox_settings: MailboxSettings,
        session_factory: Callable[[], Session],
        mail_source_factory: MailSourceFactory,
    ):
        self.mailbox_settings = mailbox_settings
        self.monitors = [
            MailboxMonitor(config, mail_source_factory(config), session_factory)
            for config in mailbox_settings.effective_configs()
        ]
        self._shutdown = asyncio.Event()
        self._tasks: list[asyncio.Task] = []
        self._join: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._join is not None and not self._join.done()

    def start(self) -> asyncio.Task:
        if self._join is not None:
            raise RuntimeError("Monitoring already started")

        logger.info("Starting monitoring for %s mailboxes", len(self.monitors))
        for monitor in self.monitors:
            logger.info("Initiating monitoring task for mailbox: %s", monitor.name)
            self._tasks.append(
                asyncio.create_task(self._run_monitor(monitor), name=f"monitor:{monitor.name}")
            )
        self._join = asyncio.create_task(self._join_all(), name="monitor-orchestrator")
        return self._join

    async def _run_monitor(self, monitor: MailboxMonitor) -> None:
        try:
            await monitor.run(self._shutdown)
        except asyncio.CancelledError:
            raise
        except Exception:
            # A crashed loop must not take the other mailboxes down with it
            logger.exception("Monitor for mailbox %s crashed", monitor.name)

    async def _join_all(self) -> None:
        await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("All monitoring tasks have completed")

    async def stop(self) -> None:
        """Signal shutdown to every monitor and wait for all loops to end."""
        if self._join is None:
            return
        logger.info("Stopping monitoring for %s mailboxes", len(self.monitors))
        self._shutdown.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(self._join, return_exceptions=True)
