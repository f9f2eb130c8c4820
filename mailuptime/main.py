"""FastAPI application entry point: status API plus the monitor orchestrator."""
import logging
from typing import Callable

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.orm import Session

from mailuptime.core.config import settings
from mailuptime.core.deps import get_db
from mailuptime.core.mailbox_config import MailboxSettings, load_mailbox_settings
from mailuptime.services.orchestrator import (
    MailSourceFactory,
    MonitorOrchestrator,
    default_mail_source_factory,
)

logger = logging.getLogger(__name__)


def create_app(
    mailbox_settings: MailboxSettings | None = None,
    session_factory: Callable[[], Session] | None = None,
    mail_source_factory: MailSourceFactory | None = None,
    start_monitoring: bool = True,
) -> FastAPI:
    """
    Build the API app.

    With start_monitoring, the orchestrator starts on application startup
    and is stopped (all monitor loops cancelled and joined) on shutdown.
    Called without arguments it wires the process defaults, which is what
    `uvicorn mailuptime.main:create_app --factory` uses.
    """
    use_default_db = session_factory is None
    if mailbox_settings is None:
        mailbox_settings = load_mailbox_settings(settings.MAILBOX_CONFIG_PATH)
    if session_factory is None:
        from mailuptime.db.session import SessionLocal

        session_factory = SessionLocal
    if mail_source_factory is None:
        mail_source_factory = default_mail_source_factory(settings.MAIL_TIMEOUT_SECONDS)

    app = FastAPI(
        title="MailUptime API",
        description="Monitors mailboxes for expected daily reports over IMAP or POP3.",
        version=settings.VERSION,
        docs_url="/docs" if settings.docs_enabled else None,
        redoc_url="/redoc" if settings.docs_enabled else None,
    )
    app.state.mailbox_settings = mailbox_settings
    app.state.session_factory = session_factory
    app.state.orchestrator = None

    # ========================================================================
    # Routers
    # ========================================================================

    from mailuptime.routers import dashboard, mail_uptime

    app.include_router(mail_uptime.router)
    app.include_router(dashboard.router)

    @app.get("/health")
    def health(db: Session = Depends(get_db)):
        """Verifies database connectivity and returns environment info."""
        db.execute(text("SELECT 1"))
        orchestrator = app.state.orchestrator
        return {
            "status": "ok",
            "env": settings.ENV,
            "version": settings.VERSION,
            "monitoring": bool(orchestrator and orchestrator.running),
        }

    # ========================================================================
    # Monitoring lifecycle
    # ========================================================================

    if start_monitoring:

        @app.on_event("startup")
        async def _startup() -> None:
            if use_default_db:
                from mailuptime.core.migrations import ensure_migrations
                from mailuptime.db.session import engine

                ensure_migrations(engine, settings.AUTO_MIGRATE)
            orchestrator = MonitorOrchestrator(
                mailbox_settings, session_factory, mail_source_factory
            )
            orchestrator.start()
            app.state.orchestrator = orchestrator

        @app.on_event("shutdown")
        async def _shutdown() -> None:
            orchestrator = app.state.orchestrator
            if orchestrator:
                await orchestrator.stop()

    return app
