"""
Test configuration and fixtures.

Provides:
- A per-test SQLite database built from the ORM metadata
- An in-memory mail source implementing the adapter contract
- Builders for messages, effective configs and monitors
"""
import os
import threading
from datetime import date, datetime, timezone
from typing import Callable, Generator, Sequence

import pytest
from sqlalchemy.orm import Session

# Keep the module-level engine away from any real database
os.environ.setdefault("DATABASE_URL", "sqlite://")

from mailuptime.core.mailbox_config import (
    EffectiveConfig,
    MailboxConfig,
    MailboxDefaults,
    resolve_effective_config,
)
from mailuptime.db.base import Base
import mailuptime.db.models  # noqa: F401
from mailuptime.db.session import build_engine, build_session_factory
from mailuptime.services.mail_source import MailMessage, MailSession, MailSource
from mailuptime.services.monitor_service import MailboxMonitor
from mailuptime.utils.normalization import address_matches_any


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """File-backed SQLite so worker threads share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'mailuptime-test.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Mail Source Fakes
# =============================================================================

class FakeMailSession(MailSession):
    def __init__(self, source: "FakeMailSource"):
        self.source = source

    def authenticate(self, username: str, password: str) -> None:
        self.source.auth_calls.append((username, password))
        if self.source.auth_error:
            raise self.source.auth_error

    def list_since(self, day: date, senders: Sequence[str] = ()) -> list[str]:
        self.source.list_calls.append((day, tuple(senders)))
        if self.source.block_listing is not None:
            self.source.listing_started.set()
            self.source.block_listing.wait(timeout=10)
        if self.source.list_error:
            raise self.source.list_error
        return [
            m.ref for m in self.source.messages
            if address_matches_any(m.from_address, senders)
        ]

    def fetch(self, ref: str) -> MailMessage:
        self.source.fetched.append(ref)
        for message in self.source.messages:
            if message.ref == ref:
                return message
        raise KeyError(ref)

    def close(self) -> None:
        self.source.closed += 1


class FakeMailSource(MailSource):
    """In-memory INBOX; messages are listed in insertion (server) order."""

    def __init__(self, messages: list[MailMessage] | None = None):
        super().__init__(timeout=1)
        self.messages = list(messages or [])
        self.connect_error: Exception | None = None
        self.auth_error: Exception | None = None
        self.list_error: Exception | None = None
        self.block_listing: threading.Event | None = None
        self.listing_started = threading.Event()
        self.connects: list[tuple[str, int, bool]] = []
        self.auth_calls: list[tuple[str, str]] = []
        self.list_calls: list[tuple[date, tuple[str, ...]]] = []
        self.fetched: list[str] = []
        self.closed = 0

    def connect(self, host: str, port: int, use_tls: bool) -> MailSession:
        self.connects.append((host, port, use_tls))
        if self.connect_error:
            raise self.connect_error
        return FakeMailSession(self)


@pytest.fixture
def fake_source() -> FakeMailSource:
    return FakeMailSource()


@pytest.fixture
def fake_source_factory() -> Callable[..., FakeMailSource]:
    return FakeMailSource


# =============================================================================
# Builders
# =============================================================================

@pytest.fixture
def make_message() -> Callable[..., MailMessage]:
    counter = {"n": 0}

    def _make(
        subject: str,
        body: str | None = "",
        html: str | None = None,
        received_at: datetime | None = None,
        from_address: str = "Billing <billing@example.com>",
        ref: str | None = None,
    ) -> MailMessage:
        counter["n"] += 1
        return MailMessage(
            ref=ref or str(counter["n"]),
            subject=subject,
            text_body=body,
            html_body=html,
            received_at=received_at or datetime(2025, 3, 7, 6, counter["n"], tzinfo=timezone.utc),
            from_address=from_address,
        )

    return _make


@pytest.fixture
def make_config() -> Callable[..., EffectiveConfig]:
    def _make(name: str = "Invoices", **overrides) -> EffectiveConfig:
        defaults = MailboxDefaults(
            host="imap.example.com",
            username="reports@example.com",
            password="secret",
            polling_frequency_seconds=1,
        )
        return resolve_effective_config(MailboxConfig(name=name, **overrides), defaults)

    return _make


@pytest.fixture
def make_monitor(session_factory) -> Callable[..., MailboxMonitor]:
    def _make(config: EffectiveConfig, source: MailSource) -> MailboxMonitor:
        return MailboxMonitor(config, source, session_factory)

    return _make


# =============================================================================
# API Fixtures
# =============================================================================

@pytest.fixture
def api_mailbox_settings():
    from mailuptime.core.mailbox_config import parse_mailbox_settings

    return parse_mailbox_settings(
        {
            "defaults": {"host": "imap.example.com"},
            "mailboxes": [
                {"name": "Invoices", "expected_subject_pattern": r"invoice #\d+"},
                {
                    "name": "NightlyBackup",
                    "expected_subject_pattern": "nightly backup",
                    "fail_subject_pattern": "failed",
                    "expected_sender_emails": ["backup@example.com"],
                },
            ],
        }
    )


@pytest.fixture
def app(api_mailbox_settings, session_factory):
    from mailuptime.main import create_app

    return create_app(
        mailbox_settings=api_mailbox_settings,
        session_factory=session_factory,
        mail_source_factory=lambda config: FakeMailSource(),
        start_monitoring=False,
    )


@pytest.fixture
async def client(app):
    from httpx import ASGITransport, AsyncClient

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c
