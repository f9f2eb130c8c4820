"""
Schema migration helpers.

The API and the headless worker both call ensure_migrations() on boot, so
upgrades run on the caller's engine and, on PostgreSQL, behind an advisory
lock that serializes concurrent starters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

# Migration scripts live inside the package, next to core/
SCRIPT_LOCATION = Path(__file__).resolve().parents[1] / "alembic"
UPGRADE_LOCK_KEY = 5_810_302


@dataclass(frozen=True)
class MigrationStatus:
    current_heads: tuple[str, ...]
    head_revisions: tuple[str, ...]

    @property
    def is_up_to_date(self) -> bool:
        return set(self.current_heads) == set(self.head_revisions)


class MigrationError(RuntimeError):
    """Schema is behind head after an automatic upgrade."""


def _alembic_config(connection: Connection | None = None) -> Config:
    if not (SCRIPT_LOCATION / "env.py").is_file():
        raise MigrationError(f"Migration scripts not found at {SCRIPT_LOCATION}")
    config = Config()
    config.set_main_option("script_location", str(SCRIPT_LOCATION))
    # env.py migrates on this connection and leaves logging alone
    config.attributes["connection"] = connection
    config.attributes["configure_logger"] = False
    return config


def get_migration_status(engine: Engine) -> MigrationStatus:
    heads = ScriptDirectory.from_config(_alembic_config()).get_heads()
    with engine.connect() as connection:
        current = MigrationContext.configure(connection).get_current_heads()
    return MigrationStatus(current_heads=tuple(current or ()), head_revisions=tuple(heads or ()))


def upgrade_to_head(engine: Engine) -> None:
    with engine.connect() as connection:
        locked = connection.dialect.name == "postgresql"
        if locked:
            connection.execute(text("SELECT pg_advisory_lock(:key)"), {"key": UPGRADE_LOCK_KEY})
            connection.commit()
        try:
            command.upgrade(_alembic_config(connection), "head")
            connection.commit()
        finally:
            if locked:
                connection.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": UPGRADE_LOCK_KEY})
                connection.commit()


def ensure_migrations(engine: Engine, auto_migrate: bool) -> MigrationStatus:
    """Upgrade to head when allowed; returns the resulting status."""
    status = get_migration_status(engine)
    if status.is_up_to_date:
        return status
    if not auto_migrate:
        logger.warning(
            "Database schema is behind head (%s != %s) and AUTO_MIGRATE is off",
            ",".join(status.current_heads) or "base",
            ",".join(status.head_revisions),
        )
        return status

    logger.info("Upgrading database schema to %s", ",".join(status.head_revisions))
    upgrade_to_head(engine)
    status = get_migration_status(engine)
    if not status.is_up_to_date:
        raise MigrationError("Database migrations did not reach head after auto-upgrade.")
    return status
