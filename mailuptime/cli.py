"""CLI tools for MailUptime operations."""

import asyncio

import click

from mailuptime.core.config import settings
from mailuptime.core.mailbox_config import MailboxConfigError, load_mailbox_settings
from mailuptime.core.structured_logging import configure_logging
from mailuptime.db.session import SessionLocal
from mailuptime.services import status_service


def _load_mailboxes(config_path: str | None):
    try:
        return load_mailbox_settings(config_path or settings.MAILBOX_CONFIG_PATH)
    except MailboxConfigError as e:
        raise click.ClickException(str(e))


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level: str | None):
    """MailUptime CLI tools."""
    configure_logging((log_level or settings.log_level_value).upper())


@cli.command()
def migrate():
    """Upgrade the database schema to head."""
    from mailuptime.core.migrations import ensure_migrations
    from mailuptime.db.session import engine

    status = ensure_migrations(engine, auto_migrate=True)
    click.echo(f"✓ Database at {', '.join(status.current_heads) or 'base'}")


@cli.command()
@click.option("--config", "config_path", default=None, help="Mailbox configuration JSON file")
def run(config_path: str | None):
    """
    Monitor all configured mailboxes until interrupted.

    Example:
        mailuptime run --config mailboxes.json
    """
    from mailuptime.core.migrations import ensure_migrations
    from mailuptime.db.session import engine
    from mailuptime.worker import run_worker

    mailbox_settings = _load_mailboxes(config_path)
    ensure_migrations(engine, settings.AUTO_MIGRATE)
    try:
        asyncio.run(run_worker(mailbox_settings))
    except KeyboardInterrupt:
        click.echo("Monitoring stopped")


@cli.command()
@click.option("--host", default=None, help="Bind address (default: settings.HOST)")
@click.option("--port", default=None, type=int, help="Bind port (default: settings.PORT)")
def serve(host: str | None, port: int | None):
    """Serve the status API and run monitoring in the same process."""
    import uvicorn

    uvicorn.run(
        "mailuptime.main:create_app",
        factory=True,
        host=host or settings.HOST,
        port=port or settings.PORT,
        log_level=settings.log_level_value.lower(),
    )


@cli.command()
@click.argument("name")
@click.option("--config", "config_path", default=None, help="Mailbox configuration JSON file")
@click.option("--save/--no-save", default=True, help="Persist the outcome like a monitor cycle")
def check(name: str, config_path: str | None, save: bool):
    """
    Run one check cycle for a mailbox now and print the verdict.

    Example:
        mailuptime check Invoices --no-save
    """
    from mailuptime.core.mailbox_config import resolve_effective_config
    from mailuptime.services.mail_source import get_mail_source
    from mailuptime.services.monitor_service import MailboxMonitor
    from mailuptime.utils.datetime_parsing import local_today

    mailbox_settings = _load_mailboxes(config_path)
    mailbox = mailbox_settings.find(name)
    if mailbox is None:
        raise click.ClickException(f"Mailbox '{name}' is not configured")

    config = resolve_effective_config(mailbox, mailbox_settings.defaults)
    monitor = MailboxMonitor(
        config,
        get_mail_source(config.protocol, timeout=settings.MAIL_TIMEOUT_SECONDS),
        SessionLocal,
    )

    if save:
        result = asyncio.run(monitor.run_cycle())
        click.echo(f"Outcome: {result.outcome.value}")
        verdict = result.verdict
    else:
        verdict = asyncio.run(monitor.check_mailbox(local_today()))

    if verdict is None:
        click.echo("Already matched today, no check performed")
        return
    if verdict.error:
        raise click.ClickException(verdict.error)

    click.echo(f"  Pattern matched: {verdict.pattern_matched}")
    click.echo(f"  Fail pattern matched: {verdict.fail_pattern_matched}")
    click.echo(f"  Last received: {verdict.last_received_at or '-'}")
    click.echo(f"  Matched subject: {verdict.last_matched_subject or '-'}")
    if verdict.fail_pattern_matched:
        click.echo(f"  Failed subject: {verdict.last_failed_subject}")


@cli.command()
@click.argument("name", required=False)
@click.option("--config", "config_path", default=None, help="Mailbox configuration JSON file")
def status(name: str | None, config_path: str | None):
    """Print today's persisted status for one or all mailboxes."""
    with SessionLocal() as db:
        if name:
            result = status_service.get_status(db, name)
            if result.error:
                click.echo(f"{name}: {result.error}")
                return
            click.echo(
                f"{name}: matched={result.pattern_matched} "
                f"failed={result.fail_pattern_matched} "
                f"last_checked={result.last_checked}"
            )
            return

        mailbox_settings = _load_mailboxes(config_path)
        for row in status_service.list_all_statuses(db, mailbox_settings):
            state = row.error or f"matched={row.pattern_matched} failed={row.fail_pattern_matched}"
            click.echo(f"{row.name}: {state}")


if __name__ == "__main__":
    cli()
