"""CLI for the scheduled mail jobs and dev setup."""

import json
import logging

import click
from sqlalchemy.exc import OperationalError

from .core.errors import DeskError
from .core.seed import seed_admin, seed_departments, seed_ticket_counter
from .db import SessionLocal, engine
from .models.user import Base
from .services import jobs
from .services.mail_service import retry_failed

import greenhouse_desk.models.department  # noqa: F401
import greenhouse_desk.models.ticket  # noqa: F401
import greenhouse_desk.models.comment  # noqa: F401
import greenhouse_desk.models.history  # noqa: F401
import greenhouse_desk.models.outbound_email  # noqa: F401
import greenhouse_desk.models.sync_state  # noqa: F401

logger = logging.getLogger(__name__)


def _echo_summary(data: dict) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose: bool):
    """Greenhouse desk maintenance jobs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command("deliver-mail")
@click.option("--batch-size", type=int, default=None, help="Messages per run (default: MAIL_BATCH_SIZE)")
def deliver_mail(batch_size: int | None):
    """
    Send pending outbound mail once.

    Per-message failures are recorded on the queue entry and do not fail the
    command; missing credentials or an unreachable database do.
    """
    try:
        summary = jobs.deliver_mail_once(batch_size=batch_size)
    except (DeskError, OperationalError) as exc:
        logger.exception("Mail delivery run failed")
        raise click.ClickException(str(exc)) from exc
    _echo_summary(summary.as_dict())


@cli.command("check-mailboxes")
def check_mailboxes():
    """Correlate unread mail in every department mailbox once."""
    try:
        summary = jobs.check_mailboxes_once()
    except (DeskError, OperationalError) as exc:
        logger.exception("Mailbox check failed")
        raise click.ClickException(str(exc)) from exc
    _echo_summary(summary.as_dict())


@cli.command("resubmit-mail")
@click.argument("entry_id", type=int)
def resubmit_mail(entry_id: int):
    """Put a terminally failed message back in the queue."""
    with SessionLocal() as session:
        entry = retry_failed(session, entry_id)
        if entry is None:
            raise click.ClickException(f"Queue entry not found: {entry_id}")
        click.echo(f"Entry {entry.id}: {entry.status}")


@cli.command("init-db")
def init_db():
    """Create tables and seed departments (development only)."""
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed_ticket_counter(session)
        seed_departments(session)
        admin = seed_admin(session)
    click.echo("Database initialized")
    if admin is not None:
        click.echo(f"Admin account: {admin.email}")


if __name__ == "__main__":
    cli()
