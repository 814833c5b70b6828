"""The two scheduled jobs, runnable from the API process or the CLI."""

from __future__ import annotations

import logging

from ..core.config import Settings, settings as default_settings
from ..core.errors import MailAuthError
from ..db import SessionLocal
from .graph_client import GraphClient
from .mail_service import DeliverySummary, deliver_pending
from .mail_transport import MailTransport, build_transport
from .mailbox_poller import PollSummary, check_mailboxes
from .scheduler import PeriodicTask

logger = logging.getLogger(__name__)


def deliver_mail_once(
    batch_size: int | None = None,
    transport: MailTransport | None = None,
    config: Settings | None = None,
) -> DeliverySummary:
    cfg = config or default_settings
    transport = transport or build_transport(cfg)
    if transport is None:
        raise MailAuthError("Mail delivery is not configured")
    with SessionLocal() as session:
        summary = deliver_pending(session, transport, batch_size or cfg.mail_batch_size)
    if summary.processed:
        logger.info(
            "Mail delivery run: processed=%d sent=%d retrying=%d failed=%d",
            summary.processed,
            summary.sent,
            summary.retrying,
            summary.failed,
        )
    return summary


def check_mailboxes_once(graph: GraphClient | None = None, config: Settings | None = None) -> PollSummary:
    cfg = config or default_settings
    if graph is None and not cfg.graph_configured:
        raise MailAuthError("Microsoft Graph credentials are not configured")
    client = graph or GraphClient(cfg)
    try:
        with SessionLocal() as session:
            return check_mailboxes(session, client, lookback_hours=cfg.inbound_lookback_hours)
    finally:
        if graph is None:
            client.close()


def background_tasks(config: Settings | None = None) -> list[PeriodicTask]:
    cfg = config or default_settings
    tasks: list[PeriodicTask] = []
    if cfg.mail_worker_enabled:
        transport = build_transport(cfg)
        if transport is None:
            logger.info("Mail backend not configured; mail worker not started")
        else:
            tasks.append(
                PeriodicTask("mail-worker", cfg.mail_poll_seconds, lambda: deliver_mail_once(transport=transport, config=cfg))
            )
    if cfg.inbound_poll_enabled:
        if not cfg.graph_configured:
            logger.info("Graph credentials missing; mailbox poller not started")
        else:
            tasks.append(PeriodicTask("mailbox-poller", cfg.inbound_poll_seconds, lambda: check_mailboxes_once(config=cfg)))
    return tasks
