from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import CorrelationMismatch, UnresolvableMessage, ValidationFailed
from ..models.department import Department
from ..models.sync_state import SyncState
from .graph_client import GraphClient, GraphMessage
from .inbound_mail import InboundMessage, correlate

logger = logging.getLogger(__name__)

SYNC_KEY_EMAIL_CHECK = "last_email_check"

# Counted per run; the message is still marked read.
REJECTIONS = (CorrelationMismatch, UnresolvableMessage, ValidationFailed)


@dataclass
class PollSummary:
    mailboxes: int = 0
    processed: int = 0
    replies: int = 0
    created: int = 0
    rejected: int = 0
    rejections: list[dict] = field(default_factory=list)
    watermark: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "mailboxes": self.mailboxes,
            "processed": self.processed,
            "replies": self.replies,
            "created": self.created,
            "rejected": self.rejected,
            "rejections": self.rejections,
            "watermark": self.watermark.isoformat() if self.watermark else None,
        }


def load_watermark(session: Session, now: datetime, lookback_hours: int | None = None) -> datetime:
    state = session.get(SyncState, SYNC_KEY_EMAIL_CHECK)
    if state and state.last_synced_at:
        last = state.last_synced_at
        # SQLite hands timestamps back naive.
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return last
    hours = settings.inbound_lookback_hours if lookback_hours is None else lookback_hours
    return now - timedelta(hours=hours)


def save_watermark(session: Session, value: datetime) -> None:
    state = session.get(SyncState, SYNC_KEY_EMAIL_CHECK)
    if not state:
        state = SyncState(key=SYNC_KEY_EMAIL_CHECK)
        session.add(state)
    state.last_synced_at = value
    session.commit()


def _to_inbound(msg: GraphMessage) -> InboundMessage:
    # The mailbox the message was fetched from decides the department.
    recipients = [msg.mailbox] + [r for r in msg.recipients if r.lower() != msg.mailbox.lower()]
    return InboundMessage(
        sender=msg.sender,
        sender_name=msg.sender_name,
        recipients=recipients,
        subject=msg.subject,
        body=msg.body,
        received_at=msg.received_at,
        thread_id=msg.conversation_id,
        message_id=msg.id,
    )


def check_mailboxes(
    session: Session,
    graph: GraphClient,
    now: datetime | None = None,
    lookback_hours: int | None = None,
) -> PollSummary:
    """Correlate unread mail in every department mailbox.

    Each message is committed on its own and then marked read. The watermark
    moves to the run's start time only after every mailbox was processed, so a
    crash mid-run reprocesses the remainder on the next run.
    """
    started = now or datetime.now(timezone.utc)
    since = load_watermark(session, started, lookback_hours)
    summary = PollSummary()

    mailboxes = session.scalars(select(Department.email).order_by(Department.id.asc())).all()
    for mailbox in mailboxes:
        if not mailbox:
            continue
        summary.mailboxes += 1
        for msg in graph.list_unread(mailbox, since):
            summary.processed += 1
            try:
                result = correlate(session, _to_inbound(msg))
                session.commit()
            except REJECTIONS as exc:
                session.rollback()
                summary.rejected += 1
                summary.rejections.append({"mailbox": mailbox, "id": msg.id, "code": exc.code, "detail": exc.detail})
                logger.warning("Inbound email rejected: mailbox=%s id=%s code=%s", mailbox, msg.id, exc.code)
            else:
                if result.action == "ticket_created":
                    summary.created += 1
                else:
                    summary.replies += 1
            graph.mark_as_read(mailbox, msg.id)

    save_watermark(session, started)
    summary.watermark = started
    logger.info(
        "Mailbox check completed: mailboxes=%d processed=%d replies=%d created=%d rejected=%d",
        summary.mailboxes,
        summary.processed,
        summary.replies,
        summary.created,
        summary.rejected,
    )
    return summary
