from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging

from email_validator import validate_email, EmailNotValidError
from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..core.errors import MailAuthError
from ..models.outbound_email import OutboundEmail
from ..models.ticket import Ticket
from .mail_notifications import render_message
from .mail_transport import MailTransport

logger = logging.getLogger(__name__)

MAIL_MAX_ATTEMPTS = 3
# A claimed entry is invisible to other runs for this long.
MAIL_CLAIM_SECONDS = 300
TEMPLATE_TYPES = {"ticket_created", "ticket_updated", "comment_added", "status_changed", "info_requested"}


@dataclass
class DeliverySummary:
    processed: int = 0
    sent: int = 0
    retrying: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "processed": self.processed,
            "sent": self.sent,
            "retrying": self.retrying,
            "failed": self.failed,
            "errors": self.errors,
        }


def _validate_email(addr: str | None) -> str | None:
    if not addr:
        return None
    try:
        return validate_email(addr, check_deliverability=False).normalized
    except EmailNotValidError:
        return None


def enqueue_mail(
    session: Session,
    *,
    ticket_id: int | None,
    to_email: str,
    subject: str,
    body: str,
    template_type: str,
    cc_emails: list[str] | None = None,
) -> OutboundEmail:
    """Add a message to the outbox. Nothing is sent here.

    The row joins the caller's transaction; the caller commits.
    """
    if template_type not in TEMPLATE_TYPES:
        raise ValueError(f"Unknown template type: {template_type}")

    normalized = _validate_email(to_email)
    cc = [c for c in (_validate_email(addr) for addr in cc_emails or []) if c]
    entry = OutboundEmail(
        ticket_id=ticket_id,
        to_email=normalized or to_email,
        cc_emails=cc or None,
        subject=subject[:255],
        body=body,
        template_type=template_type,
        status="pending",
        attempts=0,
    )
    if not normalized:
        # Never deliverable; parked for manual resubmission.
        entry.status = "failed"
        entry.error_message = "Invalid recipient address"
        logger.info("Invalid recipient, mail not queued: %s", to_email)
    session.add(entry)
    session.flush()
    if entry.status == "pending":
        logger.info("Mail queued: id=%s template=%s ticket_id=%s", entry.id, template_type, ticket_id)
    return entry


def _load_pending(session: Session, batch_size: int, now: datetime) -> list[OutboundEmail]:
    stale = now - timedelta(seconds=MAIL_CLAIM_SECONDS)
    stmt = (
        select(OutboundEmail)
        .where(OutboundEmail.status == "pending")
        .where(OutboundEmail.attempts < MAIL_MAX_ATTEMPTS)
        .where(or_(OutboundEmail.last_attempt_at.is_(None), OutboundEmail.last_attempt_at < stale))
        .order_by(OutboundEmail.id.asc())
        .with_for_update(skip_locked=True)
        .limit(batch_size)
    )
    return list(session.scalars(stmt).all())


def claim_pending(session: Session, batch_size: int, now: datetime | None = None) -> list[OutboundEmail]:
    """Lock a batch, stamp it and count the attempt, then commit.

    The stamp keeps the entries out of other runs for ``MAIL_CLAIM_SECONDS``
    once the row locks are released, so two overlapping runs never send the
    same entry. A failed entry waits out the same window before its retry.
    """
    now = now or datetime.now(timezone.utc)
    entries = _load_pending(session, batch_size, now)
    for entry in entries:
        entry.last_attempt_at = now
        entry.attempts = OutboundEmail.attempts + 1
    session.commit()
    return entries


def release_claim(session: Session, entries: list[OutboundEmail]) -> None:
    """Undo a claim for entries that were never handed to the transport."""
    for entry in entries:
        entry.last_attempt_at = None
        entry.attempts = OutboundEmail.attempts - 1
    session.commit()


def record_failure(entry: OutboundEmail, error: str) -> None:
    entry.error_message = error
    entry.status = "failed" if entry.attempts >= MAIL_MAX_ATTEMPTS else "pending"


def record_success(entry: OutboundEmail, now: datetime) -> None:
    entry.status = "sent"
    entry.sent_at = now
    entry.error_message = None


def deliver_pending(session: Session, transport: MailTransport, batch_size: int = 10) -> DeliverySummary:
    """Send up to ``batch_size`` queued messages, each one independently.

    Every entry is committed on its own so one failure cannot undo another
    entry's progress. Delivery is at-least-once: a crash between the provider
    accepting a message and the commit resends it once the claim expires.

    ``MailAuthError`` aborts the run: the unsent part of the batch is released
    with its attempt counts unchanged and the error propagates.
    """
    summary = DeliverySummary()
    entries = claim_pending(session, batch_size)
    ticket_ids = {e.ticket_id for e in entries if e.ticket_id is not None}
    numbers: dict[int, int] = {}
    if ticket_ids:
        rows = session.execute(select(Ticket.id, Ticket.ticket_number).where(Ticket.id.in_(ticket_ids))).all()
        numbers = {row.id: row.ticket_number for row in rows}

    for index, entry in enumerate(entries):
        now = datetime.now(timezone.utc)
        try:
            message = render_message(entry, numbers.get(entry.ticket_id))
            transport.send(message)
        except MailAuthError:
            logger.exception("Mail credentials rejected; releasing %d entries", len(entries) - index)
            session.rollback()
            release_claim(session, entries[index:])
            raise
        except Exception as exc:  # noqa: BLE001 - per-item isolation
            record_failure(entry, str(exc))
            if entry.status == "failed":
                summary.failed += 1
            else:
                summary.retrying += 1
            summary.errors.append({"id": entry.id, "error": str(exc)})
            logger.exception("Mail send failed: id=%s attempts=%s", entry.id, entry.attempts)
        else:
            record_success(entry, now)
            summary.sent += 1
            logger.info("Mail sent: id=%s to=%s", entry.id, entry.to_email)
        summary.processed += 1
        session.commit()
    return summary


def retry_failed(session: Session, entry_id: int) -> OutboundEmail | None:
    """Manual resubmission of a terminally failed message."""
    entry = session.get(OutboundEmail, entry_id)
    if entry is None or entry.status != "failed":
        return entry
    entry.status = "pending"
    entry.attempts = 0
    entry.last_attempt_at = None
    entry.error_message = None
    session.commit()
    logger.info("Mail resubmitted: id=%s", entry.id)
    return entry
