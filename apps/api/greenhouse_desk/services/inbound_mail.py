"""Turns an inbound email into a ticket reply or a new ticket.

Both ingestion paths (the provider webhook and the mailbox poller) normalize
their input into an ``InboundMessage`` and hand it to ``correlate``. The
message is matched to a ticket by the ``#<number>`` token in its subject; see
``extract_ticket_number``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr
import logging
import re

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.errors import CorrelationMismatch, UnresolvableMessage, ValidationFailed
from ..models.department import Department
from ..models.ticket import Ticket
from ..models.user import User
from .ledger import add_comment
from .mail_events import notify_assignee_replied
from .ticket_service import create_ticket, get_by_number, release_hold

logger = logging.getLogger(__name__)

TICKET_NUMBER_RE = re.compile(r"#(\d+)")
REPLY_PREFIX_RE = re.compile(r"^\s*(re|fwd?)\s*:\s*", re.IGNORECASE)

EMPTY_REPLY = "No content"
EMPTY_DESCRIPTION = "No description provided"
EMPTY_SUBJECT = "(no subject)"


@dataclass
class InboundMessage:
    sender: str
    subject: str
    body: str = ""
    recipients: list[str] = field(default_factory=list)
    sender_name: str | None = None
    received_at: datetime | None = None
    thread_id: str | None = None
    message_id: str | None = None


@dataclass
class InboundResult:
    action: str  # reply_added | ticket_created
    ticket_id: int
    ticket_number: int
    comment_id: int | None = None

    @property
    def message(self) -> str:
        if self.action == "ticket_created":
            return "New ticket created"
        return "Email reply processed successfully"


def extract_ticket_number(subject: str | None) -> int | None:
    """The only rule tying an email to an existing ticket."""
    if not subject:
        return None
    m = TICKET_NUMBER_RE.search(subject)
    if not m:
        return None
    return int(m.group(1))


def strip_reply_prefixes(subject: str | None) -> str:
    title = (subject or "").strip()
    while True:
        stripped = REPLY_PREFIX_RE.sub("", title, count=1)
        if stripped == title:
            break
        title = stripped.strip()
    return title or EMPTY_SUBJECT


def _header(headers, name: str) -> str | None:
    if isinstance(headers, dict):
        for key, value in headers.items():
            if key.lower() == name:
                return value
    elif isinstance(headers, list):
        for item in headers:
            if isinstance(item, dict) and str(item.get("name", "")).lower() == name:
                return item.get("value")
    return None


def from_webhook(data: dict) -> InboundMessage:
    """Normalize the ``data`` object of an ``email.received`` webhook."""
    sender_name, sender = parseaddr(data.get("from") or "")
    if not sender:
        raise ValidationFailed("Inbound email has no sender")
    to = data.get("to") or []
    if isinstance(to, str):
        to = [to]
    recipients = [addr for _, addr in getaddresses(to) if addr]
    headers = data.get("headers") or {}
    return InboundMessage(
        sender=sender,
        sender_name=sender_name or None,
        recipients=recipients,
        subject=data.get("subject") or "",
        body=data.get("text") or "",
        thread_id=_header(headers, "message-id"),
        message_id=_header(headers, "message-id"),
    )


def _requester_name(message: InboundMessage) -> str:
    if message.sender_name and message.sender_name.strip():
        return message.sender_name.strip()
    return message.sender.split("@")[0]


def _find_department(session: Session, recipients: list[str]) -> Department | None:
    for addr in recipients:
        dept = session.scalar(select(Department).where(func.lower(Department.email) == addr.strip().lower()))
        if dept:
            return dept
    return None


def _add_reply(session: Session, ticket: Ticket, message: InboundMessage) -> InboundResult:
    text = message.body.strip()
    comment = add_comment(
        session,
        ticket,
        None,
        f"[Email Reply from {message.sender}]\n\n{text or EMPTY_REPLY}",
        kind="email_reply",
    )
    if release_hold(session, ticket):
        logger.info("Ticket #%s taken off hold by requester reply", ticket.ticket_number)
    if ticket.assigned_to is not None:
        assignee = session.get(User, ticket.assigned_to)
        if assignee and assignee.email:
            notify_assignee_replied(session, ticket, assignee.email, text)
    ticket.updated_at = datetime.now(timezone.utc)
    session.flush()
    logger.info("Email reply added: ticket=#%s comment=%s", ticket.ticket_number, comment.id)
    return InboundResult("reply_added", ticket.id, ticket.ticket_number, comment.id)


def correlate(session: Session, message: InboundMessage) -> InboundResult:
    """Append a reply, open a new ticket, or raise.

    Raises ``CorrelationMismatch`` when the subject names a ticket whose
    requester is someone else, and ``UnresolvableMessage`` when neither a
    ticket nor a department mailbox matches. Neither case writes anything.
    The caller commits.
    """
    if not message.sender:
        raise ValidationFailed("Inbound email has no sender")

    number = extract_ticket_number(message.subject)
    ticket = get_by_number(session, number) if number is not None else None
    if ticket is not None:
        if (ticket.requester_email or "").lower() != message.sender.lower():
            logger.warning("Inbound reply rejected: sender mismatch for ticket #%s", number)
            raise CorrelationMismatch()
        return _add_reply(session, ticket, message)

    dept = _find_department(session, message.recipients)
    if dept is None:
        logger.warning(
            "Inbound email rejected: no ticket or department (subject=%r to=%s)",
            message.subject,
            ",".join(message.recipients),
        )
        raise UnresolvableMessage()

    ticket = create_ticket(
        session,
        title=strip_reply_prefixes(message.subject),
        description=message.body.strip() or EMPTY_DESCRIPTION,
        department_id=dept.id,
        requester_email=message.sender,
        requester_name=_requester_name(message),
        created_via="email",
        email_thread_id=message.thread_id,
    )
    return InboundResult("ticket_created", ticket.id, ticket.ticket_number)
