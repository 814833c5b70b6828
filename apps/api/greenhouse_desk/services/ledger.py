"""Comments and the append-only change history of a ticket."""

from __future__ import annotations

import logging

from sqlalchemy import desc, select
from sqlalchemy.orm import Session

from ..core.errors import NotFound, PermissionDenied, ValidationFailed
from ..models.comment import TicketComment
from ..models.history import TicketHistory
from ..models.ticket import Ticket
from .mail_events import notify_requester_commented, notify_requester_info_requested

logger = logging.getLogger(__name__)

HISTORY_ACTIONS = (
    "created",
    "status_changed",
    "assignee_changed",
    "priority_changed",
    "comment_added",
    "internal_comment_added",
)


def _str_or_none(value) -> str | None:
    if value is None:
        return None
    return str(value)[:255]


def record_history(
    session: Session,
    ticket_id: int,
    user_id: int | None,
    action: str,
    field_name: str | None = None,
    old_value=None,
    new_value=None,
) -> TicketHistory:
    if action not in HISTORY_ACTIONS:
        raise ValueError(f"Unknown history action: {action}")
    entry = TicketHistory(
        ticket_id=ticket_id,
        user_id=user_id,
        action=action,
        field_name=field_name,
        old_value=_str_or_none(old_value),
        new_value=_str_or_none(new_value),
    )
    session.add(entry)
    return entry


def add_comment(
    session: Session,
    ticket: Ticket,
    user_id: int | None,
    body: str,
    *,
    is_internal: bool = False,
    kind: str = "comment",
) -> TicketComment:
    """Append a comment and its history entry; the caller commits.

    Only plain external comments queue a mail to the requester here; info
    requests and email replies notify through their own templates.
    """
    text = (body or "").strip()
    if not text:
        raise ValidationFailed("Comment body is required")
    comment = TicketComment(
        ticket_id=ticket.id,
        user_id=user_id,
        body=text,
        is_internal=is_internal,
        kind=kind,
    )
    session.add(comment)
    action = "internal_comment_added" if is_internal else "comment_added"
    record_history(session, ticket.id, user_id, action)
    session.flush()
    if kind == "comment" and not is_internal:
        notify_requester_commented(session, ticket, text)
    return comment


def request_info(session: Session, ticket: Ticket, user_id: int, request: str) -> TicketComment:
    """Ask the requester for more details. The ticket status is left alone."""
    text = (request or "").strip()
    if not text:
        raise ValidationFailed("Request text is required")
    comment = add_comment(session, ticket, user_id, f"Information Requested: {text}", kind="info_request")
    notify_requester_info_requested(session, ticket, text)
    logger.info("Info requested: ticket=%s by user=%s", ticket.ticket_number, user_id)
    return comment


def delete_comment(session: Session, comment_id: int, user_id: int) -> None:
    comment = session.get(TicketComment, comment_id)
    if not comment:
        raise NotFound("Comment not found")
    if comment.user_id is None or comment.user_id != user_id:
        raise PermissionDenied("Only the author can delete a comment")
    session.delete(comment)


def list_comments(session: Session, ticket_id: int) -> list[TicketComment]:
    stmt = (
        select(TicketComment)
        .where(TicketComment.ticket_id == ticket_id)
        .order_by(TicketComment.created_at.asc(), TicketComment.id.asc())
    )
    return list(session.scalars(stmt).all())


def recent_history(session: Session, ticket_id: int, limit: int | None = 10) -> list[TicketHistory]:
    stmt = (
        select(TicketHistory)
        .where(TicketHistory.ticket_id == ticket_id)
        .order_by(desc(TicketHistory.created_at), desc(TicketHistory.id))
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(session.scalars(stmt).all())
