from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from ..core.errors import NotFound, PermissionDenied, ValidationFailed
from ..core.permissions import Caller, can_delete_ticket, can_edit_ticket, can_view_ticket, can_view_user
from ..core.ticket_rules import (
    CREATED_VIA,
    DEFAULT_PRIORITY,
    INITIAL_STATUS,
    ON_HOLD_STATUS,
    TICKET_COUNTER_KEY,
    TICKET_NUMBER_START,
    apply_status,
    is_valid_priority,
    is_valid_status,
)
from ..models.department import Department
from ..models.ticket import Ticket, TicketCounter
from ..models.user import User
from .ledger import add_comment, record_history
from .mail_events import notify_requester_ticket_created

logger = logging.getLogger(__name__)

_counters = TicketCounter.__table__


def allocate_ticket_number(session: Session) -> int:
    """Take the next display number from the database counter.

    The increment happens in a single UPDATE ... RETURNING so concurrent
    creators never receive the same number.
    """
    stmt = (
        update(_counters)
        .where(_counters.c.key == TICKET_COUNTER_KEY)
        .values(value=_counters.c.value + 1)
        .returning(_counters.c.value)
    )
    value = session.execute(stmt).scalar_one_or_none()
    if value is None:
        value = TICKET_NUMBER_START + 1
        session.execute(insert(_counters).values(key=TICKET_COUNTER_KEY, value=value))
    return value


def get_by_number(session: Session, ticket_number: int) -> Ticket | None:
    return session.scalar(select(Ticket).where(Ticket.ticket_number == ticket_number))


def get_visible_ticket(session: Session, caller: Caller, ticket_number: int) -> Ticket:
    ticket = get_by_number(session, ticket_number)
    if not ticket:
        raise NotFound("Ticket not found")
    if not can_view_ticket(caller, ticket):
        raise PermissionDenied()
    return ticket


def create_ticket(
    session: Session,
    *,
    title: str,
    description: str,
    department_id: int,
    requester_email: str,
    requester_name: str = "",
    requester_phone: str | None = None,
    priority: str = DEFAULT_PRIORITY,
    created_via: str = "internal",
    created_by: int | None = None,
    assigned_to: int | None = None,
    email_thread_id: str | None = None,
    operator: Caller | None = None,
) -> Ticket:
    """Insert a ticket, its ``created`` history entry and the requester's
    confirmation mail. The caller commits.

    An ``operator`` may only assign someone they can see, the same rule an
    edit applies.
    """
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("Title is required")
    if not is_valid_priority(priority):
        raise ValidationFailed(f"Invalid priority: {priority}")
    if created_via not in CREATED_VIA:
        raise ValidationFailed(f"Invalid source: {created_via}")
    if not requester_email:
        raise ValidationFailed("Requester email is required")
    department = session.get(Department, department_id)
    if not department:
        raise NotFound("Department not found")
    if operator is not None:
        assigned_to = _resolve_assignee(session, operator, assigned_to)
    elif assigned_to is not None and not session.get(User, assigned_to):
        raise NotFound("Assignee not found")

    ticket = Ticket(
        ticket_number=allocate_ticket_number(session),
        title=title[:200],
        description=description or "",
        status=INITIAL_STATUS,
        priority=priority,
        department_id=department_id,
        assigned_to=assigned_to,
        created_by=created_by,
        requester_name=requester_name or "",
        requester_email=requester_email,
        requester_phone=requester_phone,
        created_via=created_via,
        email_thread_id=email_thread_id,
    )
    session.add(ticket)
    session.flush()
    record_history(session, ticket.id, created_by, "created", new_value=ticket.ticket_number)
    notify_requester_ticket_created(session, ticket, department, via_email=created_via == "email")
    logger.info("Ticket created: #%s via=%s department=%s", ticket.ticket_number, created_via, department_id)
    return ticket


@dataclass
class TicketChanges:
    title: str | None = None
    description: str | None = None
    priority: str | None = None
    status: str | None = None
    assigned_to: int | None = None
    assigned_to_set: bool = False
    comment: str | None = None
    comment_internal: bool = False


def _resolve_assignee(session: Session, caller: Caller, user_id: int | None) -> int | None:
    if user_id is None:
        return None
    user = session.get(User, user_id)
    if not user or not can_view_user(caller, user):
        raise ValidationFailed("Assignee not found")
    return user.id


def update_ticket(session: Session, caller: Caller, ticket: Ticket, changes: TicketChanges) -> Ticket:
    """Apply an operator edit as one unit; the caller commits.

    Status, assignee and priority changes each leave a history entry. The
    department is never changed here. A mail goes out only when an external
    comment accompanies the edit.
    """
    if not can_edit_ticket(caller, ticket):
        raise PermissionDenied()
    if changes.title is not None and not changes.title.strip():
        raise ValidationFailed("Title is required")
    if changes.priority is not None and not is_valid_priority(changes.priority):
        raise ValidationFailed(f"Invalid priority: {changes.priority}")
    if changes.status is not None and not is_valid_status(changes.status):
        raise ValidationFailed(f"Invalid status: {changes.status}")
    new_assignee = ticket.assigned_to
    if changes.assigned_to_set:
        new_assignee = _resolve_assignee(session, caller, changes.assigned_to)

    if changes.title is not None:
        ticket.title = changes.title.strip()[:200]
    if changes.description is not None:
        ticket.description = changes.description
    if changes.priority is not None and changes.priority != ticket.priority:
        record_history(session, ticket.id, caller.id, "priority_changed", "priority", ticket.priority, changes.priority)
        ticket.priority = changes.priority
    if new_assignee != ticket.assigned_to:
        record_history(session, ticket.id, caller.id, "assignee_changed", "assigned_to", ticket.assigned_to, new_assignee)
        ticket.assigned_to = new_assignee
    if changes.status is not None:
        _change_status(session, caller, ticket, changes.status)
    if changes.comment and changes.comment.strip():
        add_comment(session, ticket, caller.id, changes.comment, is_internal=changes.comment_internal)

    ticket.updated_at = datetime.now(timezone.utc)
    session.flush()
    return ticket


def _change_status(session: Session, caller: Caller | None, ticket: Ticket, new_status: str) -> bool:
    if not is_valid_status(new_status):
        raise ValidationFailed(f"Invalid status: {new_status}")
    old = ticket.status
    if not apply_status(ticket, new_status):
        return False
    record_history(session, ticket.id, caller.id if caller else None, "status_changed", "status", old, new_status)
    return True


def set_status(session: Session, caller: Caller, ticket: Ticket, new_status: str) -> Ticket:
    """Kanban move: one status write plus its history entry."""
    if not can_edit_ticket(caller, ticket):
        raise PermissionDenied()
    if _change_status(session, caller, ticket, new_status):
        ticket.updated_at = datetime.now(timezone.utc)
    session.flush()
    return ticket


def release_hold(session: Session, ticket: Ticket) -> bool:
    """A requester reply puts an on-hold ticket back in the queue."""
    if ticket.status != ON_HOLD_STATUS:
        return False
    return _change_status(session, None, ticket, INITIAL_STATUS)


def delete_ticket(session: Session, caller: Caller, ticket: Ticket) -> None:
    if not can_delete_ticket(caller, ticket):
        raise PermissionDenied("Only an admin of the ticket's department can delete it")
    logger.info("Ticket deleted: #%s by user=%s", ticket.ticket_number, caller.id)
    session.delete(ticket)
    session.flush()
