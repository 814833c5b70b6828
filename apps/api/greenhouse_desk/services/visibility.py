"""Row filters for what a caller may list.

The clauses mirror ``core.permissions`` one to one: a ticket row matches
``ticket_visibility_clause(caller)`` exactly when ``can_view_ticket`` is true
for it. Request filters are always AND-ed onto the visibility clause so they
can narrow the result but never widen it.
"""

from dataclasses import dataclass

from sqlalchemy import Select, String, cast, desc, false, or_, select, true
from sqlalchemy.sql.elements import ColumnElement

from ..core.permissions import (
    Caller,
    has_department_authority,
    is_department_admin,
    is_global_admin,
)
from ..models.department import Department
from ..models.ticket import Ticket
from ..models.user import User


@dataclass
class TicketFilters:
    search: str | None = None
    department_id: int | None = None
    assigned_to: int | None = None
    status: str | None = None
    priority: str | None = None


def ticket_visibility_clause(caller: Caller) -> ColumnElement[bool]:
    if is_global_admin(caller.role):
        return true()
    clauses = [Ticket.assigned_to == caller.id]
    if caller.department_id is not None:
        clauses.append(Ticket.department_id == caller.department_id)
    return or_(*clauses)


def department_visibility_clause(caller: Caller) -> ColumnElement[bool]:
    if is_department_admin(caller.role):
        if not has_department_authority(caller):
            return false()
        return Department.id == caller.department_id
    return true()


def user_visibility_clause(caller: Caller) -> ColumnElement[bool]:
    if is_department_admin(caller.role):
        if not has_department_authority(caller):
            return User.id == caller.id
        return User.department_id == caller.department_id
    return true()


def _search_clause(term: str) -> ColumnElement[bool]:
    like = f"%{term.strip()}%"
    return or_(
        Ticket.title.ilike(like),
        Ticket.description.ilike(like),
        cast(Ticket.ticket_number, String).ilike(like),
        Ticket.requester_email.ilike(like),
    )


def visible_tickets_query(caller: Caller, filters: TicketFilters | None = None) -> Select:
    stmt = select(Ticket).where(ticket_visibility_clause(caller))
    f = filters or TicketFilters()
    if f.search and f.search.strip():
        stmt = stmt.where(_search_clause(f.search))
    if f.department_id is not None:
        stmt = stmt.where(Ticket.department_id == f.department_id)
    if f.assigned_to is not None:
        stmt = stmt.where(Ticket.assigned_to == f.assigned_to)
    if f.status is not None:
        stmt = stmt.where(Ticket.status == f.status)
    if f.priority is not None:
        stmt = stmt.where(Ticket.priority == f.priority)
    return stmt.order_by(desc(Ticket.created_at), desc(Ticket.id))


def visible_departments_query(caller: Caller) -> Select:
    return select(Department).where(department_visibility_clause(caller)).order_by(Department.name.asc())


def visible_users_query(caller: Caller, department_id: int | None = None) -> Select:
    stmt = select(User).where(user_visibility_clause(caller))
    if department_id is not None:
        stmt = stmt.where(User.department_id == department_id)
    return stmt.order_by(User.full_name.asc(), User.id.asc())

