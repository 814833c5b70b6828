from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.current_user import get_caller
from ..core.errors import PermissionDenied
from ..core.permissions import Caller, can_edit_ticket
from ..db import get_session
from ..models.user import User
from ..schemas.comment import CommentOut
from ..schemas.history import HistoryOut
from ..schemas.ticket import (
    InfoRequestIn,
    TicketCreateIn,
    TicketOut,
    TicketStatusUpdateIn,
    TicketUpdateIn,
)
from ..schemas.ticket_detail import TicketDetailOut
from ..schemas.user import UserSummaryOut
from ..services.ledger import list_comments, recent_history, request_info
from ..services.ticket_service import (
    TicketChanges,
    create_ticket,
    delete_ticket,
    get_visible_ticket,
    set_status,
    update_ticket,
)
from ..services.visibility import TicketFilters, visible_tickets_query

router = APIRouter(prefix="/tickets", tags=["tickets"])

DETAIL_HISTORY_LIMIT = 10


@router.get("", response_model=list[TicketOut])
def list_tickets(
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
    search: str | None = Query(default=None, max_length=200),
    department_id: int | None = None,
    assigned_to: int | None = None,
    status: str | None = None,
    priority: str | None = None,
    limit: int = Query(default=200, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
):
    filters = TicketFilters(
        search=search,
        department_id=department_id,
        assigned_to=assigned_to,
        status=status,
        priority=priority,
    )
    stmt = visible_tickets_query(caller, filters).offset(offset).limit(limit)
    return list(session.scalars(stmt).all())


@router.post("", response_model=TicketOut)
def create(
    payload: TicketCreateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    user = session.get(User, caller.id)
    t = create_ticket(
        session,
        title=payload.title,
        description=payload.description,
        department_id=payload.department_id,
        priority=payload.priority,
        assigned_to=payload.assigned_to,
        requester_email=payload.requester_email or user.email,
        requester_name=payload.requester_name or user.full_name or user.email.split("@")[0],
        requester_phone=payload.requester_phone,
        created_via="internal",
        created_by=caller.id,
        operator=caller,
    )
    session.commit()
    session.refresh(t)
    return t


@router.get("/{ticket_number}", response_model=TicketOut)
def get_ticket(
    ticket_number: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    return get_visible_ticket(session, caller, ticket_number)


@router.get("/{ticket_number}/detail", response_model=TicketDetailOut)
def get_ticket_detail(
    ticket_number: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    t = get_visible_ticket(session, caller, ticket_number)
    assignee = session.get(User, t.assigned_to) if t.assigned_to else None
    return TicketDetailOut(
        ticket=TicketOut.model_validate(t),
        comments=[CommentOut.model_validate(c) for c in list_comments(session, t.id)],
        history=[HistoryOut.model_validate(h) for h in recent_history(session, t.id, DETAIL_HISTORY_LIMIT)],
        assignee=UserSummaryOut.model_validate(assignee) if assignee else None,
    )


@router.patch("/{ticket_number}", response_model=TicketOut)
def edit_ticket(
    ticket_number: int,
    payload: TicketUpdateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    t = get_visible_ticket(session, caller, ticket_number)
    fields = payload.model_fields_set
    changes = TicketChanges(
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        status=payload.status,
        assigned_to=payload.assigned_to,
        assigned_to_set="assigned_to" in fields,
        comment=payload.comment,
        comment_internal=payload.comment_internal,
    )
    update_ticket(session, caller, t, changes)
    session.commit()
    session.refresh(t)
    return t


@router.patch("/{ticket_number}/status", response_model=TicketOut)
def move_ticket(
    ticket_number: int,
    payload: TicketStatusUpdateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    t = get_visible_ticket(session, caller, ticket_number)
    set_status(session, caller, t, payload.status)
    session.commit()
    session.refresh(t)
    return t


@router.post("/{ticket_number}/request-info", response_model=CommentOut)
def request_ticket_info(
    ticket_number: int,
    payload: InfoRequestIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    t = get_visible_ticket(session, caller, ticket_number)
    if not can_edit_ticket(caller, t):
        raise PermissionDenied()
    comment = request_info(session, t, caller.id, payload.message)
    session.commit()
    session.refresh(comment)
    return comment


@router.delete("/{ticket_number}")
def remove_ticket(
    ticket_number: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    t = get_visible_ticket(session, caller, ticket_number)
    delete_ticket(session, caller, t)
    session.commit()
    return {"ok": True}


@router.get("/{ticket_number}/history", response_model=list[HistoryOut])
def ticket_history(
    ticket_number: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
    limit: int | None = Query(default=None, ge=1, le=1000),
):
    t = get_visible_ticket(session, caller, ticket_number)
    return recent_history(session, t.id, limit)
