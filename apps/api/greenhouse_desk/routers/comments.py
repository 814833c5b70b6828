from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.current_user import get_caller
from ..core.permissions import Caller
from ..db import get_session
from ..schemas.comment import CommentCreateIn, CommentOut
from ..services.ledger import add_comment, delete_comment, list_comments
from ..services.ticket_service import get_visible_ticket

router = APIRouter(tags=["comments"])


@router.get("/tickets/{ticket_number}/comments", response_model=list[CommentOut])
def ticket_comments(
    ticket_number: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    ticket = get_visible_ticket(session, caller, ticket_number)
    return list_comments(session, ticket.id)


@router.post("/tickets/{ticket_number}/comments", response_model=CommentOut)
def create_comment(
    ticket_number: int,
    payload: CommentCreateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    ticket = get_visible_ticket(session, caller, ticket_number)
    comment = add_comment(session, ticket, caller.id, payload.body, is_internal=payload.is_internal)
    session.commit()
    session.refresh(comment)
    return comment


@router.delete("/comments/{comment_id}")
def remove_comment(
    comment_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    delete_comment(session, comment_id, caller.id)
    session.commit()
    return {"ok": True}
