from functools import lru_cache

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import get_session
from ..models.department import Department
from ..schemas.department import PublicDepartmentOut
from ..schemas.ticket import PublicTicketCreateIn, PublicTicketOut
from ..services.federated_identity import IdentityVerifier
from ..services.ticket_service import create_ticket

router = APIRouter(prefix="/public", tags=["public"])


@lru_cache
def get_identity_verifier() -> IdentityVerifier:
    return IdentityVerifier()


@router.get("/departments", response_model=list[PublicDepartmentOut])
def public_departments(session: Session = Depends(get_session)):
    return list(session.scalars(select(Department).order_by(Department.name.asc())).all())


@router.post("/tickets", response_model=PublicTicketOut)
def submit_public_ticket(
    payload: PublicTicketCreateIn,
    session: Session = Depends(get_session),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
):
    identity = verifier.verify(payload.id_token)
    t = create_ticket(
        session,
        title=payload.title,
        description=payload.description,
        department_id=payload.department_id,
        priority=payload.priority,
        requester_email=identity.email,
        requester_name=payload.requester_name or identity.name or identity.email.split("@")[0],
        requester_phone=payload.requester_phone,
        created_via="public_form",
    )
    session.commit()
    session.refresh(t)
    return t
