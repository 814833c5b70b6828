import hmac

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from ..core.config import settings
from ..db import get_session
from ..schemas.inbound import InboundResultOut, InboundWebhookIn
from ..services.inbound_mail import correlate, from_webhook

router = APIRouter(prefix="/inbound", tags=["inbound"])

RECEIVED_EVENT = "email.received"


def verify_webhook_secret(x_webhook_secret: str | None = Header(default=None)) -> None:
    expected = settings.inbound_webhook_secret
    if not expected:
        return
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.post("/email", response_model=InboundResultOut, dependencies=[Depends(verify_webhook_secret)])
def receive_email(payload: InboundWebhookIn, session: Session = Depends(get_session)):
    if payload.type != RECEIVED_EVENT:
        return InboundResultOut(message="Webhook type not supported")
    result = correlate(session, from_webhook(payload.data))
    session.commit()
    return InboundResultOut(
        message=result.message,
        action=result.action,
        ticket_id=result.ticket_id,
        ticket_number=result.ticket_number,
        comment_id=result.comment_id,
    )
