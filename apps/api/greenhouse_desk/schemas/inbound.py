from pydantic import BaseModel, Field


class InboundWebhookIn(BaseModel):
    # email.received carries {from, to[], subject, text, html, headers}
    type: str
    data: dict = Field(default_factory=dict)


class InboundResultOut(BaseModel):
    message: str
    action: str | None = None
    ticket_id: int | None = None
    ticket_number: int | None = None
    comment_id: int | None = None
