from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class TicketCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    priority: str = Field(default="medium")
    department_id: int
    assigned_to: int | None = None
    # Defaults to the signed-in operator when omitted.
    requester_name: str | None = Field(default=None, max_length=200)
    requester_email: EmailStr | None = None
    requester_phone: str | None = Field(default=None, max_length=50)


class PublicTicketCreateIn(BaseModel):
    id_token: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    priority: str = Field(default="medium")
    department_id: int
    requester_name: str | None = Field(default=None, max_length=200)
    requester_phone: str | None = Field(default=None, max_length=50)


class TicketUpdateIn(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    description: str | None = None
    priority: str | None = None
    status: str | None = None
    assigned_to: int | None = None
    comment: str | None = None
    comment_internal: bool = False


class TicketStatusUpdateIn(BaseModel):
    status: str


class InfoRequestIn(BaseModel):
    message: str = Field(min_length=1)


class TicketOut(BaseModel):
    id: int
    ticket_number: int
    title: str
    description: str
    status: str
    priority: str
    department_id: int
    assigned_to: int | None = None
    created_by: int | None = None
    requester_name: str
    requester_email: str
    requester_phone: str | None = None
    created_via: str
    email_thread_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


class PublicTicketOut(BaseModel):
    ticket_number: int
    title: str
    status: str

    class Config:
        from_attributes = True
