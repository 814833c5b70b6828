from pydantic import BaseModel, Field
from datetime import datetime


class CommentCreateIn(BaseModel):
    body: str = Field(min_length=1)
    is_internal: bool = False


class CommentOut(BaseModel):
    id: int
    ticket_id: int
    user_id: int | None = None
    body: str
    is_internal: bool
    kind: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True
