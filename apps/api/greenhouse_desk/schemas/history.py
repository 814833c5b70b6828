from pydantic import BaseModel
from datetime import datetime


class HistoryOut(BaseModel):
    id: int
    ticket_id: int
    user_id: int | None = None
    action: str
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
