from datetime import datetime

from pydantic import BaseModel


class UserSummaryOut(BaseModel):
    id: int
    email: str
    full_name: str | None = None

    class Config:
        from_attributes = True


class UserOut(BaseModel):
    id: int
    email: str
    full_name: str | None = None
    role: str
    department_id: int | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class UserRoleUpdateIn(BaseModel):
    role: str
