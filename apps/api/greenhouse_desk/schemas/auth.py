from pydantic import BaseModel, EmailStr, Field, field_validator


def _password_bytes_le_72(v: str) -> str:
    if len(v.encode("utf-8")) > 72:
        raise ValueError("Password must be <= 72 bytes (bcrypt limit).")
    return v


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=72)

    @field_validator("password")
    @classmethod
    def login_password_bytes_le_72(cls, v: str) -> str:
        return _password_bytes_le_72(v)


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    full_name: str = Field(min_length=1, max_length=200)
    department_id: int | None = None

    @field_validator("password")
    @classmethod
    def register_password_bytes_le_72(cls, v: str) -> str:
        return _password_bytes_le_72(v)


class RefreshIn(BaseModel):
    refresh_token: str = Field(min_length=1)


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
