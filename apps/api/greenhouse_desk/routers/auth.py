import logging

from fastapi import APIRouter, HTTPException, Depends
import jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..schemas.auth import LoginIn, RefreshIn, RegisterIn, TokenOut
from ..core.config import settings
from ..core.permissions import PLAIN_ROLE
from ..core.security import (
    REFRESH_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from ..models.department import Department
from ..models.user import User
from ..db import get_session

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _tokens_for(user: User) -> TokenOut:
    return TokenOut(
        access_token=create_access_token(str(user.id)),
        refresh_token=create_refresh_token(str(user.id)),
    )


@router.post("/login", response_model=TokenOut)
def login(payload: LoginIn, session: Session = Depends(get_session)):
    user = session.scalar(select(User).where(User.email == payload.email.lower()))
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials.")
    return _tokens_for(user)


@router.post("/register", response_model=TokenOut)
def register(payload: RegisterIn, session: Session = Depends(get_session)):
    email = payload.email.lower()
    domains = settings.allowed_email_domains_list
    if domains and email.rsplit("@", 1)[-1] not in domains:
        raise HTTPException(status_code=422, detail="Email domain not allowed.")
    if session.scalar(select(User.id).where(User.email == email)):
        raise HTTPException(status_code=409, detail="Email already registered.")
    if payload.department_id is not None and not session.get(Department, payload.department_id):
        raise HTTPException(status_code=404, detail="Department not found")

    user = User(
        email=email,
        full_name=payload.full_name.strip(),
        password_hash=hash_password(payload.password),
        role=PLAIN_ROLE,
        department_id=payload.department_id,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info("User registered: id=%s", user.id)
    return _tokens_for(user)


@router.post("/refresh", response_model=TokenOut)
def refresh(payload: RefreshIn, session: Session = Depends(get_session)):
    try:
        claims = decode_token(payload.refresh_token, expected_type=REFRESH_TOKEN)
        user_id = int(claims["sub"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Session expired", headers={"X-Session-Expired": "1"})
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return _tokens_for(user)
