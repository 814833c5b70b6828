import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.current_user import get_caller
from ..core.errors import NotFound, PermissionDenied, ValidationFailed
from ..core.permissions import ALLOWED_ROLES, Caller, can_assign_role, can_manage_user, can_view_user
from ..db import get_session
from ..models.user import User
from ..schemas.user import UserOut, UserRoleUpdateIn
from ..services.visibility import visible_users_query

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


def get_user_or_404(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


@router.get("", response_model=list[UserOut])
def list_users(
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
    department_id: int | None = None,
):
    return list(session.scalars(visible_users_query(caller, department_id)).all())


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    target = get_user_or_404(session, user_id)
    if not can_view_user(caller, target):
        raise PermissionDenied()
    return target


@router.patch("/{user_id}/role", response_model=UserOut)
def update_role(
    user_id: int,
    payload: UserRoleUpdateIn,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    if payload.role not in ALLOWED_ROLES:
        raise ValidationFailed("Invalid role")
    target = get_user_or_404(session, user_id)
    if not can_assign_role(caller, target, payload.role):
        raise PermissionDenied()
    target.role = payload.role
    session.commit()
    session.refresh(target)
    logger.info("Role changed: user=%s role=%s by=%s", target.id, target.role, caller.id)
    return target


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    target = get_user_or_404(session, user_id)
    if not can_manage_user(caller, target):
        raise PermissionDenied()
    session.delete(target)
    session.commit()
    logger.info("User deleted: user=%s by=%s", user_id, caller.id)
    return {"ok": True}
