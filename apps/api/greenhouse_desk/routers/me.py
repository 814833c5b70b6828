from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.current_user import get_current_user
from ..core.permissions import is_department_admin, is_global_admin
from ..db import get_session
from ..models.department import Department
from ..models.user import User

router = APIRouter(tags=["me"])


@router.get("/me")
def me(user: User = Depends(get_current_user), session: Session = Depends(get_session)):
    department = session.get(Department, user.department_id) if user.department_id else None
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "department_id": user.department_id,
        "department": department.name if department else None,
        "is_global_admin": is_global_admin(user.role),
        "is_department_admin": is_department_admin(user.role),
    }
