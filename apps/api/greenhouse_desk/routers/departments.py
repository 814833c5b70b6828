from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.current_user import get_caller
from ..core.errors import NotFound, PermissionDenied
from ..core.permissions import Caller, can_view_department
from ..db import get_session
from ..models.department import Department
from ..schemas.department import DepartmentOut
from ..services.visibility import visible_departments_query

router = APIRouter(prefix="/departments", tags=["departments"])


@router.get("", response_model=list[DepartmentOut])
def list_departments(
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    return list(session.scalars(visible_departments_query(caller)).all())


@router.get("/{department_id}", response_model=DepartmentOut)
def get_department(
    department_id: int,
    session: Session = Depends(get_session),
    caller: Caller = Depends(get_caller),
):
    dept = session.get(Department, department_id)
    if not dept:
        raise NotFound("Department not found")
    if not can_view_department(caller, dept.id):
        raise PermissionDenied()
    return dept
