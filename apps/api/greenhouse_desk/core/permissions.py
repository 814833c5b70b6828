"""Role/department authorization policy.

Every visibility or mutation decision in the service goes through these
functions; nothing else compares role strings. All functions are pure and
answer with a bool.

Roles:
    global_admin (``admin`` is the legacy spelling)  - everything
    maintenance_admin / electrical_admin             - one department
    user                                             - own department and
                                                       tickets assigned to them
"""

from dataclasses import dataclass
from typing import Protocol


GLOBAL_ADMIN_ROLES = frozenset({"global_admin", "admin"})
DEPARTMENT_ADMIN_ROLES = frozenset({"maintenance_admin", "electrical_admin"})
PLAIN_ROLE = "user"
ALLOWED_ROLES = GLOBAL_ADMIN_ROLES | DEPARTMENT_ADMIN_ROLES | {PLAIN_ROLE}


@dataclass(frozen=True)
class Caller:
    id: int
    role: str
    department_id: int | None = None
    email: str | None = None


class TicketLike(Protocol):
    department_id: int
    assigned_to: int | None


class UserLike(Protocol):
    id: int
    role: str
    department_id: int | None


def is_global_admin(role: str | None) -> bool:
    return role in GLOBAL_ADMIN_ROLES


def is_department_admin(role: str | None) -> bool:
    return role in DEPARTMENT_ADMIN_ROLES


def is_any_admin(role: str | None) -> bool:
    return is_global_admin(role) or is_department_admin(role)


def has_department_authority(caller: Caller) -> bool:
    # A department admin without a department holds no department rights.
    return is_department_admin(caller.role) and caller.department_id is not None


def can_manage_department(caller: Caller, department_id: int | None) -> bool:
    if is_global_admin(caller.role):
        return True
    if has_department_authority(caller):
        return department_id is not None and caller.department_id == department_id
    return False


def can_view_ticket(caller: Caller, ticket: TicketLike) -> bool:
    if can_manage_department(caller, ticket.department_id):
        return True
    if ticket.assigned_to is not None and ticket.assigned_to == caller.id:
        return True
    return caller.department_id is not None and ticket.department_id == caller.department_id


def can_edit_ticket(caller: Caller, ticket: TicketLike) -> bool:
    return can_view_ticket(caller, ticket)


def can_delete_ticket(caller: Caller, ticket: TicketLike) -> bool:
    return can_manage_department(caller, ticket.department_id)


def can_view_department(caller: Caller, department_id: int) -> bool:
    if is_department_admin(caller.role):
        return can_manage_department(caller, department_id)
    return True


def can_view_user(caller: Caller, target: UserLike) -> bool:
    if is_department_admin(caller.role):
        return can_manage_department(caller, target.department_id)
    return True


def can_manage_user(caller: Caller, target: UserLike) -> bool:
    """Delete or change the role of ``target``."""
    if target.id == caller.id:
        return False
    if is_global_admin(caller.role):
        return True
    return (
        can_manage_department(caller, target.department_id)
        and target.role == PLAIN_ROLE
    )


def can_assign_role(caller: Caller, target: UserLike, new_role: str) -> bool:
    if new_role not in ALLOWED_ROLES:
        return False
    if not can_manage_user(caller, target):
        return False
    if is_global_admin(caller.role):
        return True
    return new_role in (PLAIN_ROLE, caller.role)
