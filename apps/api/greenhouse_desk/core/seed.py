from sqlalchemy.orm import Session
from sqlalchemy import select
import os

from ..models.department import Department
from ..models.ticket import TicketCounter
from ..models.user import User
from .security import hash_password
from .ticket_rules import TICKET_COUNTER_KEY, TICKET_NUMBER_START

DEFAULT_DEPARTMENTS = (
    ("Maintenance", "maintenance@greatlakesg.com"),
    ("Electrical", "electrical@greatlakesg.com"),
)


def seed_ticket_counter(session: Session) -> None:
    if session.get(TicketCounter, TICKET_COUNTER_KEY) is None:
        session.add(TicketCounter(key=TICKET_COUNTER_KEY, value=TICKET_NUMBER_START))
        session.commit()


def seed_departments(session: Session) -> None:
    for name, email in DEFAULT_DEPARTMENTS:
        exists = session.scalar(select(Department).where(Department.name == name))
        if exists:
            continue
        session.add(Department(name=name, email=email.lower()))
    session.commit()


def seed_admin(session: Session) -> User | None:
    """
    DEV global admin seed, only when ADMIN_EMAIL and ADMIN_PASSWORD are set.
    An existing account with that email is promoted and its password reset.
    """
    email = os.getenv("ADMIN_EMAIL", "").strip().lower()
    password = os.getenv("ADMIN_PASSWORD", "")
    if not email or not password:
        return None

    user = session.scalar(select(User).where(User.email == email))
    if user:
        user.role = "global_admin"
        user.password_hash = hash_password(password)
    else:
        user = User(
            email=email,
            full_name="Administrator",
            password_hash=hash_password(password),
            role="global_admin",
        )
        session.add(user)
    session.commit()
    return user
