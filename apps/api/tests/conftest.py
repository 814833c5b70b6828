"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database shared by the test and the app (StaticPool)
- get_session override so routers use the test database
- Bearer headers for authenticated calls
- Small factories for departments, users and tickets
"""
import os

# Keep module-level settings away from a developer's .env and real providers.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("MAIL_BACKEND", "")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from greenhouse_desk.core.security import create_access_token, hash_password
from greenhouse_desk.core.seed import seed_ticket_counter
from greenhouse_desk.db import get_session
from greenhouse_desk.main import app
from greenhouse_desk.models.department import Department
from greenhouse_desk.models.ticket import Ticket
from greenhouse_desk.models.user import Base, User

PASSWORD = "greenhouse-pass"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(eng, "connect")
    def _enable_fks(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        seed_ticket_counter(s)
        yield s


@pytest.fixture
def client(session_factory, session):
    def _get_session():
        with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = _get_session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(str(user.id))}"}


@pytest.fixture
def maintenance(session) -> Department:
    dept = Department(name="Maintenance", email="maintenance@greatlakesg.com")
    session.add(dept)
    session.commit()
    return dept


@pytest.fixture
def electrical(session) -> Department:
    dept = Department(name="Electrical", email="electrical@greatlakesg.com")
    session.add(dept)
    session.commit()
    return dept


@pytest.fixture
def make_user(session):
    def _make(email: str, role: str = "user", department: Department | None = None, full_name: str | None = None) -> User:
        user = User(
            email=email,
            full_name=full_name or email.split("@")[0].title(),
            password_hash=hash_password(PASSWORD),
            role=role,
            department_id=department.id if department else None,
        )
        session.add(user)
        session.commit()
        return user

    return _make


@pytest.fixture
def make_ticket(session):
    counter = {"next": 2000}

    def _make(department: Department, ticket_number: int | None = None, **fields) -> Ticket:
        if ticket_number is None:
            counter["next"] += 1
            ticket_number = counter["next"]
        values = {
            "title": "Leaky valve",
            "description": "Valve in bay 3 drips",
            "status": "todo",
            "priority": "medium",
            "requester_name": "Pat Grower",
            "requester_email": "pat.grower@gmail.com",
            "created_via": "internal",
        }
        values.update(fields)
        ticket = Ticket(ticket_number=ticket_number, department_id=department.id, **values)
        session.add(ticket)
        session.commit()
        return ticket

    return _make
