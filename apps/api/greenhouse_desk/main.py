import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from .routers import auth, health, tickets, comments, me, departments, users, public_tickets, inbound_mail
from .models.user import Base
from .db import engine, SessionLocal
from .core.config import settings
from .core.errors import DeskError
from .core.seed import seed_admin, seed_departments, seed_ticket_counter
from .services.jobs import background_tasks
from .services.scheduler import PeriodicTask

import greenhouse_desk.models.department  # noqa: F401
import greenhouse_desk.models.ticket  # noqa: F401
import greenhouse_desk.models.comment  # noqa: F401
import greenhouse_desk.models.history  # noqa: F401
import greenhouse_desk.models.outbound_email  # noqa: F401
import greenhouse_desk.models.sync_state  # noqa: F401

logger = logging.getLogger(__name__)

app = FastAPI(title="Greenhouse Desk API")

_tasks: list[PeriodicTask] = []


@app.on_event("startup")
def on_startup():
    if settings.auto_db_bootstrap:
        # Create tables in dev if missing.
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as session:
            seed_ticket_counter(session)
            seed_departments(session)
            seed_admin(session)

    _tasks.extend(background_tasks())
    for task in _tasks:
        task.start()


@app.on_event("shutdown")
def on_shutdown():
    while _tasks:
        _tasks.pop().stop()


@app.exception_handler(DeskError)
def desk_error_handler(request: Request, exc: DeskError):
    headers = {"Retry-After": "5"} if getattr(exc, "retryable", False) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=headers,
    )


@app.exception_handler(OperationalError)
def database_unavailable_handler(request: Request, exc: OperationalError):
    logger.exception("Database unavailable")
    return JSONResponse(
        status_code=503,
        content={"detail": "Database unavailable, please retry", "code": "gateway_unavailable"},
        headers={"Retry-After": "5"},
    )


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(me.router)
app.include_router(tickets.router)
app.include_router(comments.router)
app.include_router(departments.router)
app.include_router(users.router)
app.include_router(public_tickets.router)
app.include_router(inbound_mail.router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
