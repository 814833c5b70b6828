from datetime import datetime, timezone
from typing import Protocol


STATUSES = ("todo", "in_progress", "review", "completed", "on_hold")
INITIAL_STATUS = "todo"
COMPLETED_STATUS = "completed"
ON_HOLD_STATUS = "on_hold"

PRIORITIES = ("low", "medium", "high", "critical")
DEFAULT_PRIORITY = "medium"

STATUS_LABELS = {
    "todo": "To Do",
    "in_progress": "In Progress",
    "review": "Review",
    "completed": "Completed",
    "on_hold": "On Hold",
}

CREATED_VIA = ("internal", "public_form", "email")

# Display numbers come from ticket_counters; the first ticket is #1001.
TICKET_COUNTER_KEY = "ticket_number"
TICKET_NUMBER_START = 1000


class StatusCarrier(Protocol):
    status: str
    completed_at: datetime | None


def is_valid_status(status: str | None) -> bool:
    return status in STATUSES


def is_valid_priority(priority: str | None) -> bool:
    return priority in PRIORITIES


def can_transition(old: str, new: str) -> bool:
    # Operators may move a card between any two columns, including reopening
    # a completed ticket.
    return is_valid_status(old) and is_valid_status(new)


def apply_status(ticket: StatusCarrier, new_status: str, now: datetime | None = None) -> bool:
    """Set ``ticket.status`` and keep ``completed_at`` in step with it.

    Entering ``completed`` stamps ``completed_at``; leaving it clears the
    stamp. Re-applying the current status changes nothing. Returns whether the
    status actually changed.
    """
    if not is_valid_status(new_status):
        raise ValueError(f"Unknown status: {new_status}")
    old = ticket.status
    if old == new_status:
        if new_status == COMPLETED_STATUS and ticket.completed_at is None:
            ticket.completed_at = now or datetime.now(timezone.utc)
        return False
    if not can_transition(old, new_status):
        raise ValueError(f"Invalid transition: {old} -> {new_status}")
    ticket.status = new_status
    if new_status == COMPLETED_STATUS:
        ticket.completed_at = now or datetime.now(timezone.utc)
    else:
        ticket.completed_at = None
    return True
