"""Kanban board state with optimistic status moves.

A drag between columns is a ``StatusMove``: it is applied to the local view
at once, written with a single status update, and reverted if that write
fails. After a failure the board re-fetches so it matches the server again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Protocol

from ..core.errors import DeskError
from ..core.ticket_rules import STATUSES, apply_status

logger = logging.getLogger(__name__)


class BoardGateway(Protocol):
    def list_tickets(self, **filters) -> list[dict]: ...

    def set_status(self, number: int, status: str) -> dict: ...


@dataclass
class Card:
    ticket_number: int
    title: str
    status: str
    priority: str = "medium"
    assigned_to: int | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_api(cls, data: dict) -> "Card":
        completed = data.get("completed_at")
        if isinstance(completed, str):
            completed = datetime.fromisoformat(completed.replace("Z", "+00:00"))
        return cls(
            ticket_number=data["ticket_number"],
            title=data.get("title", ""),
            status=data["status"],
            priority=data.get("priority", "medium"),
            assigned_to=data.get("assigned_to"),
            completed_at=completed,
        )


@dataclass
class StatusMove:
    card: Card
    new_status: str
    old_status: str = field(init=False)
    old_completed_at: datetime | None = field(init=False)

    def __post_init__(self) -> None:
        self.old_status = self.card.status
        self.old_completed_at = self.card.completed_at

    def apply(self, now: datetime | None = None) -> bool:
        return apply_status(self.card, self.new_status, now or datetime.now(timezone.utc))

    def revert(self) -> None:
        self.card.status = self.old_status
        self.card.completed_at = self.old_completed_at


class KanbanBoard:
    def __init__(self, gateway: BoardGateway, filters: dict | None = None):
        self.gateway = gateway
        self.filters = dict(filters or {})
        self.cards: dict[int, Card] = {}
        self.last_error: DeskError | None = None

    def refresh(self) -> None:
        rows = self.gateway.list_tickets(**self.filters)
        self.cards = {card.ticket_number: card for card in (Card.from_api(r) for r in rows)}

    def columns(self) -> dict[str, list[Card]]:
        out: dict[str, list[Card]] = {status: [] for status in STATUSES}
        for card in self.cards.values():
            out.setdefault(card.status, []).append(card)
        return out

    def move(self, ticket_number: int, new_status: str) -> bool:
        """Returns True when the server accepted the move."""
        card = self.cards[ticket_number]
        move = StatusMove(card, new_status)
        if not move.apply():
            return True
        try:
            saved = self.gateway.set_status(ticket_number, new_status)
        except DeskError as exc:
            logger.info("Status move of #%s to %s failed: %s", ticket_number, new_status, exc)
            self.last_error = exc
            move.revert()
            try:
                self.refresh()
            except DeskError:
                logger.info("Board re-fetch failed; keeping the reverted view")
            return False
        self.cards[ticket_number] = Card.from_api(saved)
        self.last_error = None
        return True
