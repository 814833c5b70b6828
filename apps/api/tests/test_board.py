from datetime import datetime, timezone

from greenhouse_desk.core.errors import GatewayUnavailable, PermissionDenied
from greenhouse_desk.services.board import KanbanBoard, StatusMove, Card

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


def row(number, status="todo", **extra):
    return {"ticket_number": number, "title": f"Ticket {number}", "status": status, "priority": "medium", **extra}


class FakeGateway:
    def __init__(self, rows, fail_with=None):
        self.rows = rows
        self.fail_with = fail_with
        self.writes = []
        self.fetches = 0

    def list_tickets(self, **filters):
        self.fetches += 1
        return [dict(r) for r in self.rows]

    def set_status(self, number, status):
        self.writes.append((number, status))
        if self.fail_with:
            raise self.fail_with
        for r in self.rows:
            if r["ticket_number"] == number:
                r["status"] = status
                r["completed_at"] = "2026-03-02T08:00:00Z" if status == "completed" else None
                return dict(r)
        raise AssertionError("unknown ticket")


def test_columns_group_cards_by_status():
    board = KanbanBoard(FakeGateway([row(1001), row(1002, "review"), row(1003)]))
    board.refresh()
    cols = board.columns()
    assert list(cols) == ["todo", "in_progress", "review", "completed", "on_hold"]
    assert [c.ticket_number for c in cols["todo"]] == [1001, 1003]
    assert [c.ticket_number for c in cols["review"]] == [1002]


def test_successful_move_issues_one_write():
    gateway = FakeGateway([row(1001)])
    board = KanbanBoard(gateway)
    board.refresh()

    assert board.move(1001, "completed") is True
    assert gateway.writes == [(1001, "completed")]
    card = board.cards[1001]
    assert card.status == "completed"
    assert card.completed_at == NOW
    assert board.last_error is None


def test_move_to_same_column_writes_nothing():
    gateway = FakeGateway([row(1001)])
    board = KanbanBoard(gateway)
    board.refresh()
    assert board.move(1001, "todo") is True
    assert gateway.writes == []


def test_failed_move_reverts_and_refetches():
    gateway = FakeGateway([row(1001, "in_progress")], fail_with=PermissionDenied())
    board = KanbanBoard(gateway)
    board.refresh()

    assert board.move(1001, "completed") is False
    assert board.cards[1001].status == "in_progress"
    assert board.cards[1001].completed_at is None
    assert isinstance(board.last_error, PermissionDenied)
    assert gateway.fetches == 2


def test_timeout_during_move_is_reported_as_retryable():
    gateway = FakeGateway([row(1001)], fail_with=GatewayUnavailable("Request timed out"))
    board = KanbanBoard(gateway)
    board.refresh()

    assert board.move(1001, "review") is False
    assert board.last_error.retryable is True
    assert board.cards[1001].status == "todo"


def test_status_move_revert_restores_completion_stamp():
    card = Card(ticket_number=1, title="x", status="completed", completed_at=NOW)
    move = StatusMove(card, "todo")
    assert move.apply() is True
    assert card.completed_at is None
    move.revert()
    assert (card.status, card.completed_at) == ("completed", NOW)
