from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from greenhouse_desk.models.comment import TicketComment
from greenhouse_desk.models.ticket import Ticket
from greenhouse_desk.services.graph_client import GraphMessage
from greenhouse_desk.services.mailbox_poller import check_mailboxes, load_watermark

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)


class FakeGraph:
    def __init__(self, inbox: dict[str, list[GraphMessage]]):
        self.inbox = inbox
        self.since: dict[str, datetime | None] = {}
        self.read: list[tuple[str, str]] = []

    def list_unread(self, mailbox, since):
        self.since[mailbox] = since
        return list(self.inbox.get(mailbox, []))

    def mark_as_read(self, mailbox, message_id):
        self.read.append((mailbox, message_id))
        return True


def message(id, mailbox, subject, sender="grower@gmail.com", body="Bay 4"):
    return GraphMessage(
        id=id,
        mailbox=mailbox,
        subject=subject,
        sender=sender,
        sender_name=None,
        recipients=["someone-else@greatlakesg.com"],
        body=body,
        received_at=NOW,
        conversation_id=f"conv-{id}",
    )


def test_poll_correlates_and_marks_everything_read(session, maintenance, electrical, make_ticket):
    make_ticket(maintenance, ticket_number=204, requester_email="grower@gmail.com")
    graph = FakeGraph(
        {
            "maintenance@greatlakesg.com": [
                message("m1", "maintenance@greatlakesg.com", "Re: Leaky valve #204"),
                message("m2", "maintenance@greatlakesg.com", "Re: #204", sender="stranger@gmail.com"),
            ],
            "electrical@greatlakesg.com": [
                message("e1", "electrical@greatlakesg.com", "Lights out in bay 2"),
            ],
        }
    )

    summary = check_mailboxes(session, graph, now=NOW, lookback_hours=24)

    assert summary.mailboxes == 2
    assert summary.processed == 3
    assert summary.replies == 1
    assert summary.created == 1
    assert summary.rejected == 1
    assert summary.rejections[0]["code"] == "sender_mismatch"
    assert sorted(graph.read) == [
        ("electrical@greatlakesg.com", "e1"),
        ("maintenance@greatlakesg.com", "m1"),
        ("maintenance@greatlakesg.com", "m2"),
    ]

    assert session.scalar(select(func.count()).select_from(TicketComment)) == 1
    created = session.scalar(select(Ticket).where(Ticket.created_via == "email"))
    # The polled mailbox decides the department, not the To: header.
    assert created.department_id == electrical.id
    assert created.email_thread_id == "conv-e1"


def test_first_run_looks_back_then_uses_watermark(session, maintenance):
    graph = FakeGraph({})

    check_mailboxes(session, graph, now=NOW, lookback_hours=24)
    assert graph.since["maintenance@greatlakesg.com"] == NOW - timedelta(hours=24)

    later = NOW + timedelta(minutes=5)
    check_mailboxes(session, graph, now=later, lookback_hours=24)
    assert graph.since["maintenance@greatlakesg.com"] == NOW
    assert load_watermark(session, later + timedelta(hours=1)) == later


def test_summary_as_dict(session, maintenance):
    summary = check_mailboxes(session, FakeGraph({}), now=NOW, lookback_hours=1)
    data = summary.as_dict()
    assert data["processed"] == 0
    assert data["watermark"] == NOW.isoformat()
