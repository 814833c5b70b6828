from sqlalchemy import select

from greenhouse_desk.core.errors import PermissionDenied
from greenhouse_desk.models.comment import TicketComment
from greenhouse_desk.models.history import TicketHistory
from greenhouse_desk.models.outbound_email import OutboundEmail
from greenhouse_desk.models.ticket import Ticket
from greenhouse_desk.routers.public_tickets import get_identity_verifier
from greenhouse_desk.main import app
from greenhouse_desk.services.federated_identity import FederatedIdentity

from conftest import PASSWORD, auth_headers


def outbox(session):
    session.expire_all()
    return session.scalars(select(OutboundEmail).order_by(OutboundEmail.id.asc())).all()


# --- auth -----------------------------------------------------------------


def test_login_and_refresh(client, make_user):
    make_user("tech@greatlakesg.com")

    resp = client.post("/auth/login", json={"email": "Tech@GreatLakesG.com", "password": PASSWORD})
    assert resp.status_code == 200
    tokens = resp.json()
    assert tokens["token_type"] == "bearer"

    resp = client.get("/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert resp.json()["email"] == "tech@greatlakesg.com"

    resp = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200
    # An access token is not accepted as a refresh token.
    resp = client.post("/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401


def test_login_rejects_bad_password(client, make_user):
    make_user("tech@greatlakesg.com")
    resp = client.post("/auth/login", json={"email": "tech@greatlakesg.com", "password": "wrong-password"})
    assert resp.status_code == 401


def test_register_creates_plain_user(client, maintenance):
    payload = {
        "email": "new.hire@greatlakesg.com",
        "password": "long-enough",
        "full_name": "New Hire",
        "department_id": maintenance.id,
    }
    resp = client.post("/auth/register", json=payload)
    assert resp.status_code == 200

    me = client.get("/me", headers={"Authorization": f"Bearer {resp.json()['access_token']}"}).json()
    assert me["role"] == "user"
    assert me["department_id"] == maintenance.id

    assert client.post("/auth/register", json=payload).status_code == 409


def test_requests_without_token_are_rejected(client):
    assert client.get("/tickets").status_code == 401


# --- tickets --------------------------------------------------------------


def test_create_ticket_numbers_and_confirms(client, session, maintenance, make_user):
    tech = make_user("tech@greatlakesg.com", department=maintenance, full_name="Tess Tech")

    body = {"title": "Broken heater", "description": "Bay 4", "department_id": maintenance.id}
    first = client.post("/tickets", json=body, headers=auth_headers(tech))
    second = client.post("/tickets", json=body, headers=auth_headers(tech))

    assert first.status_code == 200
    assert first.json()["ticket_number"] == 1001
    assert second.json()["ticket_number"] == 1002
    assert first.json()["status"] == "todo"
    assert first.json()["requester_email"] == "tech@greatlakesg.com"
    assert first.json()["requester_name"] == "Tess Tech"

    created = session.scalars(select(TicketHistory).where(TicketHistory.action == "created")).all()
    assert [h.new_value for h in created] == ["1001", "1002"]
    assert [m.template_type for m in outbox(session)] == ["ticket_created", "ticket_created"]


def test_create_ticket_validation(client, maintenance, make_user):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    resp = client.post(
        "/tickets",
        json={"title": "Heater", "department_id": maintenance.id, "priority": "urgent"},
        headers=auth_headers(tech),
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_failed"

    resp = client.post("/tickets", json={"title": "Heater", "department_id": 999}, headers=auth_headers(tech))
    assert resp.status_code == 404


def test_assignee_rule_is_the_same_on_create_and_edit(client, session, maintenance, electrical, make_user, make_ticket):
    admin = make_user("chief@greatlakesg.com", role="maintenance_admin", department=maintenance)
    sparky = make_user("sparky@greatlakesg.com", department=electrical)
    tech = make_user("tech@greatlakesg.com", department=maintenance)

    body = {"title": "Broken heater", "department_id": maintenance.id, "assigned_to": sparky.id}
    resp = client.post("/tickets", json=body, headers=auth_headers(admin))
    assert resp.status_code == 422
    session.expire_all()
    assert session.scalars(select(Ticket)).all() == []

    t = make_ticket(maintenance)
    resp = client.patch(f"/tickets/{t.ticket_number}", json={"assigned_to": sparky.id}, headers=auth_headers(admin))
    assert resp.status_code == 422

    resp = client.post("/tickets", json={**body, "assigned_to": tech.id}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["assigned_to"] == tech.id


def test_list_respects_visibility(client, maintenance, electrical, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    sparky_admin = make_user("sparky@greatlakesg.com", role="electrical_admin", department=electrical)
    boss = make_user("boss@greatlakesg.com", role="global_admin")

    own = make_ticket(maintenance)
    assigned = make_ticket(electrical, assigned_to=tech.id)
    other = make_ticket(electrical)

    def numbers(user, **params):
        resp = client.get("/tickets", headers=auth_headers(user), params=params)
        assert resp.status_code == 200
        return sorted(t["ticket_number"] for t in resp.json())

    assert numbers(tech) == sorted([own.ticket_number, assigned.ticket_number])
    assert numbers(sparky_admin) == sorted([assigned.ticket_number, other.ticket_number])
    assert numbers(boss) == sorted([own.ticket_number, assigned.ticket_number, other.ticket_number])
    # Filters narrow, never widen.
    assert numbers(tech, department_id=electrical.id) == [assigned.ticket_number]


def test_get_ticket_not_found_vs_forbidden(client, maintenance, electrical, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    hidden = make_ticket(electrical)

    resp = client.get(f"/tickets/{hidden.ticket_number}", headers=auth_headers(tech))
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"

    resp = client.get("/tickets/424242", headers=auth_headers(tech))
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_found"


def test_edit_records_history_per_change(client, session, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    helper = make_user("helper@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance)

    resp = client.patch(
        f"/tickets/{t.ticket_number}",
        json={"priority": "high", "assigned_to": helper.id, "status": "in_progress", "title": "Leaky valve, bay 3"},
        headers=auth_headers(tech),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["priority"] == "high"
    assert data["assigned_to"] == helper.id
    assert data["status"] == "in_progress"
    assert data["title"] == "Leaky valve, bay 3"

    session.expire_all()
    actions = {h.action: h for h in session.scalars(select(TicketHistory).where(TicketHistory.ticket_id == t.id))}
    assert set(actions) == {"priority_changed", "assignee_changed", "status_changed"}
    assert (actions["priority_changed"].old_value, actions["priority_changed"].new_value) == ("medium", "high")
    assert actions["assignee_changed"].old_value is None
    assert actions["assignee_changed"].new_value == str(helper.id)
    assert all(h.user_id == tech.id for h in actions.values())
    # Field edits alone do not mail the requester.
    assert outbox(session) == []


def test_edit_is_all_or_nothing(client, session, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance)

    resp = client.patch(
        f"/tickets/{t.ticket_number}",
        json={"priority": "high", "status": "bogus"},
        headers=auth_headers(tech),
    )
    assert resp.status_code == 422

    session.expire_all()
    assert session.get(Ticket, t.id).priority == "medium"
    assert session.scalars(select(TicketHistory)).all() == []


def test_edit_can_clear_assignee(client, session, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance, assigned_to=tech.id)

    resp = client.patch(f"/tickets/{t.ticket_number}", json={"assigned_to": None}, headers=auth_headers(tech))
    assert resp.status_code == 200
    assert resp.json()["assigned_to"] is None


def test_status_move_tracks_completion(client, session, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance)
    url = f"/tickets/{t.ticket_number}/status"

    done = client.patch(url, json={"status": "completed"}, headers=auth_headers(tech)).json()
    assert done["status"] == "completed"
    assert done["completed_at"] is not None

    reopened = client.patch(url, json={"status": "todo"}, headers=auth_headers(tech)).json()
    assert reopened["status"] == "todo"
    assert reopened["completed_at"] is None

    # Same column again: no new history entry.
    client.patch(url, json={"status": "todo"}, headers=auth_headers(tech))

    resp = client.get(f"/tickets/{t.ticket_number}/history", headers=auth_headers(tech))
    moves = [(h["old_value"], h["new_value"]) for h in resp.json()]
    assert moves == [("completed", "todo"), ("todo", "completed")]


def test_status_move_rejects_unknown_status(client, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance)
    resp = client.patch(f"/tickets/{t.ticket_number}/status", json={"status": "done"}, headers=auth_headers(tech))
    assert resp.status_code == 422


def test_request_info_comments_and_mails(client, session, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance, status="in_progress")

    resp = client.post(
        f"/tickets/{t.ticket_number}/request-info",
        json={"message": "Which bay?"},
        headers=auth_headers(tech),
    )
    assert resp.status_code == 200
    assert resp.json()["body"] == "Information Requested: Which bay?"
    assert resp.json()["kind"] == "info_request"

    mails = outbox(session)
    assert len(mails) == 1
    assert mails[0].template_type == "info_requested"
    assert mails[0].to_email == "pat.grower@gmail.com"
    assert session.get(Ticket, t.id).status == "in_progress"


def test_detail_bundles_comments_history_and_assignee(client, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance, full_name="Tess Tech")
    t = make_ticket(maintenance, assigned_to=tech.id)
    client.post(f"/tickets/{t.ticket_number}/comments", json={"body": "On it"}, headers=auth_headers(tech))

    resp = client.get(f"/tickets/{t.ticket_number}/detail", headers=auth_headers(tech))
    assert resp.status_code == 200
    data = resp.json()
    assert data["ticket"]["ticket_number"] == t.ticket_number
    assert [c["body"] for c in data["comments"]] == ["On it"]
    assert [h["action"] for h in data["history"]] == ["comment_added"]
    assert data["assignee"] == {"id": tech.id, "email": "tech@greatlakesg.com", "full_name": "Tess Tech"}


def test_delete_requires_department_admin(client, session, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    admin = make_user("chief@greatlakesg.com", role="maintenance_admin", department=maintenance)
    t = make_ticket(maintenance)
    ticket_id, number = t.id, t.ticket_number
    client.post(f"/tickets/{number}/comments", json={"body": "note"}, headers=auth_headers(tech))

    assert client.delete(f"/tickets/{number}", headers=auth_headers(tech)).status_code == 403
    assert client.delete(f"/tickets/{number}", headers=auth_headers(admin)).status_code == 200

    session.expire_all()
    assert session.scalar(select(Ticket.id).where(Ticket.id == ticket_id)) is None
    assert session.scalars(select(TicketComment)).all() == []
    # Queued mail outlives the ticket.
    assert [m.ticket_id for m in outbox(session)] == [None]


# --- comments -------------------------------------------------------------


def test_internal_comments_are_not_mailed(client, session, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance)
    url = f"/tickets/{t.ticket_number}/comments"

    client.post(url, json={"body": "Parts ordered", "is_internal": True}, headers=auth_headers(tech))
    assert outbox(session) == []

    client.post(url, json={"body": "Fixed tomorrow"}, headers=auth_headers(tech))
    mails = outbox(session)
    assert len(mails) == 1
    assert mails[0].template_type == "comment_added"
    assert mails[0].body == "Fixed tomorrow"

    actions = sorted(h.action for h in session.scalars(select(TicketHistory)))
    assert actions == ["comment_added", "internal_comment_added"]


def test_empty_comment_is_rejected(client, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance)
    resp = client.post(f"/tickets/{t.ticket_number}/comments", json={"body": "   "}, headers=auth_headers(tech))
    assert resp.status_code == 422


def test_only_author_deletes_comment(client, maintenance, make_user, make_ticket):
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    admin = make_user("chief@greatlakesg.com", role="maintenance_admin", department=maintenance)
    t = make_ticket(maintenance)
    comment = client.post(
        f"/tickets/{t.ticket_number}/comments", json={"body": "mine"}, headers=auth_headers(tech)
    ).json()

    assert client.delete(f"/comments/{comment['id']}", headers=auth_headers(admin)).status_code == 403
    assert client.delete(f"/comments/{comment['id']}", headers=auth_headers(tech)).status_code == 200
    assert client.delete(f"/comments/{comment['id']}", headers=auth_headers(tech)).status_code == 404

    resp = client.get(f"/tickets/{t.ticket_number}/comments", headers=auth_headers(tech))
    assert resp.json() == []


# --- users ----------------------------------------------------------------


def test_department_admin_role_changes(client, maintenance, electrical, make_user):
    admin = make_user("chief@greatlakesg.com", role="maintenance_admin", department=maintenance)
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    outsider = make_user("sparky@greatlakesg.com", department=electrical)

    resp = client.patch(f"/users/{tech.id}/role", json={"role": "maintenance_admin"}, headers=auth_headers(admin))
    assert resp.status_code == 200
    assert resp.json()["role"] == "maintenance_admin"

    resp = client.patch(f"/users/{outsider.id}/role", json={"role": "user"}, headers=auth_headers(admin))
    assert resp.status_code == 403

    resp = client.patch(f"/users/{admin.id}/role", json={"role": "user"}, headers=auth_headers(admin))
    assert resp.status_code == 403

    resp = client.patch(f"/users/{outsider.id}/role", json={"role": "owner"}, headers=auth_headers(admin))
    assert resp.status_code == 422


def test_department_admin_sees_only_own_users(client, maintenance, electrical, make_user):
    admin = make_user("chief@greatlakesg.com", role="maintenance_admin", department=maintenance)
    make_user("tech@greatlakesg.com", department=maintenance)
    make_user("sparky@greatlakesg.com", department=electrical)

    emails = sorted(u["email"] for u in client.get("/users", headers=auth_headers(admin)).json())
    assert emails == ["chief@greatlakesg.com", "tech@greatlakesg.com"]


def test_deleting_user_unassigns_tickets(client, session, maintenance, make_user, make_ticket):
    boss = make_user("boss@greatlakesg.com", role="global_admin")
    tech = make_user("tech@greatlakesg.com", department=maintenance)
    t = make_ticket(maintenance, assigned_to=tech.id)

    assert client.delete(f"/users/{tech.id}", headers=auth_headers(boss)).status_code == 200
    session.expire_all()
    assert session.get(Ticket, t.id).assigned_to is None


# --- public form ----------------------------------------------------------


class StubVerifier:
    def verify(self, token):
        if token != "good-token":
            raise PermissionDenied("Invalid identity token")
        return FederatedIdentity(subject="abc", email="Sam.Grower@Gmail.com", name="Sam Grower")


def test_public_ticket_uses_verified_identity(client, session, maintenance):
    app.dependency_overrides[get_identity_verifier] = StubVerifier

    body = {"id_token": "good-token", "title": "Vent stuck open", "department_id": maintenance.id}
    resp = client.post("/public/tickets", json=body)
    assert resp.status_code == 200
    assert resp.json()["status"] == "todo"

    session.expire_all()
    t = session.scalar(select(Ticket))
    assert t.created_via == "public_form"
    assert t.requester_email == "Sam.Grower@Gmail.com"
    assert t.requester_name == "Sam Grower"
    assert t.created_by is None

    resp = client.post("/public/tickets", json={**body, "id_token": "forged"})
    assert resp.status_code == 403


def test_public_departments_need_no_login(client, maintenance, electrical):
    resp = client.get("/public/departments")
    assert resp.status_code == 200
    assert [d["name"] for d in resp.json()] == ["Electrical", "Maintenance"]
