"""
End-to-end API tests over HTTP against the full app.

Covers:
- Visibility scenarios (private, org-wide, specific shares) through the routes
- Invitation acceptance with and without a session
- Passwordless sign-in flow (request code, verify, complete, magic link)
- Slug endpoints, admin routes, the notification trigger
- Error response shape
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from sqlmodel import select

from app.models.base import utcnow
from app.models.invitation import OrgInvitation
from app.models.motivational_message import MotivationalMessage
from app.models.notification import TodoNotification
from app.models.user import User

INVITE_TOKEN = re.compile(r"/invite/([0-9a-f]{64})")
SIGN_IN_CODE = re.compile(r">([0-9A-F]{6})</p>")


@pytest.fixture
async def org_one(make_org, make_user):
    org = await make_org("Org One", "org-one")
    alice = await make_user("alice@example.com", org, name="Alice")
    bob = await make_user("bob@example.com", org, name="Bob")
    carol = await make_user("carol@example.com", org, name="Carol")
    return org, alice, bob, carol


@pytest.fixture
async def outsider(make_org, make_user):
    return await make_user("dan@example.org", await make_org("Org Two", "org-two"), name="Dan")


async def _create_todo(client, headers, **body):
    resp = await client.post("/api/todos", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["todo"]


async def _sign_in(client, email_sender, email):
    """Run the code flow end to end and return bearer headers for the new session."""
    resp = await client.post("/api/auth/request-code", json={"email": email})
    assert resp.status_code == 200
    code = SIGN_IN_CODE.search(email_sender.to(email)[-1].html).group(1)

    resp = await client.post("/api/auth/verify-code", json={"email": email, "code": code.lower()})
    assert resp.status_code == 200
    token = resp.json()["token"]

    resp = await client.post("/api/auth/callback", json={"token": token, "email": email})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['session_token']}"}


# ---------------------------------------------------------------------------
# Visibility scenarios
# ---------------------------------------------------------------------------

class TestVisibility:
    async def test_private_todo_hidden_from_teammate(self, client, auth_headers, org_one):
        _, alice, bob, _ = org_one
        todo = await _create_todo(client, auth_headers(alice), title="Diary")
        assert todo["visibility"] == "PRIVATE"

        resp = await client.get(f"/api/todos/{todo['id']}", headers=auth_headers(bob))
        assert resp.status_code == 403
        assert resp.json() == {"error": "You do not have access to this todo"}

        for todo_filter in ("my", "shared"):
            resp = await client.get(f"/api/todos?filter={todo_filter}", headers=auth_headers(bob))
            assert resp.status_code == 200
            assert todo["id"] not in [t["id"] for t in resp.json()["todos"]]

    async def test_org_todo_reaches_whole_org_once(
        self, client, session, auth_headers, org_one, outsider
    ):
        _, alice, bob, carol = org_one
        todo = await _create_todo(client, auth_headers(alice), title="Standup notes", visibility="ORG")

        for member in (bob, carol):
            resp = await client.get(f"/api/todos/{todo['id']}", headers=auth_headers(member))
            assert resp.status_code == 200
            resp = await client.get("/api/todos?filter=my", headers=auth_headers(member))
            assert todo["id"] in [t["id"] for t in resp.json()["todos"]]

        resp = await client.get(f"/api/todos/{todo['id']}", headers=auth_headers(outsider))
        assert resp.status_code == 403

        result = await session.execute(
            select(TodoNotification.user_id).where(TodoNotification.todo_id == uuid.UUID(todo["id"]))
        )
        assert sorted(result.scalars().all(), key=str) == sorted([bob.id, carol.id], key=str)

    async def test_specific_share_reads_and_messages(
        self, client, auth_headers, email_sender, org_one
    ):
        _, alice, bob, carol = org_one
        todo = await _create_todo(client, auth_headers(alice), title="Budget")
        resp = await client.patch(
            f"/api/todos/{todo['id']}",
            json={"visibility": "SPECIFIC", "shared_with_user_ids": [str(bob.id)]},
            headers=auth_headers(alice),
        )
        assert resp.status_code == 200
        assert [u["id"] for u in resp.json()["todo"]["shared_with"]] == [str(bob.id)]

        assert (await client.get(f"/api/todos/{todo['id']}", headers=auth_headers(bob))).status_code == 200
        resp = await client.post(
            "/api/messages",
            json={"todo_id": todo["id"], "content": "Looks good"},
            headers=auth_headers(bob),
        )
        assert resp.status_code == 201
        assert resp.json()["message"]["author"]["id"] == str(bob.id)
        assert [m.subject for m in email_sender.to("alice@example.com")] == ["New message on: Budget"]

        assert (await client.get(f"/api/todos/{todo['id']}", headers=auth_headers(carol))).status_code == 403
        resp = await client.post(
            "/api/messages",
            json={"todo_id": todo["id"], "content": "Me too"},
            headers=auth_headers(carol),
        )
        assert resp.status_code == 403

        resp = await client.get("/api/todos?filter=shared", headers=auth_headers(bob))
        assert [t["id"] for t in resp.json()["todos"]] == [todo["id"]]

        detail = (await client.get(f"/api/todos/{todo['id']}", headers=auth_headers(alice))).json()["todo"]
        assert detail["message_count"] == 1
        assert [m["content"] for m in detail["messages"]] == ["Looks good"]

    async def test_only_owner_updates(self, client, auth_headers, org_one):
        _, alice, bob, _ = org_one
        todo = await _create_todo(client, auth_headers(alice), title="Ours", visibility="ORG")
        resp = await client.patch(
            f"/api/todos/{todo['id']}", json={"status": "COMPLETED"}, headers=auth_headers(bob)
        )
        assert resp.status_code == 403

        resp = await client.patch(
            f"/api/todos/{todo['id']}", json={"status": "COMPLETED"}, headers=auth_headers(alice)
        )
        assert resp.json()["todo"]["status"] == "COMPLETED"
        assert resp.json()["todo"]["title"] == "Ours"


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

class TestInvitationFlow:
    async def test_accept_requires_sign_in_then_joins_org(
        self, client, session, auth_headers, email_sender, org_one
    ):
        org, alice, _, _ = org_one
        resp = await client.post(
            "/api/org/invite", json={"email": "new@x.com"}, headers=auth_headers(alice)
        )
        assert resp.status_code == 200
        assert resp.json()["invitation"]["status"] == "created"
        token = INVITE_TOKEN.search(email_sender.to("new@x.com")[0].html).group(1)

        resp = await client.post("/api/org/invite/accept", json={"token": token})
        assert resp.status_code == 200
        assert resp.json()["status"] == "sign_in_required"
        result = await session.execute(select(OrgInvitation.accepted).where(OrgInvitation.token == token))
        assert result.scalar_one() is False

        headers = await _sign_in(client, email_sender, "new@x.com")
        resp = await client.post("/api/org/invite/accept", json={"token": token}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["status"] == "accepted"

        me = (await client.get("/api/user", headers=headers)).json()["user"]
        assert me["org_id"] == str(org.id)
        result = await session.execute(select(OrgInvitation.accepted).where(OrgInvitation.token == token))
        assert result.scalar_one() is True

        resp = await client.get("/api/org/members", headers=auth_headers(alice))
        assert "new@x.com" in [m["email"] for m in resp.json()["members"]]

    async def test_duplicate_and_member_invites_conflict(self, client, auth_headers, org_one):
        _, alice, _, _ = org_one
        await client.post("/api/org/invite", json={"email": "new@x.com"}, headers=auth_headers(alice))
        resp = await client.post("/api/org/invite", json={"email": "new@x.com"}, headers=auth_headers(alice))
        assert resp.status_code == 409

        resp = await client.post("/api/org/invite", json={"email": "bob@example.com"}, headers=auth_headers(alice))
        assert resp.status_code == 409
        assert resp.json() == {"error": "User is already a member of this organization"}

    async def test_email_failure_returns_500_and_leaves_nothing(
        self, client, session, auth_headers, email_sender, org_one
    ):
        _, alice, _, _ = org_one
        email_sender.fail_all = True
        resp = await client.post("/api/org/invite", json={"email": "new@x.com"}, headers=auth_headers(alice))
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to send invitation email"}
        assert (await session.execute(select(OrgInvitation))).scalars().all() == []

    async def test_list_reinvite_delete(self, client, auth_headers, email_sender, org_one):
        _, alice, _, _ = org_one
        await client.post("/api/org/invite", json={"email": "new@x.com"}, headers=auth_headers(alice))
        [invitation] = (await client.get("/api/org/invitations", headers=auth_headers(alice))).json()["invitations"]

        resp = await client.post(f"/api/org/invitations/{invitation['id']}/reinvite", headers=auth_headers(alice))
        assert resp.status_code == 200
        first, second = email_sender.to("new@x.com")
        assert INVITE_TOKEN.search(first.html).group(1) != INVITE_TOKEN.search(second.html).group(1)

        resp = await client.delete(f"/api/org/invitations/{invitation['id']}", headers=auth_headers(alice))
        assert resp.status_code == 200
        assert (await client.get("/api/org/invitations", headers=auth_headers(alice))).json()["invitations"] == []


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------

class TestSignInFlow:
    async def test_new_user_lands_in_default_org(self, client, email_sender):
        headers = await _sign_in(client, email_sender, "first@example.com")
        resp = await client.get("/api/auth/session", headers=headers)
        assert resp.json()["org_slug"] == "default"

    async def test_wrong_code(self, client, email_sender):
        await client.post("/api/auth/request-code", json={"email": "first@example.com"})
        resp = await client.post(
            "/api/auth/verify-code", json={"email": "first@example.com", "code": "000000"}
        )
        # A random token starting with six zeros is possible but vanishingly unlikely
        assert resp.status_code == 401
        assert "most recent email" in resp.json()["error"]

    async def test_magic_link_redirects_to_org(self, client, session, email_sender):
        await client.post("/api/auth/request-code", json={"email": "link@example.com"})
        link = re.search(r'href="([^"]+)"', email_sender.to("link@example.com")[0].html).group(1)
        path = link.replace("http://test", "").replace("&amp;", "&")

        resp = await client.get(path, follow_redirects=False)
        assert resp.status_code == 303
        assert resp.headers["location"] == "/default"
        assert "nuclio_session" in resp.headers.get("set-cookie", "")

        resp = await client.get(path, follow_redirects=False)
        assert resp.status_code == 401

    async def test_password_login(self, client, make_user):
        await make_user("pw@example.com", password="s3cret-pass")
        resp = await client.post("/api/auth/login", json={"email": "pw@example.com", "password": "s3cret-pass"})
        assert resp.status_code == 200
        assert resp.json()["session_token"]

        resp = await client.post("/api/auth/login", json={"email": "pw@example.com", "password": "wrong-pass"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid email or password"}


# ---------------------------------------------------------------------------
# Due dates
# ---------------------------------------------------------------------------

class TestDueDates:
    @pytest.fixture
    def settings(self, settings):
        return settings.model_copy(update={"timezone": "Asia/Tokyo"})

    async def test_calendar_day_survives_round_trip(self, client, auth_headers, org_one):
        _, alice, _, _ = org_one
        headers = auth_headers(alice)
        todo = await _create_todo(client, headers, title="File taxes", due_date="2024-01-15")
        assert todo["due_date"] == "2024-01-14T15:00:00Z"

        resp = await client.get(f"/api/todos/{todo['id']}", headers=headers)
        due = datetime.fromisoformat(resp.json()["todo"]["due_date"].replace("Z", "+00:00"))
        assert due.astimezone(ZoneInfo("Asia/Tokyo")).date() == date(2024, 1, 15)

    async def test_no_due_date(self, client, auth_headers, org_one):
        _, alice, _, _ = org_one
        todo = await _create_todo(client, auth_headers(alice), title="Someday")
        assert todo["due_date"] is None


# ---------------------------------------------------------------------------
# Orgs, slugs, admin
# ---------------------------------------------------------------------------

class TestOrgEndpoints:
    async def test_own_org(self, client, auth_headers, org_one):
        org, alice, _, _ = org_one
        resp = await client.get("/api/org", headers=auth_headers(alice))
        assert resp.status_code == 200
        assert resp.json()["id"] == str(org.id)
        assert resp.json()["slug"] == "org-one"

    async def test_slug_check_and_update(self, client, auth_headers, org_one):
        _, alice, _, _ = org_one
        resp = await client.get("/api/org/slug", params={"slug": "No"}, headers=auth_headers(alice))
        assert resp.json()["available"] is False
        resp = await client.get("/api/org/slug", params={"slug": "org-one"}, headers=auth_headers(alice))
        assert resp.json()["available"] is False

        resp = await client.patch("/api/org/slug", json={"slug": "acme-co"}, headers=auth_headers(alice))
        assert resp.status_code == 200
        assert resp.json()["org"]["slug"] == "acme-co"

    async def test_slug_taken_by_other_org(self, client, auth_headers, org_one, outsider):
        _, alice, _, _ = org_one
        resp = await client.patch("/api/org/slug", json={"slug": "org-two"}, headers=auth_headers(alice))
        assert resp.status_code == 409
        assert resp.json() == {"error": "This slug is already taken"}

    async def test_resolve(self, client, auth_headers, org_one):
        org, alice, _, _ = org_one
        resp = await client.get("/api/orgs/ORG-ONE", headers=auth_headers(alice))
        assert resp.status_code == 200
        assert resp.json()["id"] == str(org.id)

        resp = await client.get("/api/orgs/nowhere", headers=auth_headers(alice))
        assert resp.status_code == 404
        assert resp.json() == {"error": "Organization not found", "redirect_to": "/"}

    async def test_remove_member(self, client, auth_headers, org_one):
        _, alice, bob, _ = org_one
        resp = await client.delete(f"/api/org/members/{bob.id}", headers=auth_headers(alice))
        assert resp.status_code == 200
        resp = await client.delete(f"/api/org/members/{alice.id}", headers=auth_headers(alice))
        assert resp.status_code == 400

    async def test_admin_routes(self, client, session, auth_headers, make_user, org_one):
        _, alice, bob, _ = org_one
        admin = await make_user("admin@nuclio.test")

        resp = await client.post("/api/admin/orgs", json={"name": "Widgets"}, headers=auth_headers(alice))
        assert resp.status_code == 403

        resp = await client.post(
            "/api/admin/orgs", json={"name": "Widgets", "slug": "widgets"}, headers=auth_headers(admin)
        )
        assert resp.status_code == 201
        new_org_id = resp.json()["id"]

        resp = await client.patch(
            f"/api/admin/users/{bob.id}/org", json={"org_id": new_org_id}, headers=auth_headers(admin)
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["org_id"] == new_org_id
        await session.refresh(bob)
        assert str(bob.org_id) == new_org_id


# ---------------------------------------------------------------------------
# Notifications trigger, misc
# ---------------------------------------------------------------------------

class TestNotificationTrigger:
    async def test_requires_cron_secret(self, client):
        assert (await client.post("/api/notifications/send-batch")).status_code == 401
        resp = await client.post(
            "/api/notifications/send-batch", headers={"Authorization": "Bearer wrong"}
        )
        assert resp.status_code == 401

    async def test_sends_due_notifications(self, client, session, email_sender, auth_headers, org_one):
        _, alice, bob, carol = org_one
        todo = await _create_todo(client, auth_headers(alice), title="Quarterly plan", visibility="ORG")

        resp = await client.post(
            "/api/notifications/send-batch", headers={"Authorization": "Bearer cron-secret"}
        )
        assert resp.json()["message"] == "No pending notifications"

        result = await session.execute(
            select(TodoNotification).where(TodoNotification.todo_id == uuid.UUID(todo["id"]))
        )
        for notification in result.scalars().all():
            notification.created_at = utcnow() - timedelta(hours=3)
            session.add(notification)
        await session.commit()

        resp = await client.post(
            "/api/notifications/send-batch", headers={"Authorization": "Bearer cron-secret"}
        )
        data = resp.json()
        assert (data["total"], data["sent"], data["failed"]) == (2, 2, 0)
        assert email_sender.to("bob@example.com")[0].subject == "You have 1 new shared todo"


class TestMisc:
    async def test_error_shape_for_missing_todo(self, client, auth_headers, org_one):
        _, alice, _, _ = org_one
        resp = await client.get(f"/api/todos/{uuid.uuid4()}", headers=auth_headers(alice))
        assert resp.status_code == 404
        assert resp.json() == {"error": "Todo not found"}

    async def test_validation_error_shape(self, client, auth_headers, org_one):
        _, alice, _, _ = org_one
        resp = await client.post("/api/todos", json={"visibility": "ORG"}, headers=auth_headers(alice))
        assert resp.status_code == 400
        assert set(resp.json()) == {"error"}
        assert "title" in resp.json()["error"]

    async def test_profile_and_password(self, client, auth_headers, org_one):
        _, alice, _, _ = org_one
        resp = await client.patch("/api/user", json={"zip_code": "10001"}, headers=auth_headers(alice))
        assert resp.json()["user"]["zip_code"] == "10001"
        assert resp.json()["user"]["name"] == "Alice"

        resp = await client.patch(
            "/api/user/password", json={"new_password": "short"}, headers=auth_headers(alice)
        )
        assert resp.status_code == 400
        resp = await client.patch(
            "/api/user/password", json={"new_password": "long-enough"}, headers=auth_headers(alice)
        )
        assert resp.status_code == 200

    async def test_motivational(self, client, session, auth_headers, org_one):
        _, alice, _, _ = org_one
        resp = await client.get("/api/motivational", headers=auth_headers(alice))
        assert resp.json() == {"message": None}

        session.add(MotivationalMessage(message="Keep going", author="Anon", date=utcnow()))
        await session.commit()
        resp = await client.get("/api/motivational", headers=auth_headers(alice))
        assert resp.json()["message"]["message"] == "Keep going"

    async def test_feedback(self, client, auth_headers, email_sender, org_one):
        _, alice, _, _ = org_one
        resp = await client.post("/api/feedback", json={"feedback": "Love it"}, headers=auth_headers(alice))
        assert resp.status_code == 200
        [message] = email_sender.to("feedback@nuclio.test")
        assert "alice@example.com" in message.subject

    async def test_user_lookup_after_sign_in(self, client, session, email_sender):
        await _sign_in(client, email_sender, "Mixed@Example.com")
        result = await session.execute(select(User).where(User.email == "mixed@example.com"))
        assert result.scalar_one().org_id is not None
