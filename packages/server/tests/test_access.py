"""
Tests for todo access control.

Covers:
- The read/write/message gate over in-memory grants
- The SQL list filter agreeing with the gate on every combination of
  visibility, ownership, org membership and sharing
"""

from __future__ import annotations

import itertools
import uuid

import pytest
from sqlmodel import select

from app.core.errors import Forbidden, NotFound
from app.models.todo import Todo
from app.models.todo_share import TodoShare
from app.models.user import User
from app.services import access
from app.services.access import TodoGrant, can_message, can_read, can_write
from nuclio_shared.schemas.common import Visibility


def _user(org_id):
    return User(id=uuid.uuid4(), email=f"{uuid.uuid4().hex[:8]}@nuclio.test", org_id=org_id)


# ---------------------------------------------------------------------------
# Unit Tests: the gate
# ---------------------------------------------------------------------------

class TestGate:
    def setup_method(self):
        self.org = uuid.uuid4()
        self.other_org = uuid.uuid4()
        self.owner = _user(self.org)
        self.teammate = _user(self.org)
        self.outsider = _user(self.other_org)

    def _grant(self, visibility: Visibility, shared=()) -> TodoGrant:
        return TodoGrant(
            owner_id=self.owner.id,
            owner_org_id=self.org,
            visibility=visibility,
            shared_with=frozenset(u.id for u in shared),
        )

    def test_owner_reads_every_visibility(self):
        for visibility in Visibility:
            assert can_read(self.owner, self._grant(visibility))

    def test_private_hidden_from_teammate(self):
        assert not can_read(self.teammate, self._grant(Visibility.PRIVATE))

    def test_org_visible_to_teammate_not_outsider(self):
        grant = self._grant(Visibility.ORG)
        assert can_read(self.teammate, grant)
        assert not can_read(self.outsider, grant)

    def test_specific_visible_to_shared_user_in_any_org(self):
        grant = self._grant(Visibility.SPECIFIC, shared=[self.outsider])
        assert can_read(self.outsider, grant)
        assert not can_read(self.teammate, grant)

    def test_share_list_ignored_unless_specific(self):
        for visibility in (Visibility.PRIVATE, Visibility.ORG):
            grant = self._grant(visibility, shared=[self.outsider])
            assert not can_read(self.outsider, grant)

    def test_principal_without_org_never_matches_org_visibility(self):
        orphan = _user(None)
        grant = TodoGrant(owner_id=self.owner.id, owner_org_id=None, visibility=Visibility.ORG)
        assert not can_read(orphan, grant)

    def test_only_owner_writes(self):
        for visibility in Visibility:
            grant = self._grant(visibility, shared=[self.teammate, self.outsider])
            assert can_write(self.owner, grant)
            for other in (self.teammate, self.outsider):
                assert not can_write(other, grant)

    def test_message_follows_read(self):
        for visibility in Visibility:
            grant = self._grant(visibility, shared=[self.outsider])
            for principal in (self.owner, self.teammate, self.outsider):
                assert can_message(principal, grant) == can_read(principal, grant)

    def test_require_helpers_raise_forbidden(self):
        grant = self._grant(Visibility.PRIVATE)
        with pytest.raises(Forbidden):
            access.require_read(self.teammate, grant)
        with pytest.raises(Forbidden):
            access.require_write(self.teammate, grant)
        with pytest.raises(Forbidden):
            access.require_message(self.teammate, grant)
        access.require_write(self.owner, grant)


# ---------------------------------------------------------------------------
# Integration Tests: SQL filter vs gate
# ---------------------------------------------------------------------------

class TestFilterAgreesWithGate:
    async def test_full_matrix(self, session, make_org, make_user):
        org_a = await make_org("A")
        org_b = await make_org("B")
        alice = await make_user("alice@nuclio.test", org_a)
        bob = await make_user("bob@nuclio.test", org_a)
        carol = await make_user("carol@nuclio.test", org_b)
        dave = await make_user("dave@nuclio.test", org_a)
        erin = await make_user("erin@nuclio.test", org_b)
        people = [alice, bob, carol, dave, erin]

        share_options = [(), (bob,), (carol,), (bob, carol)]
        for owner, visibility, shared in itertools.product(
            (alice, carol), Visibility, share_options
        ):
            todo = Todo(title=f"{owner.email}-{visibility.value}", owner_id=owner.id, visibility=visibility.value)
            session.add(todo)
            await session.flush()
            for user in shared:
                if user.id != owner.id:
                    session.add(TodoShare(todo_id=todo.id, user_id=user.id))
        await session.commit()

        todos = (await session.execute(select(Todo))).scalars().all()
        assert len(todos) == 2 * len(Visibility) * len(share_options)
        grants = {t.id: await access.load_grant(t, session) for t in todos}

        for principal in people:
            result = await session.execute(
                select(Todo.id).where(access.readable_todos_clause(principal))
            )
            from_sql = set(result.scalars().all())
            from_gate = {tid for tid, grant in grants.items() if can_read(principal, grant)}
            assert from_sql == from_gate, principal.email

    async def test_principal_without_org(self, session, make_org, make_user):
        org = await make_org()
        owner = await make_user("owner@nuclio.test", org)
        orphan = await make_user("orphan@nuclio.test", None)
        session.add(Todo(title="org-wide", owner_id=owner.id, visibility=Visibility.ORG.value))
        await session.commit()

        result = await session.execute(select(Todo.id).where(access.readable_todos_clause(orphan)))
        assert result.scalars().all() == []

    async def test_get_todo_for_missing_is_not_found(self, session):
        with pytest.raises(NotFound):
            await access.get_todo_for(uuid.uuid4(), session)
