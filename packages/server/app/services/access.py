"""
Todo access control.

One predicate decides who may read, write, or message on a todo. It exists in
two forms that must agree: ``can_read`` over an in-memory ``TodoGrant`` (the
gate used by fetch-one, update and message) and ``readable_todos_clause``
(the same rule as a SQL filter used by list queries).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from app.core.errors import Forbidden, NotFound
from app.models.todo import Todo
from app.models.todo_share import TodoShare
from app.models.user import User
from nuclio_shared.schemas.common import Visibility


@dataclass(frozen=True)
class TodoGrant:
    """Everything the access rule needs to know about one todo."""

    owner_id: uuid.UUID
    owner_org_id: Optional[uuid.UUID]
    visibility: Visibility
    shared_with: frozenset[uuid.UUID] = field(default_factory=frozenset)


def can_read(principal: User, grant: TodoGrant) -> bool:
    if principal.id == grant.owner_id:
        return True
    if grant.visibility == Visibility.SPECIFIC and principal.id in grant.shared_with:
        return True
    if (
        grant.visibility == Visibility.ORG
        and principal.org_id is not None
        and principal.org_id == grant.owner_org_id
    ):
        return True
    return False


def can_write(principal: User, grant: TodoGrant) -> bool:
    """Only the owner may mutate a todo; visibility never grants write."""
    return principal.id == grant.owner_id


def can_message(principal: User, grant: TodoGrant) -> bool:
    return can_read(principal, grant)


def require_read(principal: User, grant: TodoGrant) -> None:
    if not can_read(principal, grant):
        raise Forbidden("You do not have access to this todo")


def require_write(principal: User, grant: TodoGrant) -> None:
    if not can_write(principal, grant):
        raise Forbidden("Only the owner can modify this todo")


def require_message(principal: User, grant: TodoGrant) -> None:
    if not can_message(principal, grant):
        raise Forbidden("You do not have access to this todo")


# ---------------------------------------------------------------------------
# Storage-side form
# ---------------------------------------------------------------------------

def readable_todos_clause(principal: User) -> ColumnElement[bool]:
    """SQL filter selecting exactly the todos ``can_read`` admits for ``principal``."""
    shared_with_principal = exists(
        select(TodoShare.todo_id).where(
            TodoShare.todo_id == Todo.id,
            TodoShare.user_id == principal.id,
        )
    )
    clauses = [
        Todo.owner_id == principal.id,
        and_(Todo.visibility == Visibility.SPECIFIC.value, shared_with_principal),
    ]
    if principal.org_id is not None:
        same_org_owner = exists(
            select(User.id).where(
                User.id == Todo.owner_id,
                User.org_id == principal.org_id,
            )
        )
        clauses.append(and_(Todo.visibility == Visibility.ORG.value, same_org_owner))
    return or_(*clauses)


async def load_grant(todo: Todo, session: AsyncSession) -> TodoGrant:
    """Build the access snapshot for a stored todo."""
    owner_org = await session.execute(select(User.org_id).where(User.id == todo.owner_id))
    shares = await session.execute(
        select(TodoShare.user_id).where(TodoShare.todo_id == todo.id)
    )
    return TodoGrant(
        owner_id=todo.owner_id,
        owner_org_id=owner_org.scalar_one_or_none(),
        visibility=Visibility(todo.visibility),
        shared_with=frozenset(shares.scalars().all()),
    )


async def get_todo_for(
    todo_id: uuid.UUID, session: AsyncSession
) -> tuple[Todo, TodoGrant]:
    """Fetch a todo and its grant; 404 when absent (the caller applies the gate)."""
    todo = await session.get(Todo, todo_id)
    if todo is None:
        raise NotFound("Todo not found")
    return todo, await load_grant(todo, session)
