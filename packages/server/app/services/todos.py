"""
Todo service layer: business logic for todos and their messages.

Handles:
- Todo CRUD, with every read and write passing through the access gate
- List queries filtered by the same rule in SQL
- Queuing share notifications when a todo becomes visible to someone new
- Message posting with best-effort email to the other parties
- Enrichment of todo data for API responses
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import and_, case, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import Settings
from app.core.email import EmailDeliveryError, EmailSender
from app.core.errors import InvalidInput
from app.models.base import utcnow
from app.models.message import Message
from app.models.notification import TodoNotification
from app.models.todo import Todo
from app.models.todo_share import TodoShare
from app.models.user import User
from app.services import access
from app.services.email_templates import message_notification_email
from nuclio_shared.schemas.common import TodoStatus, UserSummary, Visibility
from nuclio_shared.schemas.todos import (
    MessageRead,
    TodoCreate,
    TodoDetail,
    TodoFilter,
    TodoRead,
    TodoUpdate,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Due dates
# ---------------------------------------------------------------------------


def local_zone(settings: Settings) -> Optional[tzinfo]:
    """Zone due dates are read in; None means the host's local zone."""
    return ZoneInfo(settings.timezone) if settings.timezone else None


def parse_due_date(value: Optional[str], tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Read ``YYYY-MM-DD`` (or the date part of an ISO timestamp) as local midnight.

    The result is the matching instant in naive UTC. Blank input means no due date.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        day = date.fromisoformat(value[:10])
    except ValueError:
        raise InvalidInput("Invalid due date, expected YYYY-MM-DD")

    midnight = datetime.combine(day, time.min)
    if tz is not None:
        aware = midnight.replace(tzinfo=tz)
    else:
        aware = midnight.astimezone()
    return aware.astimezone(timezone.utc).replace(tzinfo=None)


def _normalize_description(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _get_share_ids(session: AsyncSession, todo_id: uuid.UUID) -> set[uuid.UUID]:
    result = await session.execute(
        select(TodoShare.user_id).where(TodoShare.todo_id == todo_id)
    )
    return set(result.scalars().all())


async def _validate_share_ids(
    session: AsyncSession, owner: User, user_ids: Sequence[uuid.UUID]
) -> set[uuid.UUID]:
    wanted = {uid for uid in user_ids if uid != owner.id}
    if not wanted:
        return set()
    result = await session.execute(select(User.id).where(User.id.in_(wanted)))
    found = set(result.scalars().all())
    if found != wanted:
        raise InvalidInput("Cannot share with unknown users")
    return wanted


async def _replace_shares(
    session: AsyncSession, todo_id: uuid.UUID, user_ids: set[uuid.UUID]
) -> None:
    current = await _get_share_ids(session, todo_id)
    for user_id in current - user_ids:
        share = await session.get(TodoShare, (todo_id, user_id))
        if share:
            await session.delete(share)
    for user_id in user_ids - current:
        session.add(TodoShare(todo_id=todo_id, user_id=user_id))
    await session.flush()


async def _audience(
    session: AsyncSession, owner: User, visibility: Visibility, share_ids: set[uuid.UUID]
) -> set[uuid.UUID]:
    """Users other than the owner that the todo is shared into."""
    if visibility == Visibility.ORG and owner.org_id is not None:
        result = await session.execute(
            select(User.id).where(User.org_id == owner.org_id, User.id != owner.id)
        )
        return set(result.scalars().all())
    if visibility == Visibility.SPECIFIC:
        return set(share_ids) - {owner.id}
    return set()


async def queue_notifications(
    session: AsyncSession, todo_id: uuid.UUID, user_ids: set[uuid.UUID]
) -> int:
    """Create one pending notification per user; existing (todo, user) pairs are skipped."""
    if not user_ids:
        return 0
    result = await session.execute(
        select(TodoNotification.user_id).where(
            TodoNotification.todo_id == todo_id,
            TodoNotification.user_id.in_(user_ids),
        )
    )
    existing = set(result.scalars().all())
    new_ids = user_ids - existing
    for user_id in new_ids:
        session.add(TodoNotification(todo_id=todo_id, user_id=user_id))
    await session.flush()
    if new_ids:
        log.info("todo.notifications_queued", todo_id=str(todo_id), count=len(new_ids))
    return len(new_ids)


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


async def enrich_todos(session: AsyncSession, todos: Sequence[Todo]) -> list[TodoRead]:
    """Convert Todo rows to TodoRead with owners, share lists and message counts."""
    if not todos:
        return []
    todo_ids = [t.id for t in todos]

    shares: dict[uuid.UUID, list[uuid.UUID]] = defaultdict(list)
    share_rows = await session.execute(
        select(TodoShare.todo_id, TodoShare.user_id).where(TodoShare.todo_id.in_(todo_ids))
    )
    for todo_id, user_id in share_rows.all():
        shares[todo_id].append(user_id)

    user_ids = {t.owner_id for t in todos} | {uid for ids in shares.values() for uid in ids}
    user_rows = await session.execute(select(User).where(User.id.in_(user_ids)))
    users = {u.id: UserSummary.model_validate(u) for u in user_rows.scalars().all()}

    count_rows = await session.execute(
        select(Message.todo_id, func.count(Message.id))
        .where(Message.todo_id.in_(todo_ids))
        .group_by(Message.todo_id)
    )
    counts = dict(count_rows.all())

    return [
        TodoRead(
            id=t.id,
            title=t.title,
            description=t.description,
            status=t.status,
            priority=t.priority,
            due_date=t.due_date,
            visibility=t.visibility,
            ai_generated=t.ai_generated,
            owner=users[t.owner_id],
            shared_with=sorted(
                (users[uid] for uid in shares.get(t.id, []) if uid in users),
                key=lambda u: (u.name or u.email).lower(),
            ),
            message_count=counts.get(t.id, 0),
            created_at=t.created_at,
            updated_at=t.updated_at,
        )
        for t in todos
    ]


async def enrich_todo(session: AsyncSession, todo: Todo) -> TodoRead:
    return (await enrich_todos(session, [todo]))[0]


async def list_messages(session: AsyncSession, todo_id: uuid.UUID) -> list[MessageRead]:
    result = await session.execute(
        select(Message, User)
        .join(User, User.id == Message.author_id)
        .where(Message.todo_id == todo_id)
        .order_by(Message.created_at, Message.id)
    )
    return [
        MessageRead(
            id=m.id,
            todo_id=m.todo_id,
            content=m.content,
            author=UserSummary.model_validate(author),
            created_at=m.created_at,
        )
        for m, author in result.all()
    ]


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


async def create_todo(
    session: AsyncSession,
    owner: User,
    todo_in: TodoCreate,
    tz: Optional[tzinfo] = None,
) -> Todo:
    share_ids = await _validate_share_ids(session, owner, todo_in.shared_with_user_ids)
    todo = Todo(
        title=todo_in.title.strip(),
        description=_normalize_description(todo_in.description),
        owner_id=owner.id,
        status=TodoStatus.OPEN.value,
        priority=todo_in.priority.value if todo_in.priority else None,
        due_date=parse_due_date(todo_in.due_date, tz),
        visibility=todo_in.visibility.value,
        ai_generated=todo_in.ai_generated,
    )
    session.add(todo)
    await session.flush()

    if share_ids:
        await _replace_shares(session, todo.id, share_ids)

    audience = await _audience(session, owner, todo_in.visibility, share_ids)
    await queue_notifications(session, todo.id, audience)

    log.info(
        "todo.created",
        todo_id=str(todo.id),
        owner_id=str(owner.id),
        visibility=todo.visibility,
    )
    return todo


async def get_todo(
    session: AsyncSession, requester: User, todo_id: uuid.UUID
) -> TodoDetail:
    """404 when the todo does not exist, 403 when it exists but is not readable."""
    todo, grant = await access.get_todo_for(todo_id, session)
    access.require_read(requester, grant)
    base = await enrich_todo(session, todo)
    return TodoDetail(**base.model_dump(), messages=await list_messages(session, todo.id))


async def update_todo(
    session: AsyncSession,
    requester: User,
    todo_id: uuid.UUID,
    todo_in: TodoUpdate,
    tz: Optional[tzinfo] = None,
) -> Todo:
    """Owner-only partial update; only fields present in the request are touched."""
    todo, grant = await access.get_todo_for(todo_id, session)
    access.require_write(requester, grant)

    before = await _audience(session, requester, grant.visibility, set(grant.shared_with))
    update_data = todo_in.model_dump(exclude_unset=True)

    if "title" in update_data:
        if not update_data["title"] or not update_data["title"].strip():
            raise InvalidInput("Title is required")
        todo.title = update_data["title"].strip()
    if "description" in update_data:
        todo.description = _normalize_description(update_data["description"])
    if "status" in update_data:
        if update_data["status"] is None:
            raise InvalidInput("Status cannot be empty")
        todo.status = TodoStatus(update_data["status"]).value
    if "priority" in update_data:
        priority = update_data["priority"]
        todo.priority = priority.value if priority else None
    if "due_date" in update_data:
        todo.due_date = parse_due_date(update_data["due_date"], tz)
    if "visibility" in update_data:
        if update_data["visibility"] is None:
            raise InvalidInput("Visibility cannot be empty")
        todo.visibility = Visibility(update_data["visibility"]).value

    share_ids = set(grant.shared_with)
    if "shared_with_user_ids" in update_data:
        share_ids = await _validate_share_ids(
            session, requester, update_data["shared_with_user_ids"] or []
        )
        await _replace_shares(session, todo.id, share_ids)

    todo.updated_at = utcnow()
    session.add(todo)
    await session.flush()

    after = await _audience(session, requester, Visibility(todo.visibility), share_ids)
    await queue_notifications(session, todo.id, after - before)

    log.info("todo.updated", todo_id=str(todo.id), fields=sorted(update_data))
    return todo


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def _list_order():
    return (
        case((Todo.status == TodoStatus.OPEN.value, 0), else_=1),
        Todo.due_date.is_(None),
        Todo.due_date,
        Todo.created_at.desc(),
    )


async def list_todos(
    session: AsyncSession, user: User, todo_filter: TodoFilter = TodoFilter.MY
) -> list[Todo]:
    """``my``: own todos plus org-visible todos from the user's org.
    ``shared``: todos owned by others that the user can read.
    """
    readable = access.readable_todos_clause(user)
    if todo_filter == TodoFilter.SHARED:
        where = and_(readable, Todo.owner_id != user.id)
    else:
        where = and_(
            readable,
            or_(Todo.owner_id == user.id, Todo.visibility == Visibility.ORG.value),
        )
    result = await session.execute(select(Todo).where(where).order_by(*_list_order()))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


async def post_message(
    session: AsyncSession,
    author: User,
    todo_id: uuid.UUID,
    content: str,
    sender: EmailSender,
    settings: Settings,
) -> MessageRead:
    todo, grant = await access.get_todo_for(todo_id, session)
    access.require_message(author, grant)

    content = content.strip()
    if not content:
        raise InvalidInput("Message content is required")

    message = Message(todo_id=todo.id, author_id=author.id, content=content)
    session.add(message)
    # Persist before notifying so a failed email never loses the message
    await session.commit()
    log.info("message.created", message_id=str(message.id), todo_id=str(todo.id), author_id=str(author.id))

    await _notify_message(session, todo, grant, author, content, sender, settings)

    return MessageRead(
        id=message.id,
        todo_id=message.todo_id,
        content=message.content,
        author=UserSummary.model_validate(author),
        created_at=message.created_at,
    )


async def _notify_message(
    session: AsyncSession,
    todo: Todo,
    grant: access.TodoGrant,
    author: User,
    content: str,
    sender: EmailSender,
    settings: Settings,
) -> None:
    candidate_ids = ({grant.owner_id} | set(grant.shared_with)) - {author.id}
    if not candidate_ids:
        return
    result = await session.execute(select(User).where(User.id.in_(candidate_ids)))
    recipients = [u for u in result.scalars().all() if access.can_read(u, grant)]

    todo_url = f"{settings.base_url.rstrip('/')}/todos/{todo.id}"
    for recipient in recipients:
        email = message_notification_email(
            to=recipient.email,
            todo_title=todo.title,
            author_name=author.display_name,
            content=content,
            todo_url=todo_url,
        )
        try:
            await sender.send(email)
        except EmailDeliveryError as exc:
            log.warning(
                "message.notification_failed",
                todo_id=str(todo.id),
                recipient_id=str(recipient.id),
                error=str(exc),
            )
