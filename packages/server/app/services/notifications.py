"""
Batched share notifications.

Pending ``TodoNotification`` rows older than the delay window are grouped per
recipient and sent as one email per recipient. A group is marked sent only
after its email went out, with a conditional update so two overlapping runs
cannot both flip the same rows. A failed group is left untouched and picked up
again by the next run (at-least-once delivery).
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlmodel import select

from app.core.config import Settings
from app.core.email import EmailDeliveryError, EmailSender
from app.models.base import utcnow
from app.models.notification import TodoNotification
from app.models.todo import Todo
from app.models.user import User
from app.services.email_templates import PendingTodo, batched_todos_email
from nuclio_shared.schemas.notifications import BatchResult, GroupResult

log = structlog.get_logger()


async def _pending_by_user(
    cutoff: datetime, session: AsyncSession
) -> dict[uuid.UUID, list[tuple[uuid.UUID, PendingTodo]]]:
    owner = aliased(User)
    result = await session.execute(
        select(TodoNotification.id, TodoNotification.user_id, Todo, owner)
        .join(Todo, Todo.id == TodoNotification.todo_id)
        .join(owner, owner.id == Todo.owner_id)
        .where(
            TodoNotification.sent.is_(False),
            TodoNotification.created_at <= cutoff,
        )
        .order_by(TodoNotification.user_id, TodoNotification.created_at)
    )
    groups: dict[uuid.UUID, list[tuple[uuid.UUID, PendingTodo]]] = defaultdict(list)
    for notification_id, user_id, todo, todo_owner in result.all():
        groups[user_id].append(
            (
                notification_id,
                PendingTodo(
                    title=todo.title,
                    owner_name=todo_owner.display_name,
                    due_date=todo.due_date,
                    description=todo.description,
                ),
            )
        )
    return groups


async def mark_sent(
    notification_ids: list[uuid.UUID], now: datetime, session: AsyncSession
) -> int:
    """Flip unsent rows to sent. Rows another run already claimed are skipped."""
    result = await session.execute(
        update(TodoNotification)
        .where(
            TodoNotification.id.in_(notification_ids),
            TodoNotification.sent.is_(False),
        )
        .values(sent=True, sent_at=now)
    )
    await session.commit()
    return result.rowcount or 0


async def send_batch(
    session: AsyncSession,
    sender: EmailSender,
    settings: Settings,
    *,
    now: Optional[datetime] = None,
) -> BatchResult:
    now = now or utcnow()
    cutoff = now - timedelta(hours=settings.notification_delay_hours)
    groups = await _pending_by_user(cutoff, session)
    if not groups:
        return BatchResult(message="No pending notifications")

    recipients_result = await session.execute(select(User).where(User.id.in_(list(groups))))
    recipients = {user.id: user for user in recipients_result.scalars().all()}

    app_url = settings.base_url.rstrip("/")
    results: list[GroupResult] = []
    for user_id, items in groups.items():
        notification_ids = [notification_id for notification_id, _ in items]
        recipient = recipients.get(user_id)
        if recipient is None:
            log.warning("notification_batch.recipient_missing", user_id=str(user_id))
            results.append(GroupResult(user_id=user_id, success=False, count=len(items), error="Recipient not found"))
            continue

        message = batched_todos_email(
            to=recipient.email,
            todos=[todo for _, todo in items],
            app_url=app_url,
        )
        try:
            await sender.send(message)
        except EmailDeliveryError as exc:
            log.error("notification_batch.group_failed", user_id=str(user_id), count=len(items), error=str(exc))
            results.append(GroupResult(user_id=user_id, success=False, count=len(items), error=str(exc)))
            continue

        try:
            await mark_sent(notification_ids, now, session)
        except SQLAlchemyError as exc:
            await session.rollback()
            log.error("notification_batch.mark_failed", user_id=str(user_id), error=str(exc))
            results.append(GroupResult(user_id=user_id, success=False, count=len(items), error="Failed to record delivery"))
            continue

        log.info("notification_batch.group_sent", user_id=str(user_id), count=len(items))
        results.append(GroupResult(user_id=user_id, success=True, count=len(items)))

    sent = sum(1 for r in results if r.success)
    failed = len(results) - sent
    log.info("notification_batch.completed", total=len(results), sent=sent, failed=failed)
    return BatchResult(
        message=f"Processed {len(results)} user group(s)",
        total=len(results),
        sent=sent,
        failed=failed,
        results=results,
    )
