"""Queued share notification (consumed by the batch job)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import utcnow


class TodoNotification(SQLModel, table=True):
    __tablename__ = "todo_notifications"
    __table_args__ = (
        UniqueConstraint("todo_id", "user_id", name="uq_todo_notification_todo_user"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    todo_id: uuid.UUID = Field(foreign_key="todos.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    sent: bool = Field(default=False, nullable=False, index=True)
    sent_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime())
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(),
    )
