"""Todo model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Todo(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "todos"

    title: str = Field(nullable=False)
    description: Optional[str] = None
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    status: str = Field(nullable=False, default="OPEN")  # OPEN | COMPLETED
    priority: Optional[str] = None  # LOW | MEDIUM | HIGH
    due_date: Optional[datetime] = Field(default=None, sa_type=sa.DateTime())  # UTC instant of local midnight
    visibility: str = Field(nullable=False, default="PRIVATE", index=True)  # PRIVATE | ORG | SPECIFIC
    ai_generated: bool = Field(default=False, nullable=False)
