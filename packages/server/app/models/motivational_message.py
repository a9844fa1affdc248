"""Motivational message model (read-only display content)."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utcnow


class MotivationalMessage(SQLModel, table=True):
    __tablename__ = "motivational_messages"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    message: str = Field(nullable=False)
    author: Optional[str] = None
    category: Optional[str] = None
    date: datetime = Field(nullable=False, index=True, sa_type=sa.DateTime())  # UTC midnight
    active: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(),
    )
