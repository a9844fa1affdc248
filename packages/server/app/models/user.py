"""User model."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class User(UUIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)  # stored lower-case
    name: Optional[str] = None
    org_id: Optional[uuid.UUID] = Field(default=None, foreign_key="organizations.id", index=True)
    zip_code: Optional[str] = None
    image: Optional[str] = None
    password_hash: Optional[str] = Field(default=None)  # bcrypt hash for password fallback
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email
