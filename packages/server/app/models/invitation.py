"""Organization invitation model."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, utcnow


class OrgInvitation(UUIDMixin, SQLModel, table=True):
    __tablename__ = "org_invitations"

    email: str = Field(nullable=False, index=True)  # stored lower-case
    org_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    invited_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    token: str = Field(unique=True, index=True, nullable=False)
    expires: datetime = Field(nullable=False, sa_type=sa.DateTime())
    accepted: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(),
    )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires
