"""Verification token model (passwordless sign-in)."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utcnow


class VerificationToken(SQLModel, table=True):
    __tablename__ = "verification_tokens"

    token: str = Field(primary_key=True)
    identifier: str = Field(nullable=False, index=True)  # email
    code: Optional[str] = None  # six characters sent by email
    expires: datetime = Field(nullable=False, sa_type=sa.DateTime())
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(),
    )
