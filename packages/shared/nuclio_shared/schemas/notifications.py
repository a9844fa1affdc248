"""Notification batch schemas."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, Field


class GroupResult(BaseModel):
    """Outcome of one per-user batched email."""
    user_id: uuid.UUID
    success: bool
    count: int
    error: Optional[str] = None


class BatchResult(BaseModel):
    message: str
    total: int = 0
    sent: int = 0
    failed: int = 0
    results: list[GroupResult] = Field(default_factory=list)
