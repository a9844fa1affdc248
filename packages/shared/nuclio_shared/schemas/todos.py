"""Todo-related Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer
from pydantic import UUID4

from .common import Priority, TodoStatus, UserSummary, Visibility


class TodoFilter(str, Enum):
    MY = "my"
    SHARED = "shared"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class MessageCreate(BaseModel):
    """Request body for POST /api/messages."""
    todo_id: UUID4
    content: str = Field(min_length=1, max_length=10000)


class MessageRead(BaseModel):
    id: UUID4
    todo_id: UUID4
    content: str
    author: UserSummary
    created_at: datetime


# ---------------------------------------------------------------------------
# Todo CRUD
# ---------------------------------------------------------------------------

class TodoCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    due_date: Optional[str] = None  # YYYY-MM-DD, read as local midnight
    visibility: Visibility = Visibility.PRIVATE
    shared_with_user_ids: List[UUID4] = Field(default_factory=list)
    ai_generated: bool = False


class TodoUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TodoStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[str] = None
    visibility: Optional[Visibility] = None
    shared_with_user_ids: Optional[List[UUID4]] = None


class TodoRead(BaseModel):
    id: UUID4
    title: str
    description: Optional[str] = None
    status: TodoStatus
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    visibility: Visibility
    ai_generated: bool = False
    owner: UserSummary
    shared_with: List[UserSummary] = Field(default_factory=list)
    message_count: int = 0
    created_at: datetime
    updated_at: datetime

    @field_serializer("due_date")
    def serialize_due_date(self, value: Optional[datetime]) -> Optional[str]:
        """Due dates are stored as naive UTC instants; emit them with the offset."""
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class TodoDetail(TodoRead):
    messages: List[MessageRead] = Field(default_factory=list)


class TodoListResponse(BaseModel):
    todos: List[TodoRead]


class TodoResponse(BaseModel):
    todo: TodoRead


class TodoDetailResponse(BaseModel):
    todo: TodoDetail


class MessageResponse(BaseModel):
    message: MessageRead
