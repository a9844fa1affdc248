"""
Todo endpoints: create, list, fetch, partial update.

Every handler goes through the todo service, which applies the access gate;
list queries apply the same rule as a SQL filter.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.config import Settings, get_app_settings
from app.core.database import get_session
from app.models.user import User
from app.services import todos as todo_service
from nuclio_shared.schemas.todos import (
    TodoCreate,
    TodoDetailResponse,
    TodoFilter,
    TodoListResponse,
    TodoResponse,
    TodoUpdate,
)

router = APIRouter()


@router.post("", response_model=TodoResponse, status_code=201)
async def create_todo_endpoint(
    body: TodoCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Create a todo. Visibility defaults to PRIVATE."""
    todo = await todo_service.create_todo(
        session, user, body, todo_service.local_zone(settings)
    )
    return TodoResponse(todo=await todo_service.enrich_todo(session, todo))


@router.get("", response_model=TodoListResponse)
async def list_todos_endpoint(
    todo_filter: TodoFilter = Query(TodoFilter.MY, alias="filter"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """``filter=my`` (own and org-wide) or ``filter=shared`` (owned by others)."""
    todos = await todo_service.list_todos(session, user, todo_filter)
    return TodoListResponse(todos=await todo_service.enrich_todos(session, todos))


@router.get("/{todo_id}", response_model=TodoDetailResponse)
async def get_todo_endpoint(
    todo_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return TodoDetailResponse(todo=await todo_service.get_todo(session, user, todo_id))


@router.patch("/{todo_id}", response_model=TodoResponse)
async def update_todo_endpoint(
    todo_id: uuid.UUID,
    body: TodoUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Owner-only partial update."""
    todo = await todo_service.update_todo(
        session, user, todo_id, body, todo_service.local_zone(settings)
    )
    return TodoResponse(todo=await todo_service.enrich_todo(session, todo))
