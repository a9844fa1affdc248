"""Message endpoints: append a comment to a readable todo."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.config import Settings, get_app_settings
from app.core.database import get_session
from app.core.email import EmailSender, get_email_sender
from app.models.user import User
from app.services import todos as todo_service
from nuclio_shared.schemas.todos import MessageCreate, MessageResponse

router = APIRouter()


@router.post("", response_model=MessageResponse, status_code=201)
async def post_message_endpoint(
    body: MessageCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    """Post a message; the other parties are emailed best-effort."""
    message = await todo_service.post_message(
        session, user, body.todo_id, body.content, sender, settings
    )
    return MessageResponse(message=message)
