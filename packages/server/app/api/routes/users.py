"""
User profile endpoints.

GET   /api/user           — The signed-in user
PATCH /api/user           — Update name / zip code (blank clears)
PATCH /api/user/password  — Set or change the password
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.models.user import User
from app.services import users as user_service
from nuclio_shared.schemas.common import SuccessResponse
from nuclio_shared.schemas.users import (
    PasswordChangeRequest,
    ProfileUpdateRequest,
    UserEnvelope,
)

router = APIRouter()


@router.get("", response_model=UserEnvelope)
async def get_me(user: User = Depends(get_current_user)):
    return UserEnvelope(user=user_service.user_to_response(user))


@router.patch("", response_model=UserEnvelope)
async def update_me(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.update_profile(user, body, session)
    return UserEnvelope(user=user_service.user_to_response(user))


@router.patch("/password", response_model=SuccessResponse)
async def change_password(
    body: PasswordChangeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await user_service.change_password(user, body, session)
    return SuccessResponse()
