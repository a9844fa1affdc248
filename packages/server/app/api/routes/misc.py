"""
Small endpoints that do not belong to a domain router.

GET  /api/motivational      — Today's motivational message
POST /api/feedback          — Email feedback to the team
POST /api/staging-access    — Unlock the staging gate
"""

from __future__ import annotations

import secrets

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.config import Settings, get_app_settings
from app.core.database import get_session
from app.core.email import EmailDeliveryError, EmailSender, get_email_sender
from app.core.errors import InvalidInput, Unauthorized, UpstreamFailure
from app.core.middleware import STAGING_COOKIE, STAGING_COOKIE_MAX_AGE
from app.models.user import User
from app.services.email_templates import feedback_email
from app.services.motivational import todays_message
from nuclio_shared.schemas.common import SuccessResponse
from nuclio_shared.schemas.users import (
    FeedbackRequest,
    MotivationalMessageRead,
    MotivationalResponse,
    StagingAccessRequest,
)

log = structlog.get_logger()
router = APIRouter()


@router.get("/motivational", response_model=MotivationalResponse)
async def motivational(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    message = await todays_message(session)
    if message is None:
        return MotivationalResponse(message=None)
    return MotivationalResponse(
        message=MotivationalMessageRead(
            message=message.message, author=message.author, category=message.category
        )
    )


@router.post("/feedback", response_model=SuccessResponse)
async def feedback(
    body: FeedbackRequest,
    user: User = Depends(get_current_user),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    text = body.feedback.strip()
    if not text:
        raise InvalidInput("Feedback is required")
    if not settings.feedback_recipient:
        raise UpstreamFailure("Feedback is not configured")
    try:
        await sender.send(feedback_email(settings.feedback_recipient, user.email, text))
    except EmailDeliveryError as exc:
        log.error("feedback.email_failed", user_id=str(user.id), error=str(exc))
        raise UpstreamFailure("Failed to send feedback")
    log.info("feedback.sent", user_id=str(user.id))
    return SuccessResponse()


@router.post("/staging-access")
async def staging_access(
    body: StagingAccessRequest,
    settings: Settings = Depends(get_app_settings),
):
    if not settings.staging_access_password:
        raise UpstreamFailure("Staging access is not configured")
    if not secrets.compare_digest(body.password, settings.staging_access_password):
        raise Unauthorized("Invalid password")

    response = JSONResponse({"success": True})
    response.set_cookie(
        key=STAGING_COOKIE,
        value="granted",
        httponly=True,
        secure=settings.environment == "production",
        samesite="lax",
        max_age=STAGING_COOKIE_MAX_AGE,
        path="/",
    )
    return response
