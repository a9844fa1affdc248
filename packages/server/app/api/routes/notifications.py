"""Trigger for the batched share-notification job."""

from __future__ import annotations

import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_app_settings
from app.core.database import get_session
from app.core.email import EmailSender, get_email_sender
from app.core.errors import Unauthorized
from app.services import notifications as notification_service
from nuclio_shared.schemas.notifications import BatchResult

log = structlog.get_logger()
router = APIRouter()


def _check_cron_secret(authorization: Optional[str], settings: Settings) -> None:
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        log.warning("notification_batch.unauthorized")
        raise Unauthorized()


@router.post("/send-batch", response_model=BatchResult)
async def send_batch(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    """Send pending notifications. Guarded by ``Bearer <cron_secret>`` when configured."""
    _check_cron_secret(authorization, settings)
    return await notification_service.send_batch(session, sender, settings)
