"""
Passwordless sign-in: one-time codes and magic links.

Each request issues a fresh verification token. The six-character code
shown in the email is the token's prefix, upper-cased, and is accepted for
``code_ttl_minutes`` after issue; the token itself (the magic link) stays
valid for ``token_ttl_hours``. Older tokens are never revoked by a new
request, they simply age out.
"""

from __future__ import annotations

import re
import secrets
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import create_jwt
from app.core.config import Settings
from app.core.email import EmailDeliveryError, EmailSender
from app.core.errors import InvalidCode, Unauthorized, UpstreamFailure
from app.models.base import utcnow
from app.models.user import User
from app.models.verification_token import VerificationToken
from app.services.email_templates import sign_in_email
from app.services.users import get_or_create_user, normalize_email

log = structlog.get_logger()

CODE_LENGTH = 6
_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def code_for(token: str) -> str:
    return token[:CODE_LENGTH].upper()


def normalize_code(code: str) -> str:
    return _NON_ALNUM.sub("", code.strip().upper())


def magic_link(settings: Settings, token: str, email: str) -> str:
    query = urlencode({"token": token, "email": email})
    return f"{settings.base_url.rstrip('/')}/api/auth/callback/email?{query}"


async def request_code(
    email: str,
    session: AsyncSession,
    sender: EmailSender,
    settings: Settings,
) -> VerificationToken:
    """Issue a new token and email its code and magic link."""
    identifier = normalize_email(email)
    now = utcnow()
    token = secrets.token_hex(32)
    record = VerificationToken(
        token=token,
        identifier=identifier,
        code=code_for(token),
        expires=now + timedelta(hours=settings.token_ttl_hours),
        created_at=now,
    )
    session.add(record)
    # The code must be verifiable by the time the email arrives
    await session.commit()

    message = sign_in_email(
        to=identifier,
        code=record.code,
        link=magic_link(settings, token, identifier),
        code_ttl_minutes=settings.code_ttl_minutes,
    )
    try:
        await sender.send(message)
    except EmailDeliveryError as exc:
        log.error("sign_in.email_failed", email=identifier, error=str(exc))
        raise UpstreamFailure("Failed to send sign-in email. Please try again.")

    log.info("sign_in.code_requested", email=identifier)
    return record


async def verify_code(
    email: str,
    code: str,
    session: AsyncSession,
    settings: Settings,
    *,
    now: Optional[datetime] = None,
) -> tuple[str, str]:
    """Check a code against the most recent live token for ``email``.

    Returns the ``(token, identifier)`` of that same token so the caller can
    finish with the link flow. Raises ``InvalidCode`` otherwise.
    """
    now = now or utcnow()
    identifier = normalize_email(email)

    result = await session.execute(
        select(VerificationToken)
        .where(
            VerificationToken.identifier == identifier,
            VerificationToken.expires > now,
        )
        .order_by(
            VerificationToken.expires.desc(),
            VerificationToken.created_at.desc(),
            VerificationToken.token.desc(),
        )
        .limit(1)
    )
    record = result.scalar_one_or_none()
    if record is None:
        log.info("sign_in.code_not_found", email=identifier)
        raise InvalidCode("Code not found or expired. Please request a new code.")

    if now > record.created_at + timedelta(minutes=settings.code_ttl_minutes):
        log.info("sign_in.code_expired", email=identifier)
        raise InvalidCode("Code not found or expired. Please request a new code.")

    provided = normalize_code(code)
    candidates = {code_for(record.token)}
    if record.code:
        candidates.add(record.code.upper())
    if not provided or provided not in candidates:
        log.info("sign_in.code_mismatch", email=identifier)
        raise InvalidCode()

    return record.token, record.identifier


async def complete_sign_in(
    token: str,
    session: AsyncSession,
    settings: Settings,
    *,
    email: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[User, str]:
    """Consume a verification token and open a session. Returns (user, session_jwt)."""
    now = now or utcnow()
    record = await session.get(VerificationToken, token)
    if record is None or record.expires <= now:
        raise Unauthorized("Sign-in link is invalid or has expired")
    if email is not None and normalize_email(email) != record.identifier:
        raise Unauthorized("Sign-in link is invalid or has expired")

    identifier = record.identifier
    await session.delete(record)
    user = await get_or_create_user(identifier, session)
    await session.flush()

    session_token, _ = create_jwt(user, settings)
    log.info("sign_in.completed", user_id=str(user.id), org_id=str(user.org_id))
    return user, session_token
