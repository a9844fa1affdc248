"""
Authentication endpoints.

- Passwordless sign-in: request a code, verify it, complete with the token
- Magic-link callback (GET) for the link in the sign-in email
- Email/Password login fallback
- JWT session management (session info, logout)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import jwt
import structlog
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import (
    CSRF_COOKIE,
    SESSION_COOKIE,
    create_jwt,
    decode_jwt,
    extract_session_token,
    generate_csrf_token,
    get_current_user,
)
from app.core.config import Settings, get_app_settings
from app.core.database import get_session
from app.core.email import EmailSender, get_email_sender
from app.core.redis import RevocationList, get_revocation_list
from app.models.user import User
from app.services import organizations as org_service
from app.services import sign_in as sign_in_service
from app.services import users as user_service
from nuclio_shared.schemas.common import SuccessResponse
from nuclio_shared.schemas.users import (
    CompleteSignInRequest,
    LoginRequest,
    RequestCodeRequest,
    RequestCodeResponse,
    SessionResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)

log = structlog.get_logger()
router = APIRouter()


def _set_session_cookies(response: Response, token: str, settings: Settings) -> None:
    """Set the session JWT and CSRF cookies on a response."""
    max_age = settings.jwt_expire_minutes * 60
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=max_age,
    )
    response.set_cookie(
        key=CSRF_COOKIE,
        value=generate_csrf_token(),
        httponly=False,  # JS must read this
        secure=not settings.debug,
        samesite="lax",
        path="/",
        max_age=max_age,
    )


async def _session_response(
    user: User, session: AsyncSession, message: str, token: Optional[str] = None
) -> SessionResponse:
    org_slug = None
    if user.org_id is not None:
        org = await org_service.get_user_org(user, session)
        org_slug = org.slug
    return SessionResponse(
        user_id=str(user.id),
        email=user.email,
        org_id=str(user.org_id) if user.org_id else None,
        org_slug=org_slug,
        session_token=token,
        message=message,
    )


# ---------------------------------------------------------------------------
# Passwordless sign-in
# ---------------------------------------------------------------------------

@router.post("/request-code", response_model=RequestCodeResponse)
async def request_code(
    body: RequestCodeRequest,
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    """Email a sign-in code and magic link."""
    await sign_in_service.request_code(body.email, session, sender, settings)
    return RequestCodeResponse(message="Check your email for a sign-in code")


@router.post("/verify-code", response_model=VerifyCodeResponse)
async def verify_code(
    body: VerifyCodeRequest,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Exchange a six-character code for the canonical sign-in token."""
    token, identifier = await sign_in_service.verify_code(body.email, body.code, session, settings)
    return VerifyCodeResponse(token=token, email=identifier)


@router.post("/callback", response_model=SessionResponse)
async def complete_sign_in(
    body: CompleteSignInRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Consume a sign-in token and open a session."""
    user, token = await sign_in_service.complete_sign_in(
        body.token, session, settings, email=body.email
    )
    _set_session_cookies(response, token, settings)
    return await _session_response(user, session, "Sign-in successful", token)


@router.get("/callback/email")
async def magic_link_callback(
    token: str = Query(..., min_length=1),
    email: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Target of the magic link: opens a session and redirects to the user's org."""
    user, session_token = await sign_in_service.complete_sign_in(
        token, session, settings, email=email
    )
    org = await org_service.get_user_org(user, session)
    redirect = RedirectResponse(url=f"/{org.slug}", status_code=303)
    _set_session_cookies(redirect, session_token, settings)
    return redirect


# ---------------------------------------------------------------------------
# Email/Password Login
# ---------------------------------------------------------------------------

@router.post("/login", response_model=SessionResponse)
async def login(
    body: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
):
    """Authenticate with email/password and receive a JWT session."""
    user = await user_service.authenticate_password(body.email, body.password, session)
    token, _jti = create_jwt(user, settings)
    _set_session_cookies(response, token, settings)
    log.info("auth.login_success", user_id=str(user.id))
    return await _session_response(user, session, "Login successful", token)


# ---------------------------------------------------------------------------
# Session Management
# ---------------------------------------------------------------------------

@router.get("/session", response_model=SessionResponse)
async def current_session(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await _session_response(user, session, "Authenticated")


@router.post("/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_app_settings),
    revocations: RevocationList = Depends(get_revocation_list),
):
    """Invalidate the current session."""
    token = extract_session_token(request)
    if token:
        try:
            payload = decode_jwt(token, settings)
        except jwt.PyJWTError:
            payload = {}  # Token already invalid, just clear cookies
        jti = payload.get("jti")
        if jti:
            remaining = int(payload.get("exp", 0) - datetime.now(timezone.utc).timestamp())
            await revocations.revoke(jti, ttl_seconds=max(remaining, 1))
            log.info("auth.logout", user_id=payload.get("sub"))

    response.delete_cookie(SESSION_COOKIE, path="/")
    response.delete_cookie(CSRF_COOKIE, path="/")
    return SuccessResponse()
