"""
Authentication and Authorization for Nuclio.

Supports:
- Passwordless email sign-in (codes and magic links) issuing JWT sessions
- Email/Password fallback
- JWT session management with Redis revocation list
- A fixed development principal, selected once at startup
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import Settings, get_app_settings
from app.core.database import get_session
from app.core.errors import Forbidden, Unauthorized
from app.core.redis import RevocationList
from app.models.user import User

log = structlog.get_logger()

SESSION_COOKIE = "nuclio_session"
CSRF_COOKIE = "nuclio_csrf"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # Malformed stored hash
        return False


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def create_jwt(
    user: User,
    settings: Settings,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed session JWT. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "org_id": str(user.org_id) if user.org_id else None,
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_jwt(token: str, settings: Settings) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# CSRF Token
# ---------------------------------------------------------------------------

def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


def extract_session_token(request: Request) -> Optional[str]:
    """Bearer header wins over the session cookie."""
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


# ---------------------------------------------------------------------------
# Authenticators
# ---------------------------------------------------------------------------

class Authenticator:
    """Resolves the principal for a request. One instance lives on ``app.state``."""

    async def authenticate(self, request: Request, session: AsyncSession) -> Optional[User]:
        raise NotImplementedError


class SessionAuthenticator(Authenticator):
    """Principal from a signed session JWT (cookie or bearer)."""

    def __init__(self, settings: Settings, revocations: RevocationList):
        self.settings = settings
        self.revocations = revocations

    async def authenticate(self, request: Request, session: AsyncSession) -> Optional[User]:
        token = extract_session_token(request)
        if not token:
            return None
        try:
            payload = decode_jwt(token, self.settings)
        except jwt.PyJWTError:
            log.info("auth.invalid_session")
            return None

        jti = payload.get("jti")
        if jti and await self.revocations.is_revoked(jti):
            log.info("auth.revoked_session", jti=jti)
            return None

        try:
            user_id = uuid.UUID(payload["sub"])
        except (KeyError, ValueError):
            return None

        user = await session.get(User, user_id)
        if user is None:
            return None
        request.state.session_claims = payload
        return user


class DevAuthenticator(Authenticator):
    """Fixed local-development principal. Never enable outside development."""

    def __init__(self, email: str):
        self.email = email.lower()

    async def authenticate(self, request: Request, session: AsyncSession) -> Optional[User]:
        from app.services.organizations import ensure_default_org

        result = await session.execute(select(User).where(User.email == self.email))
        user = result.scalar_one_or_none()
        if user is None:
            org = await ensure_default_org(session)
            user = User(email=self.email, name="Dev User", org_id=org.id)
            session.add(user)
            await session.flush()
            log.info("auth.dev_user_created", user_id=str(user.id))
        return user


def build_authenticator(settings: Settings, revocations: RevocationList) -> Authenticator:
    if settings.auth_mode == "dev":
        if settings.environment == "production":
            raise RuntimeError("auth_mode=dev is not allowed in production")
        log.warning("auth.dev_mode_enabled", email=settings.dev_user_email)
        return DevAuthenticator(settings.dev_user_email)
    return SessionAuthenticator(settings, revocations)


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

async def get_optional_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    """The current principal, or None for anonymous requests."""
    authenticator: Authenticator = request.app.state.authenticator
    user = await authenticator.authenticate(request, session)
    request.state.user = user
    return user


async def get_current_user(
    user: Optional[User] = Depends(get_optional_user),
) -> User:
    if user is None:
        raise Unauthorized("Authentication required")
    return user


async def require_admin(
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
) -> User:
    """Requires the user's email to be listed in ``admin_emails``."""
    admins = {email.lower() for email in settings.admin_emails}
    if user.email.lower() not in admins:
        raise Forbidden("Administrator access required")
    return user
