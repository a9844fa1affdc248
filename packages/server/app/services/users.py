"""
User service: profile, password and account lookup.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import hash_password, verify_password
from app.core.errors import InvalidInput, Unauthorized
from app.models.user import User
from app.services.organizations import ensure_default_org
from nuclio_shared.schemas.users import (
    MIN_PASSWORD_LENGTH,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    UserResponse,
)

log = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        org_id=user.org_id,
        zip_code=user.zip_code,
        image=user.image,
        has_password=user.password_hash is not None,
        created_at=user.created_at,
    )


async def find_user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_or_create_user(email: str, session: AsyncSession) -> User:
    """Resolve a user by email, creating one in the default org on first sign-in."""
    user = await find_user_by_email(email, session)
    if user is None:
        org = await ensure_default_org(session)
        user = User(email=normalize_email(email), org_id=org.id)
        session.add(user)
        await session.flush()
        log.info("user.created", user_id=str(user.id), org_id=str(org.id))
    elif user.org_id is None:
        org = await ensure_default_org(session)
        user.org_id = org.id
        session.add(user)
        await session.flush()
        log.info("user.default_org_assigned", user_id=str(user.id), org_id=str(org.id))
    return user


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


async def update_profile(
    user: User, req: ProfileUpdateRequest, session: AsyncSession
) -> User:
    """Apply only the fields present in the request; blanks clear the field."""
    changes = req.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(user, field, _blank_to_none(value))
    session.add(user)
    await session.flush()
    log.info("user.profile_updated", user_id=str(user.id), fields=sorted(changes))
    return user


async def change_password(
    user: User, req: PasswordChangeRequest, session: AsyncSession
) -> None:
    if len(req.new_password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    if user.password_hash:
        if not req.current_password:
            raise InvalidInput("Current password is required")
        if not verify_password(req.current_password, user.password_hash):
            raise Unauthorized("Current password is incorrect")

    user.password_hash = hash_password(req.new_password)
    session.add(user)
    await session.flush()
    log.info("user.password_changed", user_id=str(user.id))


async def authenticate_password(
    email: str, password: str, session: AsyncSession
) -> User:
    """Password fallback sign-in."""
    user = await find_user_by_email(email, session)
    if not user or not user.password_hash or not verify_password(password, user.password_hash):
        log.info("auth.password_rejected", email=normalize_email(email))
        raise Unauthorized("Invalid email or password")
    if user.org_id is None:
        org = await ensure_default_org(session)
        user.org_id = org.id
        session.add(user)
        await session.flush()
    return user
