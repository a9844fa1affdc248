"""
Organization service: default org bootstrap, membership and admin moves.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Forbidden, InvalidInput, NotFound
from app.models.organization import Organization
from app.models.user import User
from app.services import slugs
from nuclio_shared.schemas.organizations import (
    DEFAULT_ORG_NAME,
    DEFAULT_ORG_SLUG,
    OrgCreateRequest,
)

log = structlog.get_logger()


async def ensure_default_org(session: AsyncSession) -> Organization:
    """Get or create the org every new user lands in."""
    result = await session.execute(
        select(Organization).where(Organization.slug == DEFAULT_ORG_SLUG)
    )
    org = result.scalar_one_or_none()
    if org:
        return org

    org = Organization(name=DEFAULT_ORG_NAME, slug=DEFAULT_ORG_SLUG)
    session.add(org)
    await session.flush()
    log.info("org.default_created", org_id=str(org.id))
    return org


async def get_org(org_id: uuid.UUID, session: AsyncSession) -> Organization:
    org = await session.get(Organization, org_id)
    if not org:
        raise NotFound("Organization not found")
    return org


async def get_user_org(user: User, session: AsyncSession) -> Organization:
    """The principal's org, with its slug assigned if it never had one."""
    if user.org_id is None:
        raise NotFound("Organization not found")
    org = await get_org(user.org_id, session)
    await slugs.ensure_slug(org, session)
    return org


async def create_org(req: OrgCreateRequest, session: AsyncSession) -> Organization:
    """Create an org; the slug is validated when given, generated otherwise."""
    org = Organization(name=req.name.strip())
    session.add(org)
    await session.flush()

    if req.slug:
        await slugs.set_slug(org, req.slug, session)
    else:
        await slugs.ensure_slug(org, session)

    log.info("org.created", org_id=str(org.id), slug=org.slug)
    return org


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------

async def list_members(org_id: uuid.UUID, session: AsyncSession) -> list[User]:
    result = await session.execute(
        select(User).where(User.org_id == org_id).order_by(User.created_at, User.id)
    )
    return list(result.scalars().all())


async def count_members(org_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count()).select_from(User).where(User.org_id == org_id)
    )
    return result.scalar_one()


async def remove_member(
    requester: User, member_id: uuid.UUID, session: AsyncSession
) -> User:
    """Move a member out of the requester's org and into the default org."""
    member = await session.get(User, member_id)
    if not member:
        raise NotFound("Member not found")

    if requester.org_id is None or member.org_id != requester.org_id:
        raise Forbidden()

    if member.id == requester.id:
        raise InvalidInput("You cannot remove yourself from the organization")

    if await count_members(requester.org_id, session) <= 1:
        raise InvalidInput("Cannot remove the last member of the organization")

    default_org = await ensure_default_org(session)
    member.org_id = default_org.id
    session.add(member)
    await session.flush()

    log.info(
        "org.member_removed",
        org_id=str(requester.org_id),
        member_id=str(member.id),
        removed_by=str(requester.id),
    )
    return member


async def move_user(
    user_id: uuid.UUID, org_id: uuid.UUID, session: AsyncSession
) -> User:
    """Administrative org move."""
    org = await get_org(org_id, session)
    user = await session.get(User, user_id)
    if not user:
        raise NotFound("User not found")

    previous = user.org_id
    user.org_id = org.id
    session.add(user)
    await session.flush()

    log.info("user.org_moved", user_id=str(user.id), from_org=str(previous), to_org=str(org.id))
    return user
