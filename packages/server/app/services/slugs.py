"""
Organization slug resolution and assignment.

Slugs are unique case-insensitively. Writes enforce that; reads still fall
back to a case-insensitive match with a fixed tie-break so rows created before
the rule existed resolve the same way every time.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Conflict, InvalidInput
from app.models.organization import Organization
from nuclio_shared.schemas.organizations import (
    DEFAULT_ORG_SLUG,
    SLUG_RULES_MESSAGE,
    SlugCheckResponse,
    is_valid_slug,
)

log = structlog.get_logger()

RESERVED_SLUG_MESSAGE = "This slug is reserved"


def _is_reserved(slug: str, org: Optional[Organization] = None) -> bool:
    """The default org slug belongs to the default org alone."""
    if slug.lower() != DEFAULT_ORG_SLUG:
        return False
    return org is None or org.slug != DEFAULT_ORG_SLUG


async def resolve(slug: str, session: AsyncSession) -> Optional[uuid.UUID]:
    """Map a slug to an org id. Returns None when nothing matches; never raises."""
    if not slug:
        return None

    result = await session.execute(
        select(Organization.id).where(Organization.slug == slug)
    )
    org_id = result.scalar_one_or_none()
    if org_id is not None:
        return org_id

    result = await session.execute(
        select(Organization.id)
        .where(func.lower(Organization.slug) == slug.lower())
        .order_by(Organization.created_at, Organization.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _slug_owner(slug: str, session: AsyncSession) -> Optional[uuid.UUID]:
    result = await session.execute(
        select(Organization.id)
        .where(func.lower(Organization.slug) == slug.lower())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def check_slug(slug: str, session: AsyncSession) -> SlugCheckResponse:
    """Availability check; a malformed slug is reported, not raised."""
    if not is_valid_slug(slug):
        return SlugCheckResponse(available=False, error=SLUG_RULES_MESSAGE)
    if _is_reserved(slug):
        return SlugCheckResponse(available=False, slug=slug, error=RESERVED_SLUG_MESSAGE)
    return SlugCheckResponse(available=await _slug_owner(slug, session) is None, slug=slug)


async def set_slug(org: Organization, slug: str, session: AsyncSession) -> Organization:
    if not is_valid_slug(slug):
        raise InvalidInput(SLUG_RULES_MESSAGE)
    if _is_reserved(slug, org):
        raise Conflict(RESERVED_SLUG_MESSAGE)

    owner = await _slug_owner(slug, session)
    if owner is not None and owner != org.id:
        raise Conflict("This slug is already taken")

    org.slug = slug
    session.add(org)
    try:
        await session.flush()
    except IntegrityError:
        # Lost a race with a concurrent writer
        raise Conflict("This slug is already taken")

    log.info("org.slug_set", org_id=str(org.id), slug=slug)
    return org


def generate_slug(org: Organization, length: int = 12) -> str:
    """Automatic slug derived from the org id."""
    return f"org-{org.id.hex[:length]}"


async def ensure_slug(org: Organization, session: AsyncSession) -> str:
    """Assign the automatic slug the first time an org is addressed by slug."""
    if org.slug:
        return org.slug

    candidate = generate_slug(org)
    if await _slug_owner(candidate, session) is not None:
        candidate = generate_slug(org, length=26)
    org.slug = candidate
    session.add(org)
    await session.flush()
    log.info("org.slug_generated", org_id=str(org.id), slug=candidate)
    return candidate
