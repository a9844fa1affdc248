"""
Organization-related Pydantic schemas shared between server and frontend.

Covers: slug rules, org read models, membership listings and the
invitation lifecycle.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

SLUG_PATTERN = re.compile(r"^[a-z0-9-]{3,30}$")
SLUG_RULES_MESSAGE = (
    "Slug must be 3-30 characters and contain only lowercase letters, "
    "numbers, and hyphens"
)

DEFAULT_ORG_SLUG = "default"
DEFAULT_ORG_NAME = "Default Organization"


def is_valid_slug(slug: str) -> bool:
    """True when the slug is 3-30 chars of lowercase letters, digits and hyphens."""
    return SLUG_PATTERN.fullmatch(slug) is not None


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class InvitationStatus(str, Enum):
    CREATED = "created"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class AcceptStatus(str, Enum):
    ACCEPTED = "accepted"
    SIGN_IN_REQUIRED = "sign_in_required"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    slug: Optional[str] = Field(None, description="Optional URL slug; generated when omitted")


class SlugUpdateRequest(BaseModel):
    slug: str = Field(..., min_length=1)


class InviteRequest(BaseModel):
    email: EmailStr


class AcceptInvitationRequest(BaseModel):
    token: str = Field(..., min_length=1)


class MoveUserRequest(BaseModel):
    org_id: uuid.UUID


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrgResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class OrgEnvelope(BaseModel):
    org: OrgResponse


class OrgResolveResponse(BaseModel):
    id: uuid.UUID
    name: str
    slug: str


class SlugCheckResponse(BaseModel):
    available: bool
    slug: Optional[str] = None
    error: Optional[str] = None


class MemberResponse(BaseModel):
    id: uuid.UUID
    email: str
    name: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MemberListResponse(BaseModel):
    members: list[MemberResponse]


class InvitationResponse(BaseModel):
    id: uuid.UUID
    email: str
    org_id: uuid.UUID
    invited_by: uuid.UUID
    expires: datetime
    accepted: bool
    status: InvitationStatus
    created_at: datetime


class InvitationListResponse(BaseModel):
    invitations: list[InvitationResponse]


class InviteResponse(BaseModel):
    success: bool = True
    invitation: InvitationResponse


class AcceptInvitationResponse(BaseModel):
    success: bool = True
    status: AcceptStatus
    message: Optional[str] = None
    email: Optional[str] = None
    org_id: Optional[uuid.UUID] = None
