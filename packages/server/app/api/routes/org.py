"""
Organization API endpoints (scoped to the caller's own org).

GET    /api/org                               — The caller's org
GET    /api/org/slug?slug=                    — Slug availability check
PATCH  /api/org/slug                          — Set the org slug
GET    /api/org/members                       — List members
DELETE /api/org/members/{id}                  — Remove a member (moves them to the default org)
POST   /api/org/invite                        — Invite an email address
POST   /api/org/invite/accept                 — Accept an invitation (anonymous callers are asked to sign in)
GET    /api/org/invitations                   — Pending invitations
DELETE /api/org/invitations/{id}              — Delete an invitation
POST   /api/org/invitations/{id}/reinvite     — Rotate the token and resend
GET    /api/orgs/{slug}                       — Resolve a slug to an org
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user, get_optional_user
from app.core.config import Settings, get_app_settings
from app.core.database import get_session
from app.core.email import EmailSender, get_email_sender
from app.models.user import User
from app.services import invitations as invitation_service
from app.services import organizations as org_service
from app.services import slugs as slug_service
from nuclio_shared.schemas.common import SuccessResponse
from nuclio_shared.schemas.organizations import (
    AcceptInvitationRequest,
    AcceptInvitationResponse,
    InvitationListResponse,
    InviteRequest,
    InviteResponse,
    MemberListResponse,
    MemberResponse,
    OrgEnvelope,
    OrgResolveResponse,
    OrgResponse,
    SlugCheckResponse,
    SlugUpdateRequest,
)

router = APIRouter()
resolve_router = APIRouter()


# ---------------------------------------------------------------------------
# Org and slug
# ---------------------------------------------------------------------------

@router.get("", response_model=OrgResponse)
async def get_own_org(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_user_org(user, session)
    return OrgResponse.model_validate(org)


@router.get("/slug", response_model=SlugCheckResponse)
async def check_slug(
    slug: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
):
    """Slug availability; malformed slugs come back as unavailable with the rule."""
    return await slug_service.check_slug(slug, session)


@router.patch("/slug", response_model=OrgEnvelope)
async def update_slug(
    body: SlugUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.get_user_org(user, session)
    org = await slug_service.set_slug(org, body.slug, session)
    return OrgEnvelope(org=OrgResponse.model_validate(org))


@resolve_router.get("/{slug}", response_model=OrgResolveResponse)
async def resolve_slug(
    slug: str,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Resolve a slug; unknown slugs send the caller back to ``/``."""
    org_id = await slug_service.resolve(slug, session)
    if org_id is None:
        return JSONResponse(
            status_code=404,
            content={"error": "Organization not found", "redirect_to": "/"},
        )
    org = await org_service.get_org(org_id, session)
    return OrgResolveResponse(id=org.id, name=org.name, slug=org.slug)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get("/members", response_model=MemberListResponse)
async def list_members(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    if user.org_id is None:
        return MemberListResponse(members=[])
    members = await org_service.list_members(user.org_id, session)
    return MemberListResponse(members=[MemberResponse.model_validate(m) for m in members])


@router.delete("/members/{member_id}", response_model=SuccessResponse)
async def remove_member(
    member_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await org_service.remove_member(user, member_id, session)
    return SuccessResponse()


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------

@router.post("/invite", response_model=InviteResponse)
async def invite(
    body: InviteRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    invitation = await invitation_service.invite(user, body.email, session, sender, settings)
    return InviteResponse(invitation=invitation_service.invitation_to_response(invitation))


@router.post("/invite/accept", response_model=AcceptInvitationResponse)
async def accept_invitation(
    body: AcceptInvitationRequest,
    user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
):
    """Works anonymously: without a session the caller is told to sign in first."""
    return await invitation_service.accept(body.token, user, session)


@router.get("/invitations", response_model=InvitationListResponse)
async def list_invitations(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    if user.org_id is None:
        return InvitationListResponse(invitations=[])
    invitations = await invitation_service.list_pending(user.org_id, session)
    return InvitationListResponse(
        invitations=[invitation_service.invitation_to_response(i) for i in invitations]
    )


@router.delete("/invitations/{invitation_id}", response_model=SuccessResponse)
async def delete_invitation(
    invitation_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await invitation_service.delete(user, invitation_id, session)
    return SuccessResponse()


@router.post("/invitations/{invitation_id}/reinvite", response_model=SuccessResponse)
async def reinvite(
    invitation_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
    settings: Settings = Depends(get_app_settings),
):
    await invitation_service.reinvite(user, invitation_id, session, sender, settings)
    return SuccessResponse()
