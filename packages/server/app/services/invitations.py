"""
Organization invitations.

Lifecycle: created -> accepted (terminal), created -> expired (terminal, the
row stays until deleted), or created -> removed.

``invite`` is a two-step commit across the database and the email provider:
the row is committed first, then the email is sent, and a failed send deletes
the row again so no undeliverable invitation is left behind. ``reinvite``
rotates the token of an existing invitation and deliberately does not delete
anything when the resend fails; the previous invitation stays valid.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import Settings
from app.core.email import EmailDeliveryError, EmailSender
from app.core.errors import Conflict, Forbidden, InvalidInput, NotFound, UpstreamFailure
from app.models.base import utcnow
from app.models.invitation import OrgInvitation
from app.models.organization import Organization
from app.models.user import User
from app.services.email_templates import invitation_email
from app.services.users import normalize_email
from nuclio_shared.schemas.organizations import (
    AcceptInvitationResponse,
    AcceptStatus,
    InvitationResponse,
    InvitationStatus,
)

log = structlog.get_logger()


def invitation_status(invitation: OrgInvitation, now: Optional[datetime] = None) -> InvitationStatus:
    if invitation.accepted:
        return InvitationStatus.ACCEPTED
    if invitation.is_expired(now or utcnow()):
        return InvitationStatus.EXPIRED
    return InvitationStatus.CREATED


def invitation_to_response(invitation: OrgInvitation) -> InvitationResponse:
    return InvitationResponse(
        id=invitation.id,
        email=invitation.email,
        org_id=invitation.org_id,
        invited_by=invitation.invited_by,
        expires=invitation.expires,
        accepted=invitation.accepted,
        status=invitation_status(invitation),
        created_at=invitation.created_at,
    )


def invite_url(settings: Settings, token: str) -> str:
    return f"{settings.base_url.rstrip('/')}/invite/{token}"


async def _send_invitation(
    invitation: OrgInvitation,
    inviter: User,
    session: AsyncSession,
    sender: EmailSender,
    settings: Settings,
) -> None:
    org = await session.get(Organization, invitation.org_id)
    message = invitation_email(
        to=invitation.email,
        inviter_name=inviter.display_name,
        org_name=org.name if org else "",
        invite_url=invite_url(settings, invitation.token),
        ttl_days=settings.invitation_ttl_days,
    )
    await sender.send(message)


async def _get_invitation(invitation_id: uuid.UUID, session: AsyncSession) -> OrgInvitation:
    invitation = await session.get(OrgInvitation, invitation_id)
    if not invitation:
        raise NotFound("Invitation not found")
    return invitation


def _require_same_org(requester: User, invitation: OrgInvitation) -> None:
    if requester.org_id is None or requester.org_id != invitation.org_id:
        raise Forbidden()


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

async def invite(
    inviter: User,
    email: str,
    session: AsyncSession,
    sender: EmailSender,
    settings: Settings,
) -> OrgInvitation:
    if inviter.org_id is None:
        raise NotFound("Organization not found")

    email = normalize_email(email)
    if not email:
        raise InvalidInput("Email is required")
    now = utcnow()

    result = await session.execute(
        select(User.id).where(User.email == email, User.org_id == inviter.org_id)
    )
    if result.scalar_one_or_none() is not None:
        raise Conflict("User is already a member of this organization")

    result = await session.execute(
        select(OrgInvitation.id).where(
            OrgInvitation.email == email,
            OrgInvitation.org_id == inviter.org_id,
            OrgInvitation.accepted.is_(False),
            OrgInvitation.expires > now,
        )
    )
    if result.first() is not None:
        raise Conflict("An invitation has already been sent to this email")

    invitation = OrgInvitation(
        email=email,
        org_id=inviter.org_id,
        invited_by=inviter.id,
        token=secrets.token_hex(32),
        expires=now + timedelta(days=settings.invitation_ttl_days),
        created_at=now,
    )
    session.add(invitation)
    await session.commit()

    try:
        await _send_invitation(invitation, inviter, session, sender, settings)
    except EmailDeliveryError as exc:
        log.error(
            "invitation.email_failed",
            invitation_id=str(invitation.id),
            org_id=str(invitation.org_id),
            error=str(exc),
        )
        await session.delete(invitation)
        await session.commit()
        log.info("invitation.rolled_back", invitation_id=str(invitation.id))
        raise UpstreamFailure("Failed to send invitation email")

    log.info(
        "invitation.created",
        invitation_id=str(invitation.id),
        org_id=str(invitation.org_id),
        invited_by=str(inviter.id),
    )
    return invitation


async def reinvite(
    requester: User,
    invitation_id: uuid.UUID,
    session: AsyncSession,
    sender: EmailSender,
    settings: Settings,
) -> OrgInvitation:
    invitation = await _get_invitation(invitation_id, session)
    _require_same_org(requester, invitation)
    if invitation.accepted:
        raise InvalidInput("Invitation already accepted")

    invitation.token = secrets.token_hex(32)
    invitation.expires = utcnow() + timedelta(days=settings.invitation_ttl_days)
    session.add(invitation)
    await session.commit()

    try:
        await _send_invitation(invitation, requester, session, sender, settings)
    except EmailDeliveryError as exc:
        log.error("invitation.resend_failed", invitation_id=str(invitation.id), error=str(exc))
        raise UpstreamFailure("Failed to send invitation email")

    log.info("invitation.resent", invitation_id=str(invitation.id), org_id=str(invitation.org_id))
    return invitation


async def accept(
    token: str,
    principal: Optional[User],
    session: AsyncSession,
) -> AcceptInvitationResponse:
    """Accept an invitation, or ask the caller to sign in first without mutating anything."""
    result = await session.execute(select(OrgInvitation).where(OrgInvitation.token == token))
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise NotFound("Invalid invitation token")
    if invitation.accepted:
        raise InvalidInput("Invitation already accepted")
    if invitation.is_expired(utcnow()):
        raise InvalidInput("Invitation has expired")

    if principal is None:
        return AcceptInvitationResponse(
            status=AcceptStatus.SIGN_IN_REQUIRED,
            message="Please sign in first",
            email=invitation.email,
        )

    if principal.email.lower() != invitation.email.lower():
        raise Forbidden("Email does not match invitation")

    # Both writes land in one commit
    invitation.accepted = True
    principal.org_id = invitation.org_id
    session.add(invitation)
    session.add(principal)
    await session.commit()

    log.info(
        "invitation.accepted",
        invitation_id=str(invitation.id),
        user_id=str(principal.id),
        org_id=str(invitation.org_id),
    )
    return AcceptInvitationResponse(
        status=AcceptStatus.ACCEPTED,
        org_id=invitation.org_id,
        email=invitation.email,
    )


async def delete(
    requester: User, invitation_id: uuid.UUID, session: AsyncSession
) -> None:
    invitation = await _get_invitation(invitation_id, session)
    _require_same_org(requester, invitation)
    await session.delete(invitation)
    await session.flush()
    log.info("invitation.deleted", invitation_id=str(invitation_id), deleted_by=str(requester.id))


async def list_pending(org_id: uuid.UUID, session: AsyncSession) -> list[OrgInvitation]:
    """Unaccepted invitations for the org, newest first (expired ones included)."""
    result = await session.execute(
        select(OrgInvitation)
        .where(OrgInvitation.org_id == org_id, OrgInvitation.accepted.is_(False))
        .order_by(OrgInvitation.created_at.desc())
    )
    return list(result.scalars().all())
