"""
Admin endpoints (callers listed in ``admin_emails``).

POST  /api/admin/orgs               — Create an org
PATCH /api/admin/users/{id}/org     — Move a user to another org
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_admin
from app.core.database import get_session
from app.models.user import User
from app.services import organizations as org_service
from app.services import users as user_service
from nuclio_shared.schemas.organizations import MoveUserRequest, OrgCreateRequest, OrgResponse
from nuclio_shared.schemas.users import UserEnvelope

router = APIRouter()


@router.post("/orgs", response_model=OrgResponse, status_code=201)
async def create_org(
    body: OrgCreateRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    org = await org_service.create_org(body, session)
    return OrgResponse.model_validate(org)


@router.patch("/users/{user_id}/org", response_model=UserEnvelope)
async def move_user(
    user_id: uuid.UUID,
    body: MoveUserRequest,
    admin: User = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    user = await org_service.move_user(user_id, body.org_id, session)
    return UserEnvelope(user=user_service.user_to_response(user))
