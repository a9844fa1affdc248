"""User profile and authentication schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, UUID4

MIN_PASSWORD_LENGTH = 8


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ProfileUpdateRequest(BaseModel):
    """Update profile fields. Blank strings clear the field."""
    name: Optional[str] = Field(default=None, max_length=200)
    zip_code: Optional[str] = Field(default=None, max_length=20)


class PasswordChangeRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: str = ""


class RequestCodeRequest(BaseModel):
    email: EmailStr


class VerifyCodeRequest(BaseModel):
    email: EmailStr
    code: str = Field(..., min_length=1)


class CompleteSignInRequest(BaseModel):
    token: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class FeedbackRequest(BaseModel):
    feedback: str = Field(..., min_length=1, max_length=10000)


class StagingAccessRequest(BaseModel):
    password: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserResponse(BaseModel):
    id: UUID4
    email: str
    name: Optional[str] = None
    org_id: Optional[UUID4] = None
    zip_code: Optional[str] = None
    image: Optional[str] = None
    has_password: bool = False
    created_at: datetime


class UserEnvelope(BaseModel):
    user: UserResponse


class VerifyCodeResponse(BaseModel):
    """Canonical token returned so the client can finish a link-style sign-in."""
    token: str
    email: str


class SessionResponse(BaseModel):
    user_id: str
    email: str
    org_id: Optional[str] = None
    org_slug: Optional[str] = None
    session_token: Optional[str] = None
    message: str


class RequestCodeResponse(BaseModel):
    success: bool = True
    message: str


class MotivationalMessageRead(BaseModel):
    message: str
    author: Optional[str] = None
    category: Optional[str] = None


class MotivationalResponse(BaseModel):
    message: Optional[MotivationalMessageRead] = None
