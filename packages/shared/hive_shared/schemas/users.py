"""User, session and profile schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, EmailStr, Field, UUID4

from .common import SystemRole
from .memberships import MembershipResponse


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class SignUpRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    password: str = Field(min_length=8, max_length=100)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class RequestPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = Field(min_length=8, max_length=100)


class MeUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    language: Optional[str] = Field(default=None, min_length=2, max_length=5)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserResponse(BaseModel):
    id: UUID4
    entity: str = "user"
    slug: str
    name: str
    email: str
    role: SystemRole
    language: str
    email_verified: bool = False
    last_seen_at: Optional[datetime] = None
    last_visit_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    user_id: str
    email: str
    message: str


class MenuItem(BaseModel):
    id: UUID4
    entity: str
    name: str
    slug: str
    organization_id: Optional[UUID4] = None
    membership: MembershipResponse


class MenuSection(BaseModel):
    items: List[MenuItem] = []
    archived: List[MenuItem] = []


class MenuResponse(BaseModel):
    organization: MenuSection = MenuSection()
    workspace: MenuSection = MenuSection()
    project: MenuSection = MenuSection()


class UserListResponse(BaseModel):
    items: List[UserResponse]
    total: int
