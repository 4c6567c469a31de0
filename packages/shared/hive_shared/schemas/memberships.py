"""Membership and invitation schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from .common import ContextEntityType, MembershipRole


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class MembershipInviteRequest(BaseModel):
    """Invite one or more emails to a context entity."""
    emails: List[EmailStr] = Field(..., min_length=1, max_length=50)
    role: MembershipRole = MembershipRole.MEMBER


class MembershipUpdateRequest(BaseModel):
    role: Optional[MembershipRole] = None
    archived: Optional[bool] = None
    muted: Optional[bool] = None
    order: Optional[float] = None


class MembershipDeleteRequest(BaseModel):
    """User ids whose memberships should be removed from the context."""
    ids: List[str] = Field(..., min_length=1)


class ResendInvitationRequest(BaseModel):
    email: Optional[EmailStr] = None
    token_id: Optional[str] = Field(default=None, alias="tokenId")

    model_config = {"populate_by_name": True}


class AcceptInvitationRequest(BaseModel):
    """Only new users need to provide a password."""
    password: Optional[str] = Field(default=None, min_length=8, max_length=100)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MembershipResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    context_type: ContextEntityType
    context_id: uuid.UUID
    organization_id: uuid.UUID
    workspace_id: Optional[uuid.UUID] = None
    project_id: Optional[uuid.UUID] = None
    role: MembershipRole
    archived: bool
    muted: bool
    order: float
    activated_at: Optional[datetime] = None
    created_at: datetime
    created_by: Optional[uuid.UUID] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[uuid.UUID] = None

    model_config = {"from_attributes": True}


class MembershipCounts(BaseModel):
    admins: int
    members: int
    pending: int = 0


class InviteResult(BaseModel):
    success: bool
    invites_sent_count: int
    members_added_count: int = 0
    rejected_items: List[str] = []


class MemberItem(BaseModel):
    id: uuid.UUID
    slug: str
    name: str
    email: str
    last_seen_at: Optional[datetime] = None
    membership: MembershipResponse


class MemberListResponse(BaseModel):
    items: List[MemberItem]
    total: int


class PendingInvitationItem(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: Optional[MembershipRole] = None
    expires_at: datetime
    created_at: datetime
    created_by: Optional[uuid.UUID] = None


class PendingInvitationListResponse(BaseModel):
    items: List[PendingInvitationItem]
    total: int


class InvitationTokenData(BaseModel):
    email: str
    user_id: Optional[uuid.UUID] = None
    entity_type: Optional[ContextEntityType] = None
    entity_name: Optional[str] = None
    role: Optional[MembershipRole] = None
    expires_at: datetime
