"""Workspace and project schemas (context entities under an organization)."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import SLUG_PATTERN
from .memberships import MembershipResponse


class ChildContextCreateRequest(BaseModel):
    """Body for creating a workspace or project; organization_id is the ancestor context."""
    name: str = Field(..., min_length=1, max_length=100)
    slug: str = Field(..., min_length=2, max_length=50, pattern=SLUG_PATTERN)
    organization_id: str = Field(..., alias="organizationId")

    model_config = {"populate_by_name": True}


class ChildContextUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, min_length=2, max_length=50, pattern=SLUG_PATTERN)


class ChildContextResponse(BaseModel):
    id: uuid.UUID
    entity: str
    name: str
    slug: str
    organization_id: uuid.UUID
    created_at: datetime
    created_by: Optional[uuid.UUID] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[uuid.UUID] = None
    membership: Optional[MembershipResponse] = None

    model_config = {"from_attributes": True}
