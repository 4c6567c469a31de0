"""
Organization schemas shared between the server and its clients.

Covers: organization create/update/response models and bulk deletion.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import SLUG_PATTERN
from .memberships import MembershipResponse


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

class OrgCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Organization display name")
    slug: str = Field(
        ...,
        min_length=2,
        max_length=50,
        pattern=SLUG_PATTERN,
        description="URL-safe organization identifier",
    )
    default_language: str = Field(default="en", min_length=2, max_length=5)


class OrgUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, min_length=2, max_length=50, pattern=SLUG_PATTERN)
    default_language: Optional[str] = Field(None, min_length=2, max_length=5)


class OrgResponse(BaseModel):
    id: uuid.UUID
    entity: str = "organization"
    name: str
    slug: str
    default_language: str
    created_at: datetime
    created_by: Optional[uuid.UUID] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[uuid.UUID] = None
    membership: Optional[MembershipResponse] = None

    model_config = {"from_attributes": True}


class BulkDeleteRequest(BaseModel):
    ids: list[str] = Field(..., min_length=1)
