"""Single-use tokens for email verification, password reset and invitations."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import utcnow


class Token(SQLModel, table=True):
    __tablename__ = "tokens"

    id: str = Field(primary_key=True)  # opaque, from secrets.token_urlsafe
    type: str = Field(nullable=False, index=True)  # email_verification | password_reset | invitation
    email: str = Field(nullable=False, index=True)
    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", ondelete="CASCADE")
    organization_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="organizations.id", ondelete="CASCADE", index=True
    )
    entity_type: Optional[str] = None  # context the invitation is for
    workspace_id: Optional[uuid.UUID] = Field(default=None, foreign_key="workspaces.id", ondelete="CASCADE")
    project_id: Optional[uuid.UUID] = Field(default=None, foreign_key="projects.id", ondelete="CASCADE")
    role: Optional[str] = None
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", ondelete="SET NULL")
    created_at: datetime = Field(default_factory=utcnow, nullable=False, sa_type=sa.DateTime(timezone=True))
