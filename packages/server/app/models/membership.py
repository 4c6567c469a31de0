"""Membership of a user in one context entity (organization, workspace, project)."""

from datetime import datetime
from typing import ClassVar, Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import AuditMixin, TimestampMixin, UUIDMixin


class Membership(UUIDMixin, TimestampMixin, AuditMixin, SQLModel, table=True):
    __tablename__ = "memberships"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "context_type", "context_id", name="uq_membership_user_context"),
    )

    entity_type: ClassVar[str] = "membership"

    user_id: uuid.UUID = Field(foreign_key="users.id", ondelete="CASCADE", nullable=False, index=True)
    context_type: str = Field(nullable=False, index=True)  # organization | workspace | project
    # id of the context row itself, mirrored from the typed column below
    context_id: uuid.UUID = Field(nullable=False, index=True)
    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False, index=True
    )
    workspace_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="workspaces.id", ondelete="CASCADE", index=True
    )
    project_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="projects.id", ondelete="CASCADE", index=True
    )
    role: str = Field(nullable=False, default="member")  # admin | member
    archived: bool = Field(default=False, nullable=False)
    muted: bool = Field(default=False, nullable=False)
    order: float = Field(default=0.0, nullable=False)
    # set while the membership waits for an invitation to be accepted
    token_id: Optional[str] = Field(default=None, foreign_key="tokens.id", ondelete="SET NULL")
    activated_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

    @property
    def is_active(self) -> bool:
        return self.activated_at is not None
