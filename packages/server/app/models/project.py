"""Workspace and project models (context entities under an organization)."""

from typing import ClassVar
import uuid

from sqlmodel import Field, SQLModel

from .base import AuditMixin, TimestampMixin, UUIDMixin


class Workspace(UUIDMixin, TimestampMixin, AuditMixin, SQLModel, table=True):
    __tablename__ = "workspaces"

    entity_type: ClassVar[str] = "workspace"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False, index=True
    )
    name: str = Field(nullable=False)
    slug: str = Field(unique=True, nullable=False, index=True)


class Project(UUIDMixin, TimestampMixin, AuditMixin, SQLModel, table=True):
    __tablename__ = "projects"

    entity_type: ClassVar[str] = "project"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False, index=True
    )
    name: str = Field(nullable=False)
    slug: str = Field(unique=True, nullable=False, index=True)
