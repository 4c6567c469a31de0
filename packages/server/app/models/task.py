"""Task and label models (product entities under a project)."""

from typing import ClassVar, Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import AuditMixin, TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, AuditMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    entity_type: ClassVar[str] = "task"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False, index=True
    )
    project_id: uuid.UUID = Field(
        foreign_key="projects.id", ondelete="CASCADE", nullable=False, index=True
    )
    parent_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="tasks.id", ondelete="CASCADE", index=True
    )  # subtasks
    summary: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="backlog")  # backlog | in-progress | in-review | complete
    priority: str = Field(nullable=False, default="medium")  # low | medium | high | critical
    order: float = Field(default=0.0, nullable=False)


class Label(UUIDMixin, TimestampMixin, AuditMixin, SQLModel, table=True):
    __tablename__ = "labels"

    entity_type: ClassVar[str] = "label"

    organization_id: uuid.UUID = Field(
        foreign_key="organizations.id", ondelete="CASCADE", nullable=False, index=True
    )
    project_id: uuid.UUID = Field(
        foreign_key="projects.id", ondelete="CASCADE", nullable=False, index=True
    )
    name: str = Field(nullable=False)
    color: Optional[str] = None
