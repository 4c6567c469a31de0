"""Organization model, the root of the context hierarchy."""

from typing import ClassVar

from sqlmodel import Field, SQLModel

from .base import AuditMixin, TimestampMixin, UUIDMixin


class Organization(UUIDMixin, TimestampMixin, AuditMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    entity_type: ClassVar[str] = "organization"

    name: str = Field(nullable=False, index=True)
    slug: str = Field(unique=True, nullable=False, index=True)
    default_language: str = Field(default="en", nullable=False)
