"""User model."""

from datetime import datetime
from typing import ClassVar, Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    entity_type: ClassVar[str] = "user"

    slug: str = Field(unique=True, index=True, nullable=False)
    name: str = Field(nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)
    role: str = Field(default="user", nullable=False)  # user | admin (system-wide)
    hashed_password: Optional[str] = Field(default=None)  # null for OAuth-only accounts
    email_verified: bool = Field(default=False, nullable=False)
    language: str = Field(default="en", nullable=False)
    last_seen_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    last_visit_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    last_sign_in_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

    @property
    def is_system_admin(self) -> bool:
        return self.role == "admin"
