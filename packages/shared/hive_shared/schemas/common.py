from enum import Enum
from typing import Optional, List
from pydantic import BaseModel


class EntityType(str, Enum):
    USER = "user"
    ORGANIZATION = "organization"
    WORKSPACE = "workspace"
    PROJECT = "project"
    TASK = "task"
    LABEL = "label"


class ContextEntityType(str, Enum):
    ORGANIZATION = "organization"
    WORKSPACE = "workspace"
    PROJECT = "project"


class SystemRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class MembershipRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class TokenType(str, Enum):
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    INVITATION = "invitation"


class Severity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


# Slugs: lowercase, digits, hyphens; no leading/trailing hyphen
SLUG_PATTERN = r"^[a-z0-9][a-z0-9-]*[a-z0-9]$"


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int


class ErrorBody(BaseModel):
    type: str
    message: str
    status: int
    severity: Severity
    entity_type: Optional[str] = None
    log_id: Optional[str] = None
    path: Optional[str] = None
    method: Optional[str] = None
    timestamp: str


class ErrorResponse(BaseModel):
    error: ErrorBody


class BatchResult(BaseModel):
    """Outcome of a bulk operation; ids that were skipped end up in rejected_items."""
    success: bool
    rejected_items: List[str] = []
