# SQLModel definitions, imported here so the metadata is complete before create_all().
from .base import UUIDMixin, TimestampMixin, AuditMixin  # noqa: F401
from .user import User  # noqa: F401
from .organization import Organization  # noqa: F401
from .project import Workspace, Project  # noqa: F401
from .task import Task, Label  # noqa: F401
from .token import Token  # noqa: F401
from .membership import Membership  # noqa: F401
