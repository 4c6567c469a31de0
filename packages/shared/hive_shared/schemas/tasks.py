"""Product entity (task, label) schemas shared across server and frontend codegen."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic import UUID4


class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in-progress"
    IN_REVIEW = "in-review"
    COMPLETE = "complete"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskBase(BaseModel):
    summary: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM


class TaskCreate(TaskBase):
    project_id: str = Field(..., alias="projectId")
    parent_id: Optional[UUID4] = Field(default=None, alias="parentId")

    model_config = {"populate_by_name": True}


class TaskUpdate(BaseModel):
    summary: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    order: Optional[float] = None


class TaskRead(BaseModel):
    id: UUID4
    entity: str = "task"
    organization_id: UUID4
    project_id: UUID4
    parent_id: Optional[UUID4] = None
    summary: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    order: float
    created_at: datetime
    created_by: Optional[UUID4] = None
    modified_at: Optional[datetime] = None
    modified_by: Optional[UUID4] = None

    model_config = {"from_attributes": True}


class TaskListResponse(BaseModel):
    items: List[TaskRead]
    total: int


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------

class LabelCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")
    project_id: str = Field(..., alias="projectId")

    model_config = {"populate_by_name": True}


class LabelUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class LabelRead(BaseModel):
    id: UUID4
    entity: str = "label"
    organization_id: UUID4
    project_id: UUID4
    name: str
    color: Optional[str] = None
    created_at: datetime
    created_by: Optional[UUID4] = None

    model_config = {"from_attributes": True}
