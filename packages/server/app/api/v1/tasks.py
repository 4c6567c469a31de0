"""
Task API endpoints.

GET    /api/v1/tasks?projectId=    — List top-level tasks (or subtasks with parentId)
POST   /api/v1/tasks               — Create a task; projectId in the body, parentId for subtasks
GET    /api/v1/tasks/{idOrSlug}    — Task details
PATCH  /api/v1/tasks/{idOrSlug}    — Update summary/description/status/priority/order
DELETE /api/v1/tasks/{idOrSlug}    — Delete a task and its subtasks
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import AppError
from app.core.guard import GuardContext, is_allowed_to
from app.permissions.engine import Action
from app.services import tasks as task_service
from hive_shared.schemas.tasks import TaskCreate, TaskListResponse, TaskRead, TaskStatus, TaskUpdate

router = APIRouter()


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    parent_id: Optional[uuid.UUID] = Query(default=None, alias="parentId"),
    status: Optional[TaskStatus] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: GuardContext = Depends(is_allowed_to(Action.READ, "task")),
    session: AsyncSession = Depends(get_session),
):
    """Tasks of the project given by the `projectId` query parameter."""
    if ctx.project is None:
        raise AppError(404, "not_found", entity_type="project")
    tasks, total = await task_service.list_tasks(
        session,
        ctx.project.id,
        parent_id=parent_id,
        status=status.value if status else None,
        limit=limit,
        offset=offset,
    )
    return TaskListResponse(items=[TaskRead.model_validate(t) for t in tasks], total=total)


@router.post("", response_model=TaskRead, status_code=201)
async def create_task(
    body: TaskCreate,
    ctx: GuardContext = Depends(is_allowed_to(Action.CREATE, "task")),
    session: AsyncSession = Depends(get_session),
):
    values = body.model_dump(exclude={"project_id", "parent_id"})
    values["priority"] = body.priority.value
    task = await task_service.create_task(session, ctx.project, values, ctx.user, parent_id=body.parent_id)
    return TaskRead.model_validate(task)


@router.get("/{idOrSlug}", response_model=TaskRead)
async def get_task(ctx: GuardContext = Depends(is_allowed_to(Action.READ, "task"))):
    return TaskRead.model_validate(ctx.entity)


@router.patch("/{idOrSlug}", response_model=TaskRead)
async def update_task(
    body: TaskUpdate,
    ctx: GuardContext = Depends(is_allowed_to(Action.UPDATE, "task")),
    session: AsyncSession = Depends(get_session),
):
    patch = body.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    task = await task_service.update_task(session, ctx.entity, patch, ctx.user)
    return TaskRead.model_validate(task)


@router.delete("/{idOrSlug}", status_code=204)
async def delete_task(
    ctx: GuardContext = Depends(is_allowed_to(Action.DELETE, "task")),
    session: AsyncSession = Depends(get_session),
):
    await task_service.delete_task(session, ctx.entity)
    return Response(status_code=204)
