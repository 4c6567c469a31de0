"""
Product entity service: tasks (with subtasks) and labels inside a project.
"""

from __future__ import annotations

import math
import uuid
from typing import Any, Mapping, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import AppError
from app.models.project import Project
from app.models.task import Label, Task
from app.models.user import User
from app.services.entities import delete_entities, update_entity

log = structlog.get_logger()

ORDER_STEP = 10


async def _next_task_order(session: AsyncSession, project_id: uuid.UUID) -> float:
    result = await session.execute(select(func.max(Task.order)).where(Task.project_id == project_id))
    return float(math.ceil(result.scalar() or 0) + ORDER_STEP)


async def create_task(
    session: AsyncSession,
    project: Project,
    values: Mapping[str, Any],
    user: User,
    parent_id: Optional[uuid.UUID] = None,
) -> Task:
    if parent_id is not None:
        parent = await session.get(Task, parent_id)
        if parent is None or parent.project_id != project.id:
            raise AppError(400, "invalid_request", entity_type="task", meta={"reason": "parent_not_in_project"})

    task = Task(
        **values,
        organization_id=project.organization_id,
        project_id=project.id,
        parent_id=parent_id,
        order=await _next_task_order(session, project.id),
        created_by=user.id,
    )
    session.add(task)
    await session.flush()
    log.info("task.created", task_id=str(task.id), project_id=str(project.id), subtask=parent_id is not None)
    return task


async def list_tasks(
    session: AsyncSession,
    project_id: uuid.UUID,
    *,
    parent_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Task], int]:
    conditions = [Task.project_id == project_id]
    conditions.append(Task.parent_id == parent_id if parent_id else Task.parent_id.is_(None))
    if status:
        conditions.append(Task.status == status)
    total = (await session.execute(select(func.count(Task.id)).where(*conditions))).scalar() or 0
    result = await session.execute(select(Task).where(*conditions).order_by(Task.order).limit(limit).offset(offset))
    return list(result.scalars().all()), total


async def update_task(session: AsyncSession, task: Task, patch: Mapping[str, Any], user: User) -> Task:
    return await update_entity(session, task, patch, user.id)


async def delete_task(session: AsyncSession, task: Task) -> None:
    await delete_entities(session, "task", [task.id])


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


async def create_label(session: AsyncSession, project: Project, values: Mapping[str, Any], user: User) -> Label:
    label = Label(
        **values,
        organization_id=project.organization_id,
        project_id=project.id,
        created_by=user.id,
    )
    session.add(label)
    await session.flush()
    log.info("label.created", label_id=str(label.id), project_id=str(project.id))
    return label


async def list_labels(session: AsyncSession, project_id: uuid.UUID) -> list[Label]:
    result = await session.execute(select(Label).where(Label.project_id == project_id).order_by(Label.name))
    return list(result.scalars().all())


async def update_label(session: AsyncSession, label: Label, patch: Mapping[str, Any], user: User) -> Label:
    return await update_entity(session, label, patch, user.id)


async def delete_label(session: AsyncSession, label: Label) -> None:
    await delete_entities(session, "label", [label.id])
