"""
Label API endpoints.

GET    /api/v1/labels?projectId=   — Labels of a project
POST   /api/v1/labels              — Create a label; projectId in the body
PATCH  /api/v1/labels/{idOrSlug}   — Rename / recolor
DELETE /api/v1/labels/{idOrSlug}   — Delete
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import AppError
from app.core.guard import GuardContext, is_allowed_to
from app.permissions.engine import Action
from app.services import tasks as task_service
from hive_shared.schemas.tasks import LabelCreate, LabelRead, LabelUpdate

router = APIRouter()


@router.get("", response_model=List[LabelRead])
async def list_labels(
    ctx: GuardContext = Depends(is_allowed_to(Action.READ, "label")),
    session: AsyncSession = Depends(get_session),
):
    if ctx.project is None:
        raise AppError(404, "not_found", entity_type="project")
    labels = await task_service.list_labels(session, ctx.project.id)
    return [LabelRead.model_validate(label) for label in labels]


@router.post("", response_model=LabelRead, status_code=201)
async def create_label(
    body: LabelCreate,
    ctx: GuardContext = Depends(is_allowed_to(Action.CREATE, "label")),
    session: AsyncSession = Depends(get_session),
):
    label = await task_service.create_label(session, ctx.project, body.model_dump(exclude={"project_id"}), ctx.user)
    return LabelRead.model_validate(label)


@router.patch("/{idOrSlug}", response_model=LabelRead)
async def update_label(
    body: LabelUpdate,
    ctx: GuardContext = Depends(is_allowed_to(Action.UPDATE, "label")),
    session: AsyncSession = Depends(get_session),
):
    label = await task_service.update_label(session, ctx.entity, body.model_dump(exclude_unset=True), ctx.user)
    return LabelRead.model_validate(label)


@router.delete("/{idOrSlug}", status_code=204)
async def delete_label(
    ctx: GuardContext = Depends(is_allowed_to(Action.DELETE, "label")),
    session: AsyncSession = Depends(get_session),
):
    await task_service.delete_label(session, ctx.entity)
    return Response(status_code=204)
