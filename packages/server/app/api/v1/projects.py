"""
Workspace and project API endpoints (context entities under an organization).

POST   /api/v1/{workspaces|projects}             — Create; organizationId in the body
GET    /api/v1/{workspaces|projects}/{idOrSlug}  — Details
PATCH  /api/v1/{workspaces|projects}/{idOrSlug}  — Update name/slug
DELETE /api/v1/{workspaces|projects}/{idOrSlug}  — Delete with everything inside
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.guard import GuardContext, is_allowed_to
from app.core.notifier import EventNotifier, get_notifier
from app.permissions.engine import Action
from app.services import contexts as context_service
from hive_shared.schemas.projects import (
    ChildContextCreateRequest,
    ChildContextResponse,
    ChildContextUpdateRequest,
)


def child_context_router(entity_type: str) -> APIRouter:
    router = APIRouter()

    @router.post("", response_model=ChildContextResponse, status_code=201)
    async def create(
        body: ChildContextCreateRequest,
        ctx: GuardContext = Depends(is_allowed_to(Action.CREATE, entity_type)),
        session: AsyncSession = Depends(get_session),
    ):
        entity, membership = await context_service.create_context(
            session,
            entity_type,
            body.model_dump(exclude={"organization_id"}),
            ctx.user,
            parent=ctx.organization,
        )
        return ChildContextResponse(**context_service.context_payload(entity, membership))

    @router.get("/{idOrSlug}", response_model=ChildContextResponse)
    async def get(ctx: GuardContext = Depends(is_allowed_to(Action.READ, entity_type))):
        return ChildContextResponse(**context_service.context_payload(ctx.entity, ctx.membership_for(ctx.entity)))

    @router.patch("/{idOrSlug}", response_model=ChildContextResponse)
    async def update(
        body: ChildContextUpdateRequest,
        ctx: GuardContext = Depends(is_allowed_to(Action.UPDATE, entity_type)),
        session: AsyncSession = Depends(get_session),
        notifier: EventNotifier = Depends(get_notifier),
    ):
        entity = await context_service.update_context(
            session, notifier, ctx.entity, body.model_dump(exclude_unset=True, exclude_none=True), ctx.user
        )
        return ChildContextResponse(**context_service.context_payload(entity, ctx.membership_for(entity)))

    @router.delete("/{idOrSlug}", status_code=204)
    async def delete(
        ctx: GuardContext = Depends(is_allowed_to(Action.DELETE, entity_type)),
        session: AsyncSession = Depends(get_session),
        notifier: EventNotifier = Depends(get_notifier),
    ):
        await context_service.delete_contexts(session, notifier, entity_type, [ctx.entity])
        return Response(status_code=204)

    return router


workspaces_router = child_context_router("workspace")
projects_router = child_context_router("project")
