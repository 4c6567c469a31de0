"""
Organization API endpoints.

POST   /api/v1/organizations             — Create an organization (creator becomes admin)
GET    /api/v1/organizations/{idOrSlug}  — Get organization details
PATCH  /api/v1/organizations/{idOrSlug}  — Update name/slug/language (admins)
DELETE /api/v1/organizations             — Delete many; ids the caller may not delete are rejected
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.guard import GuardContext, get_current_user, is_allowed_to
from app.core.notifier import EventNotifier, get_notifier
from app.models.user import User
from app.permissions.engine import Action, PermissionEngine
from app.permissions.policies import get_permission_engine
from app.services import contexts as context_service
from app.services import memberships as membership_store
from app.services.entities import resolve_many
from hive_shared.schemas.common import BatchResult
from hive_shared.schemas.organizations import (
    BulkDeleteRequest,
    OrgCreateRequest,
    OrgResponse,
    OrgUpdateRequest,
)

log = structlog.get_logger()
router = APIRouter()


@router.post("", response_model=OrgResponse, status_code=201)
async def create_organization(
    body: OrgCreateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Create a new organization. The creator becomes an admin."""
    org, membership = await context_service.create_context(session, "organization", body.model_dump(), user)
    return OrgResponse(**context_service.context_payload(org, membership))


@router.get("/{idOrSlug}", response_model=OrgResponse)
async def get_organization(ctx: GuardContext = Depends(is_allowed_to(Action.READ, "organization"))):
    org = ctx.entity
    return OrgResponse(**context_service.context_payload(org, ctx.membership_for(org)))


@router.patch("/{idOrSlug}", response_model=OrgResponse)
async def update_organization(
    body: OrgUpdateRequest,
    ctx: GuardContext = Depends(is_allowed_to(Action.UPDATE, "organization")),
    session: AsyncSession = Depends(get_session),
    notifier: EventNotifier = Depends(get_notifier),
):
    org = await context_service.update_context(
        session, notifier, ctx.entity, body.model_dump(exclude_unset=True, exclude_none=True), ctx.user
    )
    return OrgResponse(**context_service.context_payload(org, ctx.membership_for(org)))


@router.delete("", response_model=BatchResult)
async def delete_organizations(
    body: BulkDeleteRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    engine: PermissionEngine = Depends(get_permission_engine),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Delete the organizations the caller may delete; everything else is reported back."""
    found = await resolve_many(session, "organization", body.ids)
    memberships = await membership_store.list_for_user(session, user.id)
    allowed, disallowed = engine.split_by_permission(user, memberships, Action.DELETE, found)

    matched = {str(o.id) for o in found} | {o.slug for o in found}
    rejected = [i for i in body.ids if i.lower() not in matched]
    rejected += [str(o.id) for o in disallowed]

    if allowed:
        await context_service.delete_contexts(session, notifier, "organization", allowed)
    log.info("organizations.deleted", deleted=len(allowed), rejected=len(rejected))
    return BatchResult(success=not rejected, rejected_items=rejected)
