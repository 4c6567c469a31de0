"""
Membership API endpoints. The context is named by `?entityType=&idOrSlug=`.

POST   /api/v1/memberships                  — Invite emails with a role
DELETE /api/v1/memberships                  — Remove members (body: user ids)
PATCH  /api/v1/memberships/{membershipId}   — Role (admins) or own archived/muted/order
GET    /api/v1/memberships/members          — Active members, searchable
GET    /api/v1/memberships/pending          — Open invitations
POST   /api/v1/memberships/resend           — Reissue an invitation
GET    /api/v1/memberships/counts           — Admin/member/pending counts
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.errors import AppError
from app.core.guard import GuardContext, get_current_user, is_allowed_to
from app.core.hierarchy import context_ref_for, hierarchy
from app.core.mailer import EmailSender, get_mailer
from app.core.notifier import EventNotifier, get_notifier
from app.models.membership import Membership
from app.models.user import User
from app.permissions.engine import Action, PermissionEngine
from app.permissions.policies import get_permission_engine
from app.services import invitations as invitation_service
from app.services import memberships as membership_store
from app.services import users as user_service
from app.services.entities import parse_uuid
from hive_shared.schemas.common import BatchResult, MembershipRole
from hive_shared.schemas.memberships import (
    InviteResult,
    MemberItem,
    MemberListResponse,
    MembershipCounts,
    MembershipDeleteRequest,
    MembershipInviteRequest,
    MembershipResponse,
    MembershipUpdateRequest,
    PendingInvitationItem,
    PendingInvitationListResponse,
    ResendInvitationRequest,
)

log = structlog.get_logger()
router = APIRouter()


@router.post("", response_model=InviteResult)
async def invite_members(
    body: MembershipInviteRequest,
    ctx: GuardContext = Depends(is_allowed_to(Action.UPDATE)),
    session: AsyncSession = Depends(get_session),
    notifier: EventNotifier = Depends(get_notifier),
    mailer: EmailSender = Depends(get_mailer),
):
    return await invitation_service.invite(
        session,
        notifier,
        mailer,
        inviter=ctx.user,
        context=ctx.entity,
        emails=[str(e) for e in body.emails],
        role=body.role.value,
    )


@router.delete("", response_model=BatchResult)
async def remove_members(
    body: MembershipDeleteRequest,
    ctx: GuardContext = Depends(is_allowed_to(Action.DELETE)),
    session: AsyncSession = Depends(get_session),
    notifier: EventNotifier = Depends(get_notifier),
):
    ref = context_ref_for(ctx.entity)
    user_ids = [u for u in (parse_uuid(i) for i in body.ids) if u is not None]
    invalid = [i for i in body.ids if parse_uuid(i) is None]

    deleted, missing = await membership_store.delete_for_context(session, ref, user_ids)
    for membership in deleted:
        notifier.send_after_commit(
            session,
            [membership.user_id],
            f"remove_{ref.type}_membership",
            {"id": str(ref.id), "membership_id": str(membership.id)},
        )

    rejected = invalid + [str(u) for u in missing]
    return BatchResult(success=not rejected, rejected_items=rejected)


@router.patch("/{membershipId}", response_model=MembershipResponse)
async def update_membership(
    membershipId: uuid.UUID,
    body: MembershipUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    engine: PermissionEngine = Depends(get_permission_engine),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Admins of the context may change roles; members may only reorder, mute or archive their own."""
    membership = await session.get(Membership, membershipId)
    if membership is None:
        raise AppError(404, "membership_not_found")

    context = await session.get(hierarchy.get(membership.context_type).model, membership.context_id)
    if context is None:
        raise AppError(404, "not_found", entity_type=membership.context_type)

    memberships = await membership_store.list_for_user(session, user.id)
    may_update_context = engine.is_allowed(user, memberships, Action.UPDATE, context)
    own = membership.user_id == user.id
    if body.role is not None and not may_update_context:
        raise AppError(403, "forbidden", entity_type=membership.context_type)
    if not own and not may_update_context:
        raise AppError(403, "forbidden", entity_type=membership.context_type)

    patch = body.model_dump(exclude_none=True, mode="json")
    membership = await membership_store.update(session, membership, patch, user.id)

    notifier.send_after_commit(
        session,
        [membership.user_id],
        f"update_{membership.context_type}_membership",
        MembershipResponse.model_validate(membership).model_dump(mode="json"),
    )
    return MembershipResponse.model_validate(membership)


@router.get("/members", response_model=MemberListResponse)
async def list_members(
    q: Optional[str] = Query(default=None, max_length=100),
    role: Optional[MembershipRole] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: GuardContext = Depends(is_allowed_to(Action.READ)),
    session: AsyncSession = Depends(get_session),
):
    rows, total = await user_service.list_members(
        session,
        context_ref_for(ctx.entity),
        q=q,
        role=role.value if role else None,
        limit=limit,
        offset=offset,
    )
    items = [
        MemberItem(
            id=member.id,
            slug=member.slug,
            name=member.name,
            email=member.email,
            last_seen_at=member.last_seen_at,
            membership=MembershipResponse.model_validate(membership),
        )
        for member, membership in rows
    ]
    return MemberListResponse(items=items, total=total)


@router.get("/pending", response_model=PendingInvitationListResponse)
async def list_pending(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    ctx: GuardContext = Depends(is_allowed_to(Action.UPDATE)),
    session: AsyncSession = Depends(get_session),
):
    rows, total = await invitation_service.list_pending(
        session, context_ref_for(ctx.entity), limit=limit, offset=offset
    )
    items = [
        PendingInvitationItem(
            id=token.id,
            email=token.email,
            name=invited.name if invited else None,
            role=token.role,
            expires_at=token.expires_at,
            created_at=token.created_at,
            created_by=token.created_by,
        )
        for token, invited in rows
    ]
    return PendingInvitationListResponse(items=items, total=total)


@router.post("/resend", status_code=204)
async def resend_invitation(
    body: ResendInvitationRequest,
    ctx: GuardContext = Depends(is_allowed_to(Action.UPDATE)),
    session: AsyncSession = Depends(get_session),
    mailer: EmailSender = Depends(get_mailer),
):
    await invitation_service.resend(
        session,
        mailer,
        context=ctx.entity,
        sender=ctx.user,
        token_id=body.token_id,
        email=str(body.email) if body.email else None,
    )
    return Response(status_code=204)


@router.get("/counts", response_model=MembershipCounts)
async def membership_counts(
    ctx: GuardContext = Depends(is_allowed_to(Action.READ)),
    session: AsyncSession = Depends(get_session),
):
    return MembershipCounts(**await membership_store.counts(session, context_ref_for(ctx.entity)))
