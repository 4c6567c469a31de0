"""
Membership store: one row per (user, context entity).

Only active memberships (activated_at set) count for permissions and
counts; pending ones wait for an invitation token to be accepted.
"""

from __future__ import annotations

import math
import uuid
from typing import Any, Mapping, Sequence

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from app.core.errors import AppError
from app.core.hierarchy import ROOT_CONTEXT, ContextRef, context_ids, context_ref_for, hierarchy
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.token import Token

log = structlog.get_logger()

ORDER_STEP = 10


def _context_column(ref: ContextRef):
    return getattr(Membership, hierarchy.id_field(ref.type))


async def list_for_user(
    session: AsyncSession, user_id: uuid.UUID, *, active_only: bool = True
) -> list[Membership]:
    stmt = select(Membership).where(Membership.user_id == user_id)
    if active_only:
        stmt = stmt.where(Membership.activated_at.is_not(None))
    result = await session.execute(stmt.order_by(Membership.order))
    return list(result.scalars().all())


async def find(session: AsyncSession, user_id: uuid.UUID, ref: ContextRef) -> Membership | None:
    result = await session.execute(
        select(Membership).where(
            Membership.user_id == user_id,
            Membership.context_type == ref.type,
            _context_column(ref) == ref.id,
        )
    )
    return result.scalar_one_or_none()


async def next_order(
    session: AsyncSession, user_id: uuid.UUID, context_type: str, *, archived: bool | None = None
) -> float:
    """Position after the user's last membership of this type."""
    stmt = select(func.max(Membership.order)).where(
        Membership.user_id == user_id, Membership.context_type == context_type
    )
    if archived is not None:
        stmt = stmt.where(Membership.archived == archived)
    result = await session.execute(stmt)
    current = result.scalar() or 0
    return float(math.ceil(current) + ORDER_STEP)


async def create(
    session: AsyncSession,
    user_id: uuid.UUID,
    context: SQLModel,
    role: str,
    *,
    created_by: uuid.UUID | None = None,
    token_id: str | None = None,
    active: bool = True,
) -> tuple[Membership, bool]:
    """Create a membership unless one exists. Returns (membership, created)."""
    ref = context_ref_for(context)
    if role not in hierarchy.roles_for(ref.type):
        raise AppError(400, "invalid_request", meta={"role": role})

    existing = await find(session, user_id, ref)
    if existing is not None:
        return existing, False

    ids = context_ids(context)
    membership = Membership(
        user_id=user_id,
        context_type=ref.type,
        context_id=ref.id,
        organization_id=ids[ROOT_CONTEXT],
        workspace_id=ids.get("workspace"),
        project_id=ids.get("project"),
        role=role,
        order=await next_order(session, user_id, ref.type),
        token_id=token_id,
        activated_at=utcnow() if active else None,
        created_by=created_by,
    )
    session.add(membership)
    await session.flush()
    log.info(
        "membership.created",
        membership_id=str(membership.id),
        user_id=str(user_id),
        context_type=ref.type,
        context_id=str(ref.id),
        role=role,
        active=active,
    )
    return membership, True


async def activate(session: AsyncSession, membership: Membership, role: str | None = None) -> Membership:
    if role is not None:
        membership.role = role
    if membership.activated_at is None:
        membership.activated_at = utcnow()
    membership.token_id = None
    session.add(membership)
    await session.flush()
    log.info("membership.activated", membership_id=str(membership.id), role=membership.role)
    return membership


async def count_admins(session: AsyncSession, ref: ContextRef) -> int:
    result = await session.execute(
        select(func.count(Membership.id)).where(
            Membership.context_type == ref.type,
            _context_column(ref) == ref.id,
            Membership.role == "admin",
            Membership.activated_at.is_not(None),
        )
    )
    return result.scalar() or 0


async def update(
    session: AsyncSession,
    membership: Membership,
    patch: Mapping[str, Any],
    modified_by: uuid.UUID,
) -> Membership:
    """Change role/archived/muted/order. Demoting the last admin is refused."""
    ref = ContextRef(membership.context_type, membership.context_id)

    role = patch.get("role")
    if role is not None and role != membership.role:
        if role not in hierarchy.roles_for(ref.type):
            raise AppError(400, "invalid_request", meta={"role": role})
        if membership.role == "admin" and membership.activated_at is not None:
            if await count_admins(session, ref) <= 1:
                raise AppError(409, "last_admin", entity_type=ref.type)
        membership.role = role

    archived = patch.get("archived")
    if archived is not None and archived != membership.archived:
        # computed before the flag flips so this row is not counted
        membership.order = await next_order(session, membership.user_id, ref.type, archived=archived)
        membership.archived = archived
    elif patch.get("order") is not None:
        membership.order = patch["order"]

    if patch.get("muted") is not None:
        membership.muted = patch["muted"]

    membership.modified_at = utcnow()
    membership.modified_by = modified_by
    session.add(membership)
    await session.flush()
    log.info(
        "membership.updated",
        membership_id=str(membership.id),
        fields=sorted(k for k, v in patch.items() if v is not None),
    )
    return membership


async def _ensure_child_admins_remain(
    session: AsyncSession, organization_id: uuid.UUID, user_ids: set[uuid.UUID]
) -> None:
    """Refuse to end child memberships that hold the last admins of a workspace or project."""
    result = await session.execute(
        select(Membership).where(
            Membership.organization_id == organization_id,
            Membership.context_type != ROOT_CONTEXT,
            Membership.user_id.in_(list(user_ids)),
            Membership.role == "admin",
            Membership.activated_at.is_not(None),
        )
    )
    leaving: dict[ContextRef, int] = {}
    for membership in result.scalars().all():
        child = ContextRef(membership.context_type, membership.context_id)
        leaving[child] = leaving.get(child, 0) + 1
    for child, count in leaving.items():
        if count >= await count_admins(session, child):
            raise AppError(409, "last_admin", entity_type=child.type)


async def delete_for_context(
    session: AsyncSession, ref: ContextRef, user_ids: Sequence[uuid.UUID]
) -> tuple[list[Membership], list[uuid.UUID]]:
    """Remove the memberships of the given users in one context.

    Returns (deleted memberships, user ids that had none). Removing every
    active admin is refused. Leaving an organization also ends the user's
    memberships in its workspaces and projects, which is refused as well
    when it would leave one of them without an admin.
    """
    result = await session.execute(
        select(Membership).where(
            Membership.context_type == ref.type,
            _context_column(ref) == ref.id,
            Membership.user_id.in_(list(user_ids)),
        )
    )
    found = list(result.scalars().all())
    found_users = {m.user_id for m in found}
    missing = [u for u in user_ids if u not in found_users]

    removing_admins = sum(1 for m in found if m.role == "admin" and m.activated_at is not None)
    if removing_admins and removing_admins >= await count_admins(session, ref):
        raise AppError(409, "last_admin", entity_type=ref.type)
    if ref.type == ROOT_CONTEXT and found_users:
        await _ensure_child_admins_remain(session, ref.id, found_users)

    membership_ids = [m.id for m in found]
    token_ids = [m.token_id for m in found if m.token_id]
    if membership_ids:
        await session.execute(delete(Membership).where(Membership.id.in_(membership_ids)))
    if token_ids:
        await session.execute(delete(Token).where(Token.id.in_(token_ids)))
    if ref.type == ROOT_CONTEXT and found_users:
        await session.execute(
            delete(Membership).where(
                Membership.organization_id == ref.id,
                Membership.user_id.in_(list(found_users)),
            )
        )
    await session.flush()

    log.info(
        "membership.deleted",
        context_type=ref.type,
        context_id=str(ref.id),
        deleted=len(found),
        missing=len(missing),
    )
    return found, missing


async def counts(session: AsyncSession, ref: ContextRef) -> dict[str, int]:
    """Admin, active member and pending invitation counts for a context."""
    column = _context_column(ref)
    result = await session.execute(
        select(Membership.role, func.count(Membership.id))
        .where(
            Membership.context_type == ref.type,
            column == ref.id,
            Membership.activated_at.is_not(None),
        )
        .group_by(Membership.role)
    )
    by_role = {role: count for role, count in result.all()}

    pending = await session.execute(
        select(func.count(Token.id)).where(
            Token.type == "invitation",
            Token.entity_type == ref.type,
            getattr(Token, hierarchy.id_field(ref.type)) == ref.id,
            Token.expires_at > utcnow(),
        )
    )
    return {
        "admins": by_role.get("admin", 0),
        "members": sum(by_role.values()),
        "pending": pending.scalar() or 0,
    }


async def user_ids_for_context(session: AsyncSession, ref: ContextRef) -> list[uuid.UUID]:
    result = await session.execute(
        select(Membership.user_id).where(
            Membership.context_type == ref.type,
            _context_column(ref) == ref.id,
            Membership.activated_at.is_not(None),
        )
    )
    return list(result.scalars().all())
