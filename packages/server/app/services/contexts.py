"""
Context entity service: organizations, workspaces and projects.

The creator of a context entity becomes its admin. Deleting one removes
everything below it and tells former members over SSE.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from app.core.hierarchy import ROOT_CONTEXT, ContextRef, hierarchy
from app.core.notifier import EventNotifier
from app.models.membership import Membership
from app.models.user import User
from app.services import memberships as membership_store
from app.services.entities import delete_entities, ensure_slug_available, update_entity

from hive_shared.schemas.memberships import MembershipResponse

log = structlog.get_logger()


async def create_context(
    session: AsyncSession,
    entity_type: str,
    values: Mapping[str, Any],
    creator: User,
    *,
    parent: SQLModel | None = None,
) -> tuple[SQLModel, Membership]:
    """Insert a context entity and make the creator its admin."""
    config = hierarchy.get(entity_type)
    if not hierarchy.is_context(entity_type):
        raise ValueError(f"{entity_type} is not a context entity")

    data = dict(values)
    data["slug"] = data["slug"].lower()
    await ensure_slug_available(session, entity_type, data["slug"])

    if config.parent is not None:
        if parent is None or parent.entity_type != config.parent:
            raise ValueError(f"{entity_type} needs a {config.parent} parent")
        data[hierarchy.id_field(config.parent)] = parent.id

    entity = config.model(**data, created_by=creator.id)
    session.add(entity)
    await session.flush()

    membership, _ = await membership_store.create(session, creator.id, entity, "admin", created_by=creator.id)
    log.info(
        "context.created",
        entity_type=entity_type,
        entity_id=str(entity.id),
        slug=entity.slug,
        creator=str(creator.id),
    )
    return entity, membership


async def update_context(
    session: AsyncSession,
    notifier: EventNotifier,
    entity: SQLModel,
    patch: Mapping[str, Any],
    user: User,
) -> SQLModel:
    data = dict(patch)
    if data.get("slug"):
        data["slug"] = data["slug"].lower()
    entity = await update_entity(session, entity, data, user.id)
    ref = ContextRef(entity.entity_type, entity.id)
    members = await membership_store.user_ids_for_context(session, ref)
    notifier.send_after_commit(session, members, f"update_{entity.entity_type}", {"id": str(entity.id), "slug": entity.slug})
    return entity


async def delete_contexts(
    session: AsyncSession,
    notifier: EventNotifier,
    entity_type: str,
    entities: Sequence[SQLModel],
) -> list[uuid.UUID]:
    """Delete context entities with their descendants and memberships. Returns deleted ids."""
    ids = [e.id for e in entities]
    for entity in entities:
        ref = ContextRef(entity_type, entity.id)
        members = await membership_store.user_ids_for_context(session, ref)
        notifier.send_after_commit(session, members, f"remove_{entity_type}", {"id": str(entity.id)})
    await delete_entities(session, entity_type, ids)
    return ids


def context_payload(entity: SQLModel, membership: Membership | None) -> dict[str, Any]:
    payload = entity.model_dump()
    payload["entity"] = entity.entity_type
    payload["membership"] = MembershipResponse.model_validate(membership) if membership is not None else None
    if entity.entity_type != ROOT_CONTEXT:
        payload["organization_id"] = entity.organization_id
    return payload
