"""
Entity resolution.

- `resolve_entity` / `resolve_many`: entity type + id or slug -> row
- `build_context`: ancestor context for creating a child whose row does not exist yet
- generic update and cascading delete shared by the context and product services
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, Mapping, Sequence

import structlog
from sqlalchemy import delete, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from app.core.errors import AppError
from app.core.hierarchy import hierarchy
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.token import Token
from app.permissions.engine import EntityContext

log = structlog.get_logger()


def parse_uuid(value: Any) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


async def resolve_entity(session: AsyncSession, entity_type: str, id_or_slug: str | uuid.UUID) -> SQLModel | None:
    """Load one entity by id, or by slug for types that carry one.

    Returns None when nothing matches. Raises HierarchyError for an
    unregistered entity type.
    """
    config = hierarchy.get(entity_type)
    model = config.model
    entity_id = parse_uuid(id_or_slug)

    conditions = []
    if entity_id is not None:
        conditions.append(model.id == entity_id)
    if config.has_slug and isinstance(id_or_slug, str):
        conditions.append(model.slug == id_or_slug.lower())
    if not conditions:
        return None

    result = await session.execute(select(model).where(or_(*conditions)).limit(1))
    return result.scalar_one_or_none()


async def resolve_many(session: AsyncSession, entity_type: str, ids: Iterable[str | uuid.UUID]) -> list[SQLModel]:
    """Load many entities by id or slug. Identifiers that match nothing are left out."""
    config = hierarchy.get(entity_type)
    model = config.model
    raw = list(ids)
    uuids = [u for u in (parse_uuid(i) for i in raw) if u is not None]
    slugs = [str(i).lower() for i in raw if parse_uuid(i) is None]

    conditions = []
    if uuids:
        conditions.append(model.id.in_(uuids))
    if config.has_slug and slugs:
        conditions.append(model.slug.in_(slugs))
    if not conditions:
        return []

    result = await session.execute(select(model).where(or_(*conditions)))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Ancestor context
# ---------------------------------------------------------------------------


def _camel(name: str) -> str:
    return f"{name}Id"


def find_identifier(
    ancestor: str,
    path_params: Mapping[str, Any],
    query_params: Mapping[str, Any],
    body: Mapping[str, Any] | None,
) -> str | None:
    """Identifier for an ancestor from the route, then the query string, then the JSON body."""
    for source, keys in (
        (path_params, (ancestor, _camel(ancestor))),
        (query_params, (ancestor, _camel(ancestor))),
        (body or {}, (_camel(ancestor), f"{ancestor}_id")),
    ):
        for key in keys:
            value = source.get(key)
            if value:
                return str(value).lower()
    return None


async def build_context(
    session: AsyncSession,
    entity_type: str,
    path_params: Mapping[str, Any],
    query_params: Mapping[str, Any],
    body: Mapping[str, Any] | None = None,
) -> EntityContext | None:
    """Derive the ancestor context for a not-yet-existing entity of `entity_type`.

    The nearest ancestor with an identifier is resolved; farther ancestors are
    read from that row's own parent columns. Returns None when an identifier
    was given but does not resolve, and an empty context when none was given.
    """
    ancestors = hierarchy.ancestors(entity_type)
    for index, ancestor in enumerate(ancestors):
        identifier = find_identifier(ancestor, path_params, query_params, body)
        if identifier is None:
            continue

        entity = await resolve_entity(session, ancestor, identifier)
        if entity is None:
            log.info("context.unresolved", entity_type=entity_type, ancestor=ancestor, identifier=identifier)
            return None

        ids = {ancestor: entity.id}
        for farther in ancestors[index + 1:]:
            value = getattr(entity, hierarchy.id_field(farther), None)
            if value is not None:
                ids[farther] = value
        return EntityContext(entity_type, ids, {ancestor: entity})

    return EntityContext(entity_type)


async def load_ancestors(session: AsyncSession, entity: Any) -> dict[str, SQLModel]:
    """Ancestor rows of an entity (or entity context), keyed by type."""
    loaded: dict[str, SQLModel] = dict(getattr(entity, "entities", {}) or {})
    for ancestor in hierarchy.ancestors(entity.entity_type):
        if ancestor in loaded:
            continue
        ancestor_id = getattr(entity, hierarchy.id_field(ancestor), None)
        if ancestor_id is None:
            continue
        row = await session.get(hierarchy.get(ancestor).model, ancestor_id)
        if row is not None:
            loaded[ancestor] = row
    return loaded


# ---------------------------------------------------------------------------
# Shared mutations
# ---------------------------------------------------------------------------


async def ensure_slug_available(
    session: AsyncSession, entity_type: str, slug: str, exclude_id: uuid.UUID | None = None
) -> None:
    model = hierarchy.get(entity_type).model
    stmt = select(model.id).where(model.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    result = await session.execute(stmt.limit(1))
    if result.scalar_one_or_none() is not None:
        raise AppError(409, "slug_exists", entity_type=entity_type)


async def update_entity(
    session: AsyncSession, entity: SQLModel, patch: Mapping[str, Any], modified_by: uuid.UUID
) -> SQLModel:
    """Apply a partial update and stamp modified_at/modified_by."""
    entity_type = entity.entity_type
    if patch.get("slug") and patch["slug"] != getattr(entity, "slug", None):
        await ensure_slug_available(session, entity_type, patch["slug"], exclude_id=entity.id)
    for key, value in patch.items():
        setattr(entity, key, value)
    entity.modified_at = utcnow()
    entity.modified_by = modified_by
    session.add(entity)
    await session.flush()
    log.info("entity.updated", entity_type=entity_type, entity_id=str(entity.id), fields=sorted(patch))
    return entity


def _depth(entity_type: str) -> int:
    return len(hierarchy.ancestors(entity_type))


async def delete_entities(session: AsyncSession, entity_type: str, ids: Sequence[uuid.UUID]) -> list[uuid.UUID]:
    """Delete entities and everything below them in the hierarchy.

    Descendant rows, memberships and tokens are removed explicitly so the
    result does not depend on the database enforcing foreign keys. Returns
    the user ids whose memberships were removed.
    """
    if not ids:
        return []
    config = hierarchy.get(entity_type)
    ids = list(ids)

    affected_users: list[uuid.UUID] = []
    if config.kind == "context":
        column = getattr(Membership, config.id_field)
        result = await session.execute(select(Membership.user_id).where(column.in_(ids)).distinct())
        affected_users = list(result.scalars().all())

        # pending memberships reference tokens; clear them before the tokens go
        await session.execute(delete(Membership).where(column.in_(ids)))
        await session.execute(delete(Token).where(getattr(Token, config.id_field).in_(ids)))

        descendants = [
            name
            for name in hierarchy.context_types + hierarchy.product_types
            if entity_type in hierarchy.ancestors(name)
        ]
        for name in sorted(descendants, key=_depth, reverse=True):
            model = hierarchy.get(name).model
            if hasattr(model, "parent_id"):
                await session.execute(
                    update(model).where(getattr(model, config.id_field).in_(ids)).values(parent_id=None)
                )
            await session.execute(delete(model).where(getattr(model, config.id_field).in_(ids)))

    model = config.model
    if hasattr(model, "parent_id"):
        # subtasks go with their parent
        await session.execute(delete(model).where(model.parent_id.in_(ids)))
    await session.execute(delete(model).where(model.id.in_(ids)))
    await session.flush()

    log.info("entity.deleted", entity_type=entity_type, count=len(ids), members=len(affected_users))
    return affected_users
