"""
Access guard dependencies.

Per request: authenticate the session cookie, resolve the target entity (or
the ancestor context for a create), load the caller's memberships and ask
the permission engine. Any failure ends the request with 401, 403 or 404
before the handler runs. On success the resolved pieces are returned as a
`GuardContext` and mirrored on `request.state`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import read_session_cookie, validate_session
from app.core.database import get_session
from app.core.errors import AppError
from app.core.hierarchy import hierarchy
from app.models.membership import Membership
from app.models.user import User
from app.permissions.engine import Action, PermissionDecision, PermissionEngine
from app.permissions.policies import get_permission_engine
from app.services import memberships as membership_store
from app.services import users as user_service
from app.services.entities import build_context, load_ancestors, resolve_entity

log = structlog.get_logger()

ID_PARAM = "idOrSlug"
ENTITY_TYPE_PARAM = "entityType"


@dataclass
class GuardContext:
    user: User
    memberships: list[Membership]
    entity: Any  # resolved row, or EntityContext for creates
    decision: PermissionDecision
    ancestors: dict[str, Any] = field(default_factory=dict)

    @property
    def entity_type(self) -> str:
        return self.entity.entity_type

    @property
    def organization(self) -> Any:
        return self.context("organization")

    @property
    def workspace(self) -> Any:
        return self.context("workspace")

    @property
    def project(self) -> Any:
        return self.context("project")

    def context(self, context_type: str) -> Any:
        if self.entity.entity_type == context_type and self.entity.id is not None:
            return self.entity
        return self.ancestors.get(context_type)

    def membership_for(self, entity: Any) -> Optional[Membership]:
        """The caller's own membership in a context entity, if any."""
        for membership in self.memberships:
            if membership.context_type == entity.entity_type and membership.context_id == entity.id:
                return membership
        return None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


async def get_optional_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    token = read_session_cookie(request)
    if not token:
        return None
    user = await validate_session(token, session)
    if user is not None:
        # error handlers read this after the session has closed
        request.state.language = user.language
    return user


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> User:
    """Authenticated user from the session cookie; stamps last_seen_at."""
    user = await get_optional_user(request, session)
    if user is None:
        raise AppError(401, "unauthorized")
    await user_service.touch(session, user)
    return user


async def require_system_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_system_admin:
        log.warning("guard.denied", reason="system_admin_required", user_id=str(user.id))
        raise AppError(403, "forbidden")
    return user


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


async def _json_body(request: Request) -> Optional[dict]:
    if request.method in ("GET", "HEAD", "DELETE"):
        return None
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def _entity_type_from_request(request: Request) -> str:
    entity_type = request.query_params.get(ENTITY_TYPE_PARAM)
    if not entity_type or not hierarchy.is_context(entity_type):
        raise AppError(404, "not_found", entity_type="unknown")
    return entity_type


def is_allowed_to(action: Action, entity_type: Optional[str] = None) -> Callable[..., Any]:
    """Dependency factory guarding a route with `action` on `entity_type`.

    Without a fixed `entity_type` the `entityType` query parameter names it.
    The target is `idOrSlug` from the path or query; when absent, the
    ancestor context is derived from route, query and body.
    """

    async def guard(
        request: Request,
        user: User = Depends(get_current_user),
        session: AsyncSession = Depends(get_session),
        engine: PermissionEngine = Depends(get_permission_engine),
    ) -> GuardContext:
        target_type = entity_type or _entity_type_from_request(request)
        identifier = request.path_params.get(ID_PARAM) or request.query_params.get(ID_PARAM)
        if entity_type is None and not identifier:
            # query-addressed routes always act on an existing context
            raise AppError(404, "not_found", entity_type=target_type)

        if identifier:
            entity = await resolve_entity(session, target_type, identifier)
        else:
            entity = await build_context(
                session,
                target_type,
                request.path_params,
                request.query_params,
                await _json_body(request),
            )
        if entity is None:
            raise AppError(404, "not_found", entity_type=target_type)

        memberships = await membership_store.list_for_user(session, user.id)
        decision = engine.decide(user, memberships, entity)
        if not decision.allows(action):
            log.warning(
                "guard.denied",
                user_id=str(user.id),
                entity_type=target_type,
                entity_id=str(entity.id) if entity.id else None,
                action=action.name.lower(),
            )
            raise AppError(403, "forbidden", entity_type=target_type)

        ancestors = await load_ancestors(session, entity)
        ctx = GuardContext(user, memberships, entity, decision, ancestors)

        request.state.memberships = memberships
        request.state.entity = entity
        for context_type in hierarchy.context_types:
            setattr(request.state, context_type, ctx.context(context_type))

        log.debug(
            "guard.allowed",
            user_id=str(user.id),
            entity_type=target_type,
            action=action.name.lower(),
            level=decision.context_type or ("system" if decision.system_admin else None),
        )
        return ctx

    return guard
