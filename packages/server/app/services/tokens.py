"""
Single-use tokens: issue, validate, consume.

At most one live token exists per (user or email, purpose); invitations are
additionally scoped to the context they invite to. A token past its
expiry, or one that was consumed, fails closed.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import timedelta

import structlog
from sqlalchemy import delete, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from app.core.config import get_settings
from app.core.errors import AppError
from app.core.hierarchy import context_ids, hierarchy
from app.models.base import as_utc, utcnow
from app.models.membership import Membership
from app.models.token import Token

log = structlog.get_logger()
settings = get_settings()


def token_ttl(token_type: str) -> timedelta:
    if token_type == "email_verification":
        return timedelta(hours=settings.email_verification_ttl_hours)
    if token_type == "password_reset":
        return timedelta(hours=settings.password_reset_ttl_hours)
    if token_type == "invitation":
        return timedelta(days=settings.invitation_ttl_days)
    raise ValueError(f"Unknown token type: {token_type}")


def new_token_id() -> str:
    return secrets.token_urlsafe(32)


def is_expired(token: Token) -> bool:
    return as_utc(token.expires_at) <= utcnow()


def token_context_id(token: Token) -> uuid.UUID | None:
    if not token.entity_type:
        return None
    return getattr(token, hierarchy.id_field(token.entity_type), None)


async def issue(
    session: AsyncSession,
    token_type: str,
    email: str,
    *,
    user_id: uuid.UUID | None = None,
    context: SQLModel | None = None,
    role: str | None = None,
    created_by: uuid.UUID | None = None,
) -> Token:
    """Replace any earlier token for the same purpose with a fresh one."""
    email = email.lower()
    ids = context_ids(context) if context is not None else {}

    owner = Token.email == email if user_id is None else or_(Token.user_id == user_id, Token.email == email)
    stmt = select(Token.id).where(Token.type == token_type, owner)
    if token_type == "invitation" and context is not None:
        stmt = stmt.where(
            Token.entity_type == context.entity_type,
            getattr(Token, hierarchy.id_field(context.entity_type)) == context.id,
        )
    previous = list((await session.execute(stmt)).scalars().all())

    token = Token(
        id=new_token_id(),
        type=token_type,
        email=email,
        user_id=user_id,
        organization_id=ids.get("organization"),
        workspace_id=ids.get("workspace"),
        project_id=ids.get("project"),
        entity_type=context.entity_type if context is not None else None,
        role=role,
        expires_at=utcnow() + token_ttl(token_type),
        created_by=created_by,
    )
    session.add(token)
    await session.flush()

    if previous:
        # pending memberships follow the newest invitation
        await session.execute(
            update(Membership).where(Membership.token_id.in_(previous)).values(token_id=token.id)
        )
        await session.execute(delete(Token).where(Token.id.in_(previous)))
        await session.flush()

    log.info("token.issued", type=token_type, replaced=len(previous), entity_type=token.entity_type)
    return token


async def get_valid(session: AsyncSession, token_id: str, token_type: str | None = None) -> Token:
    """Load a usable token or raise invalid_token / invalid_token_or_expired."""
    token = await session.get(Token, token_id)
    if token is None or (token_type is not None and token.type != token_type):
        raise AppError(401, "invalid_token")
    if is_expired(token):
        raise AppError(401, "invalid_token_or_expired")
    return token


async def consume(session: AsyncSession, token: Token) -> None:
    await session.delete(token)
    await session.flush()
    log.info("token.consumed", type=token.type)
