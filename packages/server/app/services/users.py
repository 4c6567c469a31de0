"""
User service: accounts, credentials, profile, menu and member listings.
"""

from __future__ import annotations

import re
import secrets
from typing import Optional

import structlog
from sqlalchemy import func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import hash_password, verify_password
from app.core.config import get_settings
from app.core.errors import AppError
from app.core.hierarchy import ContextRef, hierarchy
from app.core.mailer import EmailSender, deliver, password_reset_email, verification_email
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.user import User
from app.services import tokens as token_service

log = structlog.get_logger()
settings = get_settings()


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug or "user"


async def unique_user_slug(session: AsyncSession, base: str) -> str:
    slug = slugify(base)
    while True:
        result = await session.execute(select(User.id).where(User.slug == slug))
        if result.scalar_one_or_none() is None:
            return slug
        slug = f"{slugify(base)}-{secrets.token_hex(3)}"


async def get_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    *,
    email: str,
    hashed_password: str | None,
    name: str | None = None,
    email_verified: bool = False,
    role: str = "user",
) -> User:
    email = email.lower()
    if await get_by_email(session, email) is not None:
        raise AppError(409, "email_exists", entity_type="user")

    local_part = email.split("@", 1)[0]
    user = User(
        email=email,
        name=name or local_part,
        slug=await unique_user_slug(session, local_part),
        hashed_password=hashed_password,
        email_verified=email_verified,
        role=role,
    )
    session.add(user)
    await session.flush()
    log.info("user.created", user_id=str(user.id))
    return user


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


async def sign_up(
    session: AsyncSession, mailer: EmailSender, *, email: str, password: str, name: str | None = None
) -> User:
    if not settings.registration_enabled:
        raise AppError(403, "sign_up_restricted")
    user = await create_user(session, email=email, hashed_password=hash_password(password), name=name)
    await send_verification_email(session, mailer, user)
    return user


async def send_verification_email(session: AsyncSession, mailer: EmailSender, user: User) -> None:
    token = await token_service.issue(session, "email_verification", user.email, user_id=user.id)
    link = f"{settings.frontend_url.rstrip('/')}/auth/verify-email/{token.id}"
    subject, html = verification_email(settings.app_name, link)
    await deliver(mailer, user.email, subject, html)


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    user = await get_by_email(session, email)
    if user is None or not verify_password(password, user.hashed_password):
        log.info("auth.failed", email_domain=email.rsplit("@", 1)[-1])
        raise AppError(401, "invalid_credentials")
    if not user.email_verified:
        raise AppError(403, "email_not_verified")
    user.last_sign_in_at = utcnow()
    session.add(user)
    await session.flush()
    log.info("auth.signed_in", user_id=str(user.id))
    return user


async def verify_email(session: AsyncSession, token_id: str) -> User:
    token = await token_service.get_valid(session, token_id, "email_verification")
    user = await session.get(User, token.user_id) if token.user_id else None
    if user is None:
        await token_service.consume(session, token)
        raise AppError(401, "invalid_token")
    user.email_verified = True
    session.add(user)
    await token_service.consume(session, token)
    log.info("user.email_verified", user_id=str(user.id))
    return user


async def request_password_reset(session: AsyncSession, mailer: EmailSender, email: str) -> None:
    """Send a reset link when the account exists; callers never learn which."""
    user = await get_by_email(session, email)
    if user is None:
        log.info("auth.reset_unknown_email")
        return
    token = await token_service.issue(session, "password_reset", user.email, user_id=user.id)
    link = f"{settings.frontend_url.rstrip('/')}/auth/reset-password/{token.id}"
    subject, html = password_reset_email(settings.app_name, link)
    await deliver(mailer, user.email, subject, html)


async def reset_password(session: AsyncSession, token_id: str, password: str) -> User:
    token = await token_service.get_valid(session, token_id, "password_reset")
    user = await session.get(User, token.user_id) if token.user_id else None
    if user is None:
        await token_service.consume(session, token)
        raise AppError(401, "invalid_token")
    user.hashed_password = hash_password(password)
    # the link proved ownership of the address
    user.email_verified = True
    session.add(user)
    await token_service.consume(session, token)
    log.info("user.password_reset", user_id=str(user.id))
    return user


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


async def touch(session: AsyncSession, user: User, *, visit: bool = False) -> None:
    """Record activity; `visit` also stamps last_visit_at."""
    now = utcnow()
    user.last_seen_at = now
    if visit:
        user.last_visit_at = now
    session.add(user)
    await session.flush()


async def update_profile(session: AsyncSession, user: User, patch: dict) -> User:
    for key, value in patch.items():
        setattr(user, key, value)
    user.modified_at = utcnow()
    session.add(user)
    await session.flush()
    log.info("user.updated", user_id=str(user.id), fields=sorted(patch))
    return user


async def menu(session: AsyncSession, user: User) -> dict[str, dict[str, list]]:
    """Context entities the user belongs to, grouped by type, ordered, archived split out."""
    sections: dict[str, dict[str, list]] = {}
    for context_type in hierarchy.context_types:
        model = hierarchy.get(context_type).model
        result = await session.execute(
            select(model, Membership)
            .join(Membership, Membership.context_id == model.id)
            .where(
                Membership.user_id == user.id,
                Membership.context_type == context_type,
                Membership.activated_at.is_not(None),
            )
            .order_by(Membership.order)
        )
        section: dict[str, list] = {"items": [], "archived": []}
        for entity, membership in result.all():
            item = {
                "id": entity.id,
                "entity": context_type,
                "name": entity.name,
                "slug": entity.slug,
                "organization_id": getattr(entity, "organization_id", None),
                "membership": membership,
            }
            section["archived" if membership.archived else "items"].append(item)
        sections[context_type] = section
    return sections


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


async def list_members(
    session: AsyncSession,
    ref: ContextRef,
    *,
    q: str | None = None,
    role: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[tuple[User, Membership]], int]:
    conditions = [
        Membership.context_type == ref.type,
        getattr(Membership, hierarchy.id_field(ref.type)) == ref.id,
        Membership.activated_at.is_not(None),
    ]
    if role:
        conditions.append(Membership.role == role)
    if q:
        pattern = f"%{q.lower()}%"
        conditions.append(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))

    base = select(User, Membership).join(Membership, Membership.user_id == User.id).where(*conditions)
    total = (
        await session.execute(
            select(func.count(Membership.id)).join(User, User.id == Membership.user_id).where(*conditions)
        )
    ).scalar() or 0
    result = await session.execute(base.order_by(User.name).limit(limit).offset(offset))
    return [(user, membership) for user, membership in result.all()], total


async def list_users(
    session: AsyncSession, *, q: str | None = None, limit: int = 50, offset: int = 0
) -> tuple[list[User], int]:
    stmt = select(User)
    count_stmt = select(func.count(User.id))
    if q:
        pattern = f"%{q.lower()}%"
        condition = or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern))
        stmt = stmt.where(condition)
        count_stmt = count_stmt.where(condition)
    total = (await session.execute(count_stmt)).scalar() or 0
    result = await session.execute(stmt.order_by(User.created_at.desc()).limit(limit).offset(offset))
    return list(result.scalars().all()), total
