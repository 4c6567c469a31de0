"""
Invitation lifecycle: invite -> (pending) -> accepted | rejected.

Invitations are tokens of type "invitation" scoped to one context entity.
Existing users get a pending membership next to the token; new users only
get the token until they accept.
"""

from __future__ import annotations

from typing import Iterable

import structlog
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from app.core.auth import hash_password
from app.core.config import get_settings
from app.core.errors import AppError
from app.core.hierarchy import ROOT_CONTEXT, ContextRef, context_ref_for, hierarchy
from app.core.mailer import EmailSender, deliver, invitation_email
from app.core.notifier import EventNotifier
from app.models.base import utcnow
from app.models.membership import Membership
from app.models.token import Token
from app.models.user import User
from app.services import memberships as membership_store
from app.services import tokens as token_service
from app.services import users as user_service
from app.services.entities import resolve_entity

from hive_shared.schemas.memberships import InviteResult

log = structlog.get_logger()
settings = get_settings()


def invitation_link(token: Token) -> str:
    return f"{settings.frontend_url.rstrip('/')}/invitation/{token.id}"


async def _send_invitation(mailer: EmailSender, token: Token, inviter: User | None, context: SQLModel) -> None:
    subject, html = invitation_email(
        settings.app_name,
        inviter.name if inviter else settings.app_name,
        context.name,
        invitation_link(token),
    )
    await deliver(mailer, token.email, subject, html)


async def _users_by_email(session: AsyncSession, emails: list[str]) -> dict[str, User]:
    result = await session.execute(select(User).where(func.lower(User.email).in_(emails)))
    return {user.email.lower(): user for user in result.scalars().all()}


async def invite(
    session: AsyncSession,
    notifier: EventNotifier,
    mailer: EmailSender,
    *,
    inviter: User,
    context: SQLModel,
    emails: Iterable[str],
    role: str,
) -> InviteResult:
    """Invite emails to a context entity.

    - already active members are rejected
    - existing organization members invited to a workspace/project join at once
    - everyone else receives an invitation token by email
    """
    ref = context_ref_for(context)
    if role not in hierarchy.roles_for(ref.type):
        raise AppError(400, "invalid_request", meta={"role": role})

    normalized = list(dict.fromkeys(e.strip().lower() for e in emails if e and e.strip()))
    users = await _users_by_email(session, normalized)
    organization_id = getattr(context, "organization_id", None) or context.id

    rejected: list[str] = []
    sent = 0
    added = 0
    for email in normalized:
        user = users.get(email)
        existing = await membership_store.find(session, user.id, ref) if user else None

        if existing is not None and existing.activated_at is not None:
            rejected.append(email)
            continue

        if user is not None and ref.type != ROOT_CONTEXT and existing is None:
            org_membership = await membership_store.find(
                session, user.id, ContextRef(ROOT_CONTEXT, organization_id)
            )
            if org_membership is not None and org_membership.activated_at is not None:
                membership, _ = await membership_store.create(
                    session, user.id, context, role, created_by=inviter.id
                )
                notifier.send_after_commit(
                    session,
                    [user.id],
                    f"new_{ref.type}_membership",
                    {"id": str(context.id), "membership_id": str(membership.id)},
                )
                added += 1
                continue

        token = await token_service.issue(
            session,
            "invitation",
            email,
            user_id=user.id if user else None,
            context=context,
            role=role,
            created_by=inviter.id,
        )
        if user is not None:
            if existing is None:
                await membership_store.create(
                    session, user.id, context, role, created_by=inviter.id, token_id=token.id, active=False
                )
            else:
                existing.token_id = token.id
                existing.role = role
                session.add(existing)
        await _send_invitation(mailer, token, inviter, context)
        sent += 1

    await session.flush()
    if normalized and not sent and not added:
        raise AppError(400, "no_recipients", entity_type=ref.type, meta={"rejected": rejected})

    log.info(
        "invitation.sent",
        context_type=ref.type,
        context_id=str(ref.id),
        sent=sent,
        added=added,
        rejected=len(rejected),
    )
    return InviteResult(
        success=not rejected,
        invites_sent_count=sent,
        members_added_count=added,
        rejected_items=rejected,
    )


async def token_context(session: AsyncSession, token: Token) -> SQLModel | None:
    context_id = token_service.token_context_id(token)
    if context_id is None:
        return None
    return await resolve_entity(session, token.entity_type, context_id)


async def accept(
    session: AsyncSession,
    notifier: EventNotifier,
    token_id: str,
    *,
    current_user: User | None = None,
    password: str | None = None,
) -> tuple[User, Membership]:
    """Consume an invitation: create or verify the user and activate the membership.

    Runs inside the request transaction; nothing is committed unless every step succeeds.
    """
    token = await token_service.get_valid(session, token_id, "invitation")
    context = await token_context(session, token)
    if context is None:
        await token_service.consume(session, token)
        raise AppError(401, "invalid_token")

    user = None
    if token.user_id is not None:
        user = await session.get(User, token.user_id)
    if user is None:
        user = await user_service.get_by_email(session, token.email)

    if user is None:
        if not password:
            raise AppError(400, "invalid_request", meta={"reason": "password_required"})
        user = await user_service.create_user(
            session,
            email=token.email,
            hashed_password=hash_password(password),
            email_verified=True,
        )
    else:
        if current_user is None:
            raise AppError(401, "unauthorized")
        if current_user.id != user.id:
            raise AppError(403, "wrong_user")
        if not user.email_verified:
            user.email_verified = True
            session.add(user)

    role = token.role or "member"
    result = await session.execute(select(Membership).where(Membership.token_id == token.id))
    pending = result.scalar_one_or_none()
    if pending is not None and pending.user_id == user.id:
        membership = await membership_store.activate(session, pending, role)
    else:
        membership, created = await membership_store.create(
            session, user.id, context, role, created_by=token.created_by
        )
        if not created:
            membership = await membership_store.activate(session, membership)

    ref = context_ref_for(context)
    if ref.type != ROOT_CONTEXT:
        organization = await resolve_entity(session, ROOT_CONTEXT, context.organization_id)
        org_membership, created = await membership_store.create(
            session, user.id, organization, "member", created_by=token.created_by
        )
        if not created and org_membership.activated_at is None:
            await membership_store.activate(session, org_membership)

    await token_service.consume(session, token)

    notifier.send_after_commit(
        session,
        [user.id],
        f"new_{ref.type}_membership",
        {"id": str(context.id), "membership_id": str(membership.id)},
    )
    log.info("invitation.accepted", user_id=str(user.id), context_type=ref.type, context_id=str(ref.id))
    return user, membership


async def reject(session: AsyncSession, token_id: str) -> None:
    """Decline an invitation. The token and any pending membership are removed."""
    token = await token_service.get_valid(session, token_id, "invitation")
    await session.execute(
        delete(Membership).where(Membership.token_id == token.id, Membership.activated_at.is_(None))
    )
    await token_service.consume(session, token)
    log.info("invitation.rejected", entity_type=token.entity_type)


async def resend(
    session: AsyncSession,
    mailer: EmailSender,
    *,
    context: SQLModel,
    sender: User,
    token_id: str | None = None,
    email: str | None = None,
) -> Token:
    """Reissue an invitation for this context; the previous token stops working."""
    ref = context_ref_for(context)
    stmt = select(Token).where(
        Token.type == "invitation",
        Token.entity_type == ref.type,
        getattr(Token, hierarchy.id_field(ref.type)) == ref.id,
    )
    if token_id:
        stmt = stmt.where(Token.id == token_id)
    elif email:
        stmt = stmt.where(Token.email == email.lower())
    else:
        raise AppError(400, "invalid_request")

    old = (await session.execute(stmt.limit(1))).scalar_one_or_none()
    if old is None or not old.email:
        raise AppError(404, "invalid_token")

    token = await token_service.issue(
        session,
        "invitation",
        old.email,
        user_id=old.user_id,
        context=context,
        role=old.role,
        created_by=sender.id,
    )
    await _send_invitation(mailer, token, sender, context)
    log.info("invitation.resent", context_type=ref.type, context_id=str(ref.id))
    return token


async def list_pending(
    session: AsyncSession, ref: ContextRef, *, limit: int = 50, offset: int = 0
) -> tuple[list[tuple[Token, User | None]], int]:
    """Open invitations for a context with the invited user when one exists."""
    conditions = (
        Token.type == "invitation",
        Token.entity_type == ref.type,
        getattr(Token, hierarchy.id_field(ref.type)) == ref.id,
        Token.expires_at > utcnow(),
    )
    total = (await session.execute(select(func.count(Token.id)).where(*conditions))).scalar() or 0
    result = await session.execute(
        select(Token, User)
        .join(User, User.id == Token.user_id, isouter=True)
        .where(*conditions)
        .order_by(Token.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return [(token, user) for token, user in result.all()], total
