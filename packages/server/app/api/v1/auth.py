"""
Authentication endpoints.

POST /auth/sign-up                      — Register (sends a verification email)
POST /auth/sign-in                      — Email/password sign in, sets session cookies
POST /auth/sign-out                     — Revoke the session
POST /auth/verify-email/{token}         — Confirm an email address and sign in
POST /auth/request-password             — Send a password reset link
POST /auth/reset-password/{token}       — Set a new password and sign in
GET  /auth/invitations/{token}          — Invitation details
POST /auth/invitations/{token}/accept   — Accept an invitation
POST /auth/invitations/{token}/reject   — Decline an invitation
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import clear_session_cookies, create_session_cookie, end_session, read_session_cookie
from app.core.database import get_session
from app.core.guard import get_optional_user
from app.core.mailer import EmailSender, get_mailer
from app.core.notifier import EventNotifier, get_notifier
from app.models.user import User
from app.services import invitations as invitation_service
from app.services import tokens as token_service
from app.services import users as user_service
from hive_shared.schemas.memberships import AcceptInvitationRequest, InvitationTokenData, MembershipResponse
from hive_shared.schemas.users import (
    AuthResponse,
    RequestPasswordRequest,
    ResetPasswordRequest,
    SignInRequest,
    SignUpRequest,
    UserResponse,
)

log = structlog.get_logger()
router = APIRouter()


@router.post("/sign-up", response_model=AuthResponse, status_code=201)
async def sign_up(
    body: SignUpRequest,
    session: AsyncSession = Depends(get_session),
    mailer: EmailSender = Depends(get_mailer),
):
    """Create an account. The user signs in after verifying the email address."""
    user = await user_service.sign_up(session, mailer, email=body.email, password=body.password, name=body.name)
    return AuthResponse(user_id=str(user.id), email=user.email, message="Verification email sent")


@router.post("/sign-in", response_model=UserResponse)
async def sign_in(
    body: SignInRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.authenticate(session, body.email, body.password)
    create_session_cookie(response, user.id)
    return UserResponse.model_validate(user)


@router.post("/sign-out", status_code=204)
async def sign_out(request: Request):
    token = read_session_cookie(request)
    if token:
        await end_session(token)
    response = Response(status_code=204)
    clear_session_cookies(response)
    return response


@router.post("/verify-email/{token}", response_model=UserResponse)
async def verify_email(
    token: str,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.verify_email(session, token)
    create_session_cookie(response, user.id)
    return UserResponse.model_validate(user)


@router.post("/request-password", status_code=204)
async def request_password(
    body: RequestPasswordRequest,
    session: AsyncSession = Depends(get_session),
    mailer: EmailSender = Depends(get_mailer),
):
    """Always 204, whether or not the address has an account."""
    await user_service.request_password_reset(session, mailer, body.email)
    return Response(status_code=204)


@router.post("/reset-password/{token}", response_model=UserResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.reset_password(session, token, body.password)
    create_session_cookie(response, user.id)
    return UserResponse.model_validate(user)


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


@router.get("/invitations/{token}", response_model=InvitationTokenData)
async def get_invitation(token: str, session: AsyncSession = Depends(get_session)):
    invitation = await token_service.get_valid(session, token, "invitation")
    context = await invitation_service.token_context(session, invitation)
    return InvitationTokenData(
        email=invitation.email,
        user_id=invitation.user_id,
        entity_type=invitation.entity_type,
        entity_name=context.name if context is not None else None,
        role=invitation.role,
        expires_at=invitation.expires_at,
    )


@router.post("/invitations/{token}/accept", response_model=MembershipResponse)
async def accept_invitation(
    token: str,
    response: Response,
    body: Optional[AcceptInvitationRequest] = None,
    current_user: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
    notifier: EventNotifier = Depends(get_notifier),
):
    """Existing users must be signed in as the invited account; new users choose a password."""
    user, membership = await invitation_service.accept(
        session,
        notifier,
        token,
        current_user=current_user,
        password=body.password if body else None,
    )
    if current_user is None:
        create_session_cookie(response, user.id)
    return MembershipResponse.model_validate(membership)


@router.post("/invitations/{token}/reject", status_code=204)
async def reject_invitation(token: str, session: AsyncSession = Depends(get_session)):
    await invitation_service.reject(session, token)
    return Response(status_code=204)
