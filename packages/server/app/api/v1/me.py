"""
Current user endpoints.

GET    /api/v1/me         — Profile (stamps last_visit_at)
PATCH  /api/v1/me         — Update name/language
GET    /api/v1/me/menu    — Organizations, workspaces and projects the user belongs to
GET    /api/v1/me/stream  — Server-sent events for this user
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from app.core.database import get_session
from app.core.guard import get_current_user
from app.core.notifier import EventNotifier, get_notifier
from app.models.user import User
from app.services import users as user_service
from hive_shared.schemas.memberships import MembershipResponse
from hive_shared.schemas.users import MenuItem, MenuResponse, MenuSection, MeUpdateRequest, UserResponse

router = APIRouter()


@router.get("", response_model=UserResponse)
async def get_me(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await user_service.touch(session, user, visit=True)
    return UserResponse.model_validate(user)


@router.patch("", response_model=UserResponse)
async def update_me(
    body: MeUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.update_profile(session, user, body.model_dump(exclude_none=True))
    return UserResponse.model_validate(user)


@router.get("/menu", response_model=MenuResponse)
async def get_menu(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    sections = await user_service.menu(session, user)

    def to_section(section: dict[str, list]) -> MenuSection:
        return MenuSection(
            **{
                key: [
                    MenuItem(**{**item, "membership": MembershipResponse.model_validate(item["membership"])})
                    for item in items
                ]
                for key, items in section.items()
            }
        )

    return MenuResponse(**{context_type: to_section(section) for context_type, section in sections.items()})


@router.get("/stream")
async def stream(
    request: Request,
    user: User = Depends(get_current_user),
    notifier: EventNotifier = Depends(get_notifier),
    session: AsyncSession = Depends(get_session),
):
    """Push channel for membership and entity changes. One stream per user; a new one replaces the old."""
    # the request session stays open while the stream lives; release the last_seen_at write now
    await session.commit()
    return EventSourceResponse(notifier.stream(request, user.id), sep="\n")
