"""
System admin endpoints.

GET /api/v1/system/users — All users (system admins only)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.guard import require_system_admin
from app.models.user import User
from app.services import users as user_service
from hive_shared.schemas.users import UserListResponse, UserResponse

router = APIRouter()


@router.get("/users", response_model=UserListResponse)
async def list_users(
    q: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: User = Depends(require_system_admin),
    session: AsyncSession = Depends(get_session),
):
    users, total = await user_service.list_users(session, q=q, limit=limit, offset=offset)
    return UserListResponse(items=[UserResponse.model_validate(u) for u in users], total=total)
