"""
Session authentication for Hive.

- Email/password credentials hashed with bcrypt
- Signed JWT session token carried in an httponly cookie
- Redis revocation list consulted on every validation (sign-out revokes)
- Double-submit CSRF cookie issued alongside the session
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
import structlog
from fastapi import Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.redis import get_redis
from app.models.user import User

log = structlog.get_logger()
settings = get_settings()

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    """Hash a password using bcrypt with cost factor 12."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def verify_password(password: str, hashed: str | None) -> bool:
    """Verify a password against a bcrypt hash. OAuth-only accounts never match."""
    if not hashed:
        return False
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# Session JWT
# ---------------------------------------------------------------------------


def create_session_token(
    user_id: uuid.UUID,
    *,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed session token. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.session_expire_minutes))
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_session_token(token: str) -> dict:
    """Decode and verify a session token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


# ---------------------------------------------------------------------------
# Revocation (Redis)
# ---------------------------------------------------------------------------


async def revoke_session(jti: str, ttl_seconds: int | None = None) -> None:
    """Add a session id to the revocation list until it would have expired anyway."""
    redis = await get_redis()
    ttl = ttl_seconds or settings.session_expire_minutes * 60
    await redis.setex(f"session:revoked:{jti}", ttl, "1")


async def is_session_revoked(jti: str) -> bool:
    redis = await get_redis()
    return await redis.exists(f"session:revoked:{jti}") > 0


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------


def generate_csrf_token() -> str:
    """Generate a random CSRF token."""
    return secrets.token_urlsafe(32)


def read_session_cookie(request: Request) -> str | None:
    return request.cookies.get(settings.session_cookie_name)


def create_session_cookie(response: Response, user_id: uuid.UUID) -> str:
    """Issue a session for the user and set the session + CSRF cookies. Returns the jti."""
    token, jti = create_session_token(user_id)
    max_age = settings.session_expire_minutes * 60
    secure = not settings.debug
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=max_age,
        httponly=True,
        secure=secure,
        samesite="lax",
    )
    response.set_cookie(
        settings.csrf_cookie_name,
        generate_csrf_token(),
        max_age=max_age,
        httponly=False,
        secure=secure,
        samesite="lax",
    )
    return jti


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.session_cookie_name)
    response.delete_cookie(settings.csrf_cookie_name)


async def validate_session(token: str, session: AsyncSession) -> User | None:
    """Return the user a session token belongs to, or None when it is invalid."""
    try:
        payload = decode_session_token(token)
    except jwt.PyJWTError:
        return None

    jti = payload.get("jti")
    if not jti or await is_session_revoked(jti):
        log.info("session.revoked", jti=jti)
        return None

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        return None
    return await session.get(User, user_id)


async def end_session(token: str) -> None:
    """Revoke a session token; invalid tokens are ignored."""
    try:
        payload = decode_session_token(token)
    except jwt.PyJWTError:
        return
    exp = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
    remaining = int((exp - datetime.now(timezone.utc)).total_seconds())
    if remaining > 0:
        await revoke_session(payload["jti"], remaining)
