"""
Shared fixtures: in-memory SQLite database, mocked Redis, recording mailer,
and signed-in HTTP clients over the real application.
"""

from __future__ import annotations

import os

os.environ.setdefault("HIVE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("HIVE_DEBUG", "false")
os.environ.setdefault("HIVE_LOG_LEVEL", "warning")

from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401
from app.core.auth import create_session_token, hash_password  # noqa: E402
from app.core.config import get_settings  # noqa: E402
from app.core.database import get_session  # noqa: E402
from app.core.mailer import EmailSender  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services import contexts as context_service  # noqa: E402

settings = get_settings()

PASSWORD = "correct-horse-battery"
PASSWORD_HASH = hash_password(PASSWORD)
CSRF = "csrf-test-token"


class RecordingEmailSender(EmailSender):
    def __init__(self):
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html})


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def redis_mock():
    """In-memory stand-in for the session revocation list."""
    store: dict[str, str] = {}

    async def setex(key, ttl, value):
        store[key] = value

    async def exists(key):
        return int(key in store)

    mock = AsyncMock()
    mock.setex.side_effect = setex
    mock.exists.side_effect = exists
    mock.store = store
    with patch("app.core.auth.get_redis", AsyncMock(return_value=mock)):
        yield mock


@pytest.fixture
def mailer():
    return RecordingEmailSender()


@pytest.fixture
def app(session_factory, mailer):
    application = create_app()

    async def override_session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    application.dependency_overrides[get_session] = override_session
    application.state.mailer = mailer
    return application


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def client_for(app):
    """Factory: an HTTP client signed in as the given user."""
    clients: list[AsyncClient] = []

    def make(user: User) -> AsyncClient:
        token, _ = create_session_token(user.id)
        ac = AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies={settings.session_cookie_name: token, settings.csrf_cookie_name: CSRF},
            headers={"X-CSRF-Token": CSRF},
        )
        clients.append(ac)
        return ac

    yield make
    for ac in clients:
        await ac.aclose()


@pytest.fixture
def make_user(session):
    """Factory: insert a verified user and commit."""
    counter = {"n": 0}

    async def make(email: str | None = None, *, role: str = "user", verified: bool = True) -> User:
        counter["n"] += 1
        email = email or f"user{counter['n']}@example.com"
        user = User(
            email=email,
            name=email.split("@")[0].title(),
            slug=email.split("@")[0].replace(".", "-"),
            hashed_password=PASSWORD_HASH,
            email_verified=verified,
            role=role,
        )
        session.add(user)
        await session.commit()
        return user

    return make


@pytest.fixture
def make_org(session):
    """Factory: create an organization with its creator as admin, committed."""

    async def make(creator: User, slug: str = "acme", name: str = "Acme"):
        org, membership = await context_service.create_context(
            session, "organization", {"name": name, "slug": slug}, creator
        )
        await session.commit()
        return org

    return make


@pytest.fixture
def make_project(session):
    async def make(creator: User, organization, slug: str = "apollo", name: str = "Apollo", entity_type: str = "project"):
        entity, membership = await context_service.create_context(
            session, entity_type, {"name": name, "slug": slug}, creator, parent=organization
        )
        await session.commit()
        return entity

    return make
