"""
Tests for authentication.

Covers:
- Password hashing
- Session token creation, decoding, revocation
- CSRF and security header middleware
- Sign-up, sign-in, sign-out, email verification and password reset endpoints
"""

from __future__ import annotations

import uuid
from datetime import timedelta

import jwt as pyjwt
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlmodel import select

from app.core.auth import (
    create_session_token,
    decode_session_token,
    end_session,
    generate_csrf_token,
    hash_password,
    is_session_revoked,
    revoke_session,
    validate_session,
    verify_password,
)
from app.core.config import get_settings
from app.core.middleware import CSRFMiddleware, SECURITY_HEADERS, SecurityHeadersMiddleware
from app.models.token import Token
from app.models.user import User

from conftest import PASSWORD

settings = get_settings()


# ---------------------------------------------------------------------------
# Unit Tests: Password hashing
# ---------------------------------------------------------------------------

class TestPasswordHashing:
    def test_hash_and_verify(self):
        password = "MySecureP@ssw0rd!"
        hashed = hash_password(password)
        assert hashed != password
        assert verify_password(password, hashed)

    def test_wrong_password_fails(self):
        hashed = hash_password("correct-password")
        assert not verify_password("wrong-password", hashed)

    def test_missing_hash_never_matches(self):
        assert not verify_password("anything", None)

    def test_different_hashes_for_same_password(self):
        """bcrypt uses random salt, so hashes differ."""
        h1 = hash_password("same")
        h2 = hash_password("same")
        assert h1 != h2
        assert verify_password("same", h1)
        assert verify_password("same", h2)


# ---------------------------------------------------------------------------
# Unit Tests: Session token
# ---------------------------------------------------------------------------

class TestSessionToken:
    def test_create_and_decode(self):
        uid = uuid.uuid4()
        token, jti = create_session_token(uid)
        payload = decode_session_token(token)
        assert payload["sub"] == str(uid)
        assert payload["jti"] == jti

    def test_expired_token_raises(self):
        token, _ = create_session_token(uuid.uuid4(), expires_delta=timedelta(seconds=-1))
        with pytest.raises(pyjwt.ExpiredSignatureError):
            decode_session_token(token)

    def test_tampered_token_raises(self):
        token, _ = create_session_token(uuid.uuid4())
        tampered = token[:-5] + "XXXXX"
        with pytest.raises(pyjwt.PyJWTError):
            decode_session_token(tampered)

    def test_csrf_tokens_unique(self):
        t1 = generate_csrf_token()
        t2 = generate_csrf_token()
        assert t1 != t2
        assert len(t1) > 20


class TestSessionRevocation:
    async def test_revoke_and_check(self, redis_mock):
        await revoke_session("test-jti-123", 3600)
        redis_mock.setex.assert_called_once_with("session:revoked:test-jti-123", 3600, "1")
        assert await is_session_revoked("test-jti-123")
        assert not await is_session_revoked("other-jti")

    async def test_validate_session(self, session, make_user):
        user = await make_user()
        token, _ = create_session_token(user.id)
        found = await validate_session(token, session)
        assert found.id == user.id

    async def test_ended_session_is_invalid(self, session, make_user):
        user = await make_user()
        token, _ = create_session_token(user.id)
        await end_session(token)
        assert await validate_session(token, session) is None

    async def test_garbage_token_is_invalid(self, session):
        assert await validate_session("not-a-jwt", session) is None


# ---------------------------------------------------------------------------
# Integration Tests: Middleware
# ---------------------------------------------------------------------------


@pytest.fixture
def guarded_client():
    """Bare app behind the security middlewares; cookies/headers are set per test."""
    app = FastAPI()
    app.add_middleware(CSRFMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    @app.api_route("/echo", methods=["GET", "POST", "DELETE"])
    async def echo():
        return {"ok": True}

    def make(cookies: dict | None = None) -> TestClient:
        return TestClient(app, cookies=cookies or {})

    return make


class TestSecurityMiddleware:
    def test_security_headers_on_every_response(self, guarded_client):
        resp = guarded_client().get("/echo")
        for header, value in SECURITY_HEADERS.items():
            assert resp.headers.get(header) == value

    @pytest.mark.parametrize(
        "method,cookies,header,expected",
        [
            ("GET", {"session": "jwt"}, None, 200),
            ("POST", {}, None, 200),
            ("POST", {"session": "jwt"}, None, 403),
            ("POST", {"session": "jwt", "csrf": "token-a"}, "token-a", 200),
            ("DELETE", {"session": "jwt", "csrf": "token-a"}, "token-b", 403),
            ("POST", {"session": "jwt"}, "token-a", 403),
        ],
    )
    def test_double_submit_csrf(self, guarded_client, method, cookies, header, expected):
        names = {"session": settings.session_cookie_name, "csrf": settings.csrf_cookie_name}
        client = guarded_client({names[k]: v for k, v in cookies.items()})
        headers = {"X-CSRF-Token": header} if header else {}
        resp = client.request(method, "/echo", headers=headers)
        assert resp.status_code == expected
        if expected == 403:
            assert resp.json()["error"]["type"] == "forbidden"
            assert resp.headers["X-Frame-Options"] == "DENY"


# ---------------------------------------------------------------------------
# Integration Tests: Auth Endpoints
# ---------------------------------------------------------------------------

class TestAuthEndpoints:
    async def test_sign_up_sends_verification(self, client, mailer, session_factory):
        resp = await client.post("/auth/sign-up", json={"email": "new@example.com", "password": PASSWORD})
        assert resp.status_code == 201
        assert resp.json()["email"] == "new@example.com"
        assert mailer.sent[0]["to"] == "new@example.com"

        async with session_factory() as s:
            token = (await s.execute(select(Token))).scalar_one()
            assert token.type == "email_verification"

    async def test_sign_up_short_password(self, client):
        resp = await client.post("/auth/sign-up", json={"email": "new@example.com", "password": "short"})
        assert resp.status_code == 400
        assert resp.json()["error"]["type"] == "invalid_request"

    async def test_sign_up_duplicate_email(self, client, make_user):
        await make_user("taken@example.com")
        resp = await client.post("/auth/sign-up", json={"email": "taken@example.com", "password": PASSWORD})
        assert resp.status_code == 409
        assert resp.json()["error"]["type"] == "email_exists"

    async def test_verify_email_then_sign_in(self, client, session_factory):
        await client.post("/auth/sign-up", json={"email": "new@example.com", "password": PASSWORD})

        resp = await client.post("/auth/sign-in", json={"email": "new@example.com", "password": PASSWORD})
        assert resp.status_code == 403
        assert resp.json()["error"]["type"] == "email_not_verified"

        async with session_factory() as s:
            token_id = (await s.execute(select(Token.id))).scalar_one()
        resp = await client.post(f"/auth/verify-email/{token_id}")
        assert resp.status_code == 200
        assert resp.json()["email_verified"] is True

        resp = await client.post("/auth/sign-in", json={"email": "new@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert settings.session_cookie_name in resp.headers.get("set-cookie", "")

    async def test_sign_in_wrong_password(self, client, make_user):
        await make_user("a@example.com")
        resp = await client.post("/auth/sign-in", json={"email": "a@example.com", "password": "wrong-password"})
        assert resp.status_code == 401
        assert resp.json()["error"]["type"] == "invalid_credentials"

    async def test_sign_out_revokes_session(self, client_for, make_user, redis_mock):
        user = await make_user()
        client = client_for(user)
        assert (await client.get("/api/v1/me")).status_code == 200

        resp = await client.post("/auth/sign-out")
        assert resp.status_code == 204
        assert any(key.startswith("session:revoked:") for key in redis_mock.store)

    async def test_reset_password(self, client, mailer, make_user, session_factory):
        await make_user("a@example.com")
        resp = await client.post("/auth/request-password", json={"email": "a@example.com"})
        assert resp.status_code == 204
        assert len(mailer.sent) == 1

        async with session_factory() as s:
            token_id = (await s.execute(select(Token.id))).scalar_one()
        resp = await client.post(f"/auth/reset-password/{token_id}", json={"password": "a-brand-new-secret"})
        assert resp.status_code == 200

        async with session_factory() as s:
            user = (await s.execute(select(User).where(User.email == "a@example.com"))).scalar_one()
            assert verify_password("a-brand-new-secret", user.hashed_password)

        resp = await client.post(f"/auth/reset-password/{token_id}", json={"password": "another-secret"})
        assert resp.status_code == 401
        assert resp.json()["error"]["type"] == "invalid_token"

    async def test_request_password_unknown_email(self, client, mailer):
        resp = await client.post("/auth/request-password", json={"email": "ghost@example.com"})
        assert resp.status_code == 204
        assert mailer.sent == []
