"""
Unit tests for request authentication.

This test suite covers:
- Mapping session token claims to the caller's identity
- Anonymous callers without a valid bearer token
- The signed-in requirement
"""

import jwt
import pytest
from fastapi import HTTPException
from starlette.requests import Request

from edify_ai.server.services import auth as auth_module
from edify_ai.server.services.auth import AuthContext, context_from_claims, get_auth, require_user


def make_request(authorization=None) -> Request:
    headers = []
    if authorization is not None:
        headers.append((b"authorization", authorization.encode()))
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


class TestContextFromClaims:
    def test_flat_org_claims(self):
        context = context_from_claims({"sub": "user_1", "org_id": "org_1", "org_role": "org:admin"})

        assert context == AuthContext(user_id="user_1", org_id="org_1", org_role="org:admin")
        assert context.is_org_admin is True

    def test_compact_org_claim(self):
        context = context_from_claims({"sub": "user_1", "o": {"id": "org_1", "rol": "moderator"}})

        assert context.org_id == "org_1"
        assert context.org_role == "org:moderator"
        assert context.is_org_admin is False

    def test_flat_claims_win(self):
        context = context_from_claims({"sub": "user_1", "org_id": "org_a", "org_role": "basic", "o": {"id": "org_b"}})

        assert context.org_id == "org_a"
        assert context.org_role == "basic"

    def test_no_organization(self):
        assert context_from_claims({"sub": "user_1"}) == AuthContext(user_id="user_1")


class TestGetAuth:
    @pytest.mark.asyncio
    async def test_missing_header_is_anonymous(self):
        assert await get_auth(make_request()) == AuthContext()

    @pytest.mark.asyncio
    async def test_non_bearer_header_is_anonymous(self):
        assert await get_auth(make_request("Basic abc")) == AuthContext()

    @pytest.mark.asyncio
    async def test_valid_token(self, monkeypatch: pytest.MonkeyPatch):
        tokens = []

        def fake_decode(token):
            tokens.append(token)
            return AuthContext(user_id="user_1")

        monkeypatch.setattr(auth_module, "decode_session_token", fake_decode)

        assert await get_auth(make_request("Bearer tok.en.value ")) == AuthContext(user_id="user_1")
        assert tokens == ["tok.en.value"]

    @pytest.mark.asyncio
    async def test_rejected_token_is_anonymous(self, monkeypatch: pytest.MonkeyPatch):
        def fake_decode(token):
            raise jwt.InvalidTokenError("bad signature")

        monkeypatch.setattr(auth_module, "decode_session_token", fake_decode)

        assert await get_auth(make_request("Bearer bad")) == AuthContext()


class TestRequireUser:
    def test_signed_in(self):
        context = AuthContext(user_id="user_1")
        assert require_user(context) is context

    def test_anonymous(self):
        with pytest.raises(HTTPException) as exc_info:
            require_user(AuthContext())

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Unauthorized"
