"""
Request Authentication.

Resolves the signed-in user from the identity provider's session token.
Tokens arrive as ``Authorization: Bearer <jwt>`` and are verified against the
provider's published signing keys.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import jwt
from fastapi import HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from edify_ai.core.logging_config import get_logger
from edify_ai.server.core.config import settings

logger = get_logger(__name__)

_jwks_client: Optional[jwt.PyJWKClient] = None


@dataclass(frozen=True)
class AuthContext:
    """Identity of the caller for one request."""

    user_id: Optional[str] = None
    org_id: Optional[str] = None
    org_role: Optional[str] = None

    @property
    def is_org_admin(self) -> bool:
        return self.org_role == "org:admin"


def _get_jwks_client() -> jwt.PyJWKClient:
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = jwt.PyJWKClient(settings.clerk.jwks_url)
    return _jwks_client


def context_from_claims(claims: Mapping[str, Any]) -> AuthContext:
    """Map session token claims to an ``AuthContext``.

    Supports both the flat claims (``org_id``/``org_role``) and the compact
    organization claim ``o: {id, rol}``.
    """
    org_id = claims.get("org_id")
    org_role = claims.get("org_role")
    compact = claims.get("o")
    if isinstance(compact, Mapping):
        org_id = org_id or compact.get("id")
        if not org_role and compact.get("rol"):
            org_role = f"org:{compact['rol']}"
    return AuthContext(user_id=claims.get("sub"), org_id=org_id, org_role=org_role)


def decode_session_token(token: str) -> AuthContext:
    """Verify a session token and return the caller's identity.

    Raises:
        jwt.PyJWTError: If the token cannot be verified.
    """
    signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
    claims = jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        options={"verify_aud": False},
        leeway=5,
    )
    return context_from_claims(claims)


async def get_auth(request: Request) -> AuthContext:
    """
    Dependency resolving the caller, anonymous when no valid token is present.
    """
    header = request.headers.get("Authorization", "")
    if not header.startswith("Bearer "):
        return AuthContext()

    token = header[len("Bearer "):].strip()
    try:
        # Key lookup may fetch the JWKS document synchronously
        return await run_in_threadpool(decode_session_token, token)
    except jwt.PyJWTError as e:
        logger.info(f"Rejected session token: {e}")
        return AuthContext()


def require_user(auth: AuthContext) -> AuthContext:
    """Raise 401 unless the request is signed in."""
    if not auth.user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return auth
