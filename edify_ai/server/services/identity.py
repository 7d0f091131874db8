"""Identity provider API client

Overview
--------
Thin async HTTP client for the Clerk backend API. The server mirrors users and
organizations locally through webhooks; this client covers the few calls that
must go to the provider directly:

- waitlist entries and invitations (waitlist workflow)
- user lookup and creation by email (organization approval)
- organization creation and membership listing (moderation requests)

Errors
------
Non-2xx responses raise ``IdentityProviderError`` carrying the provider's
status code and its first error message, so routes can pass both through.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from edify_ai.core.logging_config import get_logger
from edify_ai.server.core.config import settings

logger = get_logger(__name__)

_client: Optional["IdentityClient"] = None


class IdentityProviderError(Exception):
    """A Clerk API call failed.

    Args:
        message: Human-readable error description.
        status_code: HTTP status returned by the provider.
        details: Decoded error body, when available.
    """

    def __init__(self, message: str, *, status_code: int = 500, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class IdentityClient:
    """Async client for the Clerk backend API."""

    def __init__(
        self,
        base_url: str,
        secret_key: Optional[str],
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Create an identity client.

        Args:
            base_url: Base URL of the backend API (e.g., ``https://api.clerk.com/v1``).
            secret_key: Backend secret key sent as a Bearer token.
            timeout: Default HTTP timeout for the internal client.
            client: Optional preconfigured ``httpx.AsyncClient`` to use.
        """
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.secret_key:
            headers["Authorization"] = f"Bearer {self.secret_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs)
        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            message = "Identity provider request failed"
            if isinstance(body, dict) and body.get("errors"):
                message = body["errors"][0].get("message") or message
            logger.error(f"Clerk API error {method} {path}: {response.status_code} {body}")
            raise IdentityProviderError(message, status_code=response.status_code, details=body)
        return response.json()

    async def create_waitlist_entry(self, email: str) -> Dict[str, Any]:
        """Add an email to the provider waitlist.

        API
        ---
        - Method/Path: ``POST /waitlist_entries``
        """
        return await self._request(
            "POST", "/waitlist_entries", json={"email_address": email, "website": settings.app.app_url}
        )

    async def create_invitation(
        self, email: str, redirect_url: str, public_metadata: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Invite an email address to sign up.

        API
        ---
        - Method/Path: ``POST /invitations``
        """
        return await self._request(
            "POST",
            "/invitations",
            json={"email_address": email, "redirect_url": redirect_url, "public_metadata": public_metadata},
        )

    async def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        users = await self._request("GET", "/users", params={"email_address": email})
        return users[0] if users else None

    async def create_user(self, email: str) -> Dict[str, Any]:
        return await self._request(
            "POST", "/users", json={"email_address": [email], "skip_password_requirement": True}
        )

    async def get_or_create_user(self, email: str) -> Dict[str, Any]:
        user = await self.find_user_by_email(email)
        if user is None:
            logger.info(f"Creating identity provider user for {email}")
            user = await self.create_user(email)
        return user

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/users/{user_id}")

    async def create_organization(
        self, name: str, created_by: str, public_metadata: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Create an organization owned by ``created_by``.

        API
        ---
        - Method/Path: ``POST /organizations``
        """
        return await self._request(
            "POST",
            "/organizations",
            json={"name": name, "created_by": created_by, "public_metadata": public_metadata or {}},
        )

    async def list_organization_memberships(self, org_id: str) -> List[Dict[str, Any]]:
        body = await self._request("GET", f"/organizations/{org_id}/memberships", params={"limit": 100})
        return body.get("data", []) if isinstance(body, dict) else body

    async def find_moderator_email(self, org_id: str) -> str:
        """
        Email address of the organization's first moderator.

        Raises:
            IdentityProviderError: With status 404 when no moderator or email exists.
        """
        memberships = await self.list_organization_memberships(org_id)
        moderators = [m for m in memberships if m.get("role") in ("org:moderator", "moderator")]
        if not moderators:
            raise IdentityProviderError("No moderator available", status_code=404)

        moderator_id = (moderators[0].get("public_user_data") or {}).get("user_id")
        if not moderator_id:
            raise IdentityProviderError("Moderator ID not found", status_code=404)

        moderator = await self.get_user(moderator_id)
        addresses = moderator.get("email_addresses") or []
        if not addresses or not addresses[0].get("email_address"):
            raise IdentityProviderError("Moderator email not found", status_code=404)
        return addresses[0]["email_address"]

    async def get_primary_email(self, user_id: str) -> Optional[str]:
        user = await self.get_user(user_id)
        addresses = user.get("email_addresses") or []
        return addresses[0].get("email_address") if addresses else None


def get_identity_client() -> IdentityClient:
    """Dependency returning the process-wide identity client."""
    global _client
    if _client is None:
        _client = IdentityClient(settings.clerk.api_url, settings.clerk.secret_key)
    return _client
