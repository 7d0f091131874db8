from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

import httpx
import pytest
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

TEST_ROOT = Path(__file__).resolve().parent


class TestSettings(BaseSettings):
    """
    Test environment settings model.

    Values are read from ``test/.env`` when present. ``export`` copies them to
    the environment variables the application reads, without overriding
    values that are already set, so it must run before ``edify_ai`` is
    imported.
    """

    __test__ = False

    model_config = SettingsConfigDict(
        env_file=str(TEST_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = Field(default="sqlite+aiosqlite:///:memory:", alias="TEST_DATABASE_URL")
    stripe_webhook_secret: str = Field(default="whsec_edify_test_stripe", alias="TEST_STRIPE_WEBHOOK_SECRET")
    clerk_webhook_secret: str = Field(
        default="whsec_ZWRpZnktdGVzdC1jbGVyay13ZWJob29rLXNlY3JldCE=", alias="TEST_CLERK_WEBHOOK_SECRET"
    )
    clerk_waitlist_webhook_secret: str = Field(
        default="whsec_ZWRpZnktdGVzdC13YWl0bGlzdC13ZWJob29rLXNlYyE=", alias="TEST_CLERK_WAITLIST_WEBHOOK_SECRET"
    )

    def export(self) -> None:
        defaults = {
            "DATABASE_URL": self.database_url,
            "STRIPE_SECRET_KEY": "sk_test_edify",
            "STRIPE_WEBHOOK_SECRET": self.stripe_webhook_secret,
            "CLERK_WEBHOOK_SECRET": self.clerk_webhook_secret,
            "CLERK_WAITLIST_WEBHOOK_SECRET": self.clerk_waitlist_webhook_secret,
            "OPENAI_API_KEY": "sk-test-edify",
            "RESEND_API_KEY": "re_test_edify",
            "LOGFIRE_ENABLED": "false",
            "ENABLE_FILE_LOGGING": "false",
        }
        for name, value in defaults.items():
            os.environ.setdefault(name, value)


test_settings = TestSettings()
test_settings.export()


@pytest.fixture(scope="session")
def test_config() -> TestSettings:
    """Fixture providing the test configuration."""
    return test_settings


@pytest.fixture(autouse=True)
def _global_offline_http_guard(monkeypatch: pytest.MonkeyPatch):
    allowed_prefixes: Iterable[str] = (
        "http://mock",
        "https://mock",
        "http://localhost",
        "http://127.0.0.1",
        "http://test",
        "/",  # Relative paths used by the ASGI transport
    )

    orig_sync = httpx._client.Client.request
    orig_async = httpx._client.AsyncClient.request

    def _is_allowed(url_str: str) -> bool:
        return any(url_str.startswith(p) for p in allowed_prefixes)

    def offline_sync(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return orig_sync(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard: {url_str}")

    async def offline_async(self, method, url, *args, **kwargs):
        url_str = str(url)
        if _is_allowed(url_str):
            return await orig_async(self, method, url, *args, **kwargs)
        raise RuntimeError(f"External HTTP blocked by global offline guard (async): {url_str}")

    monkeypatch.setattr(httpx._client.Client, "request", offline_sync, raising=True)
    monkeypatch.setattr(httpx._client.AsyncClient, "request", offline_async, raising=True)
