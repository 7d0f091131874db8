import hashlib
import hmac
import json
import re
import time
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel.pool import StaticPool
from svix.webhooks import Webhook

from edify_ai.core.database import create_all, create_sessionmaker
from edify_ai.core.database.entities import (
    AIToolsMetric,
    ChatMetric,
    ChatSession,
    Organization,
    OrgMember,
    Subscription,
    User,
)
from edify_ai.server.core.config import settings
from edify_ai.server.services.auth import AuthContext
from edify_ai.server.services.billing import BillingService
from edify_ai.server.services.content_safety import CHAT_DETECTORS, TOOL_DETECTORS
from edify_ai.server.services.email import EmailService
from edify_ai.server.services.exchange import ExchangeRateService
from edify_ai.server.services.identity import IdentityClient

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_GBP_RATE = 0.8

DETECTOR_PROMPTS = {d.system_prompt for d in (*CHAT_DETECTORS.values(), *TOOL_DETECTORS.values())}


# =====================================================================
# OpenAI fake
# =====================================================================


def make_usage(prompt_tokens: int, completion_tokens: int) -> SimpleNamespace:
    return SimpleNamespace(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )


def make_completion(content: Optional[str], usage: Optional[SimpleNamespace] = None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage or make_usage(10, 5),
    )


def make_chunk(content: Optional[str] = None, usage: Optional[SimpleNamespace] = None) -> SimpleNamespace:
    choices = [SimpleNamespace(delta=SimpleNamespace(content=content))] if content is not None else []
    return SimpleNamespace(choices=choices, usage=usage)


class FakeStream:
    """Async iterator of completion chunks, ending with a usage-only chunk."""

    def __init__(self, tokens: List[str], usage: Optional[SimpleNamespace], error: Optional[Exception] = None):
        self.tokens = tokens
        self.usage = usage
        self.error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for token in self.tokens:
            yield make_chunk(token)
        if self.error is not None:
            raise self.error
        if self.usage is not None:
            yield make_chunk(usage=self.usage)


class FakeChatCompletions:
    """
    Stand-in for ``client.chat.completions``.

    Detector prompts answer "false" unless their system prompt is listed in
    ``flagged_prompts``. Question batches and topic summaries answer with
    valid JSON; everything else answers with ``reply``.
    """

    def __init__(self) -> None:
        self.flagged_prompts: set = set()
        self.reply = "Photosynthesis Basics"
        self.stream_tokens = ["Plants ", "make ", "food."]
        self.stream_usage: Optional[SimpleNamespace] = make_usage(120, 30)
        self.stream_error: Optional[Exception] = None
        self.fail_with: Optional[Exception] = None
        self.detector_error: Optional[Exception] = None
        self.summary_topic = "Photosynthesis"
        self.duplicate_questions = False
        self.calls: List[Dict[str, Any]] = []
        self._question_number = 0

    def flag(self, *detectors) -> None:
        for detector in detectors:
            self.flagged_prompts.add(detector.system_prompt)

    def _question(self) -> Dict[str, Any]:
        self._question_number += 1
        n = 1 if self.duplicate_questions else self._question_number
        return {
            "text": f"Which pigment absorbs light in experiment {n} of the photosynthesis unit?",
            "options": [
                {"text": "Chlorophyll", "isCorrect": True},
                {"text": "Keratin", "isCorrect": False},
            ],
            "explanation": "Chlorophyll absorbs light energy.",
            "taxonomyLevel": "remember",
        }

    async def create(self, *, model: str, messages: List[Dict[str, str]], stream: bool = False, **kwargs):
        self.calls.append({"model": model, "messages": messages, "stream": stream, **kwargs})
        system = messages[0]["content"] if messages and messages[0]["role"] == "system" else ""

        if system in DETECTOR_PROMPTS:
            if self.detector_error is not None:
                raise self.detector_error
            return make_completion("true" if system in self.flagged_prompts else "false", make_usage(40, 1))
        if self.fail_with is not None:
            raise self.fail_with
        if stream:
            return FakeStream(list(self.stream_tokens), self.stream_usage, self.stream_error)
        if system.startswith("You are an educational assessment expert"):
            size = int(re.search(r"Generate exactly (\d+) questions", system).group(1))
            body = {"data": {"questions": [self._question() for _ in range(size)]}}
            return make_completion(json.dumps(body), make_usage(200, 400))
        if system.startswith("You are a text summarizer"):
            return make_completion(json.dumps({"topic": self.summary_topic}), make_usage(50, 10))
        return make_completion(self.reply)

    @property
    def batch_calls(self) -> List[Dict[str, Any]]:
        return [
            c
            for c in self.calls
            if c["messages"][0]["content"].startswith("You are an educational assessment expert")
        ]


class FakeCategories:
    def __init__(self, values: Dict[str, bool]) -> None:
        self.values = values

    def model_dump(self, by_alias: bool = False) -> Dict[str, bool]:
        return dict(self.values)


class FakeModerations:
    def __init__(self) -> None:
        self.flagged = False
        self.categories: Dict[str, bool] = {}
        self.fail_with: Optional[Exception] = None

    async def create(self, *, input: str):
        if self.fail_with is not None:
            raise self.fail_with
        result = SimpleNamespace(flagged=self.flagged, categories=FakeCategories(self.categories))
        return SimpleNamespace(results=[result])


class FakeOpenAI:
    def __init__(self) -> None:
        self.completions = FakeChatCompletions()
        self.chat = SimpleNamespace(completions=self.completions)
        self.moderations = FakeModerations()


# =====================================================================
# Billing fake
# =====================================================================


class FakeBilling(BillingService):
    """Real webhook verification; checkout, portal and plan calls are recorded."""

    def __init__(self, webhook_secret: Optional[str]) -> None:
        super().__init__("sk_test_edify", webhook_secret)
        self.product_names = {"prod_pro": "Edify Pro"}
        self.checkout_calls: List[Dict[str, Any]] = []
        self.portal_calls: List[tuple] = []
        self.error: Optional[Exception] = None
        self.plans = [
            {
                "id": "price_monthly",
                "name": "Edify Pro",
                "description": "All AI tools",
                "price": 999,
                "interval": "month",
                "price_id": "price_monthly",
            }
        ]

    async def create_checkout_session(self, **kwargs) -> str:
        if self.error is not None:
            raise self.error
        self.checkout_calls.append(kwargs)
        return "cs_test_123"

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        if self.error is not None:
            raise self.error
        self.portal_calls.append((customer_id, return_url))
        return "https://billing.stripe.com/p/session/test_123"

    async def list_plans(self) -> List[Dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return self.plans

    async def get_product_name(self, product_id: str) -> str:
        return self.product_names.get(product_id, "Unknown Plan")


# =====================================================================
# Auth and seeding helpers
# =====================================================================


class AuthState:
    """The identity every request in a test runs as."""

    def __init__(self) -> None:
        self.context = AuthContext()

    def sign_in(self, user_id: str = "user_alice01", org_id: Optional[str] = None, org_role: Optional[str] = None):
        self.context = AuthContext(user_id=user_id, org_id=org_id, org_role=org_role)
        return self.context

    def sign_out(self) -> None:
        self.context = AuthContext()


class Seeder:
    """Inserts rows for a test through the shared session."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, entity):
        self.session.add(entity)
        await self.session.commit()
        await self.session.refresh(entity)
        return entity

    async def user(self, user_id: str = "user_alice01", **values) -> User:
        values.setdefault("email", f"{user_id}@school.test")
        values.setdefault("username", f"{user_id.split('_')[-1]}_{user_id[-6:]}")
        return await self.add(User(id=user_id, **values))

    async def organization(self, org_id: str = "org_school01", **values) -> Organization:
        values.setdefault("name", "Hillside Academy")
        return await self.add(Organization(id=org_id, **values))

    async def member(self, org_id: str, user_id: str, role: str = "member") -> OrgMember:
        return await self.add(OrgMember(org_id=org_id, user_id=user_id, role=role))

    async def chat_session(self, user_id: str = "user_alice01", **values) -> ChatSession:
        return await self.add(ChatSession(user_id=user_id, **values))

    async def chat_metric(self, user_id: str = "user_alice01", **values) -> ChatMetric:
        values.setdefault("model", "gpt-4-turbo-preview")
        return await self.add(ChatMetric(user_id=user_id, **values))

    async def metric(self, user_id: str = "user_alice01", **values) -> AIToolsMetric:
        values.setdefault("model", "gpt-4o")
        return await self.add(AIToolsMetric(user_id=user_id, **values))

    async def flagged_chat(
        self, user_id: str = "user_alice01", prompt_text: str = "My card number is 4111 1111 1111 1111", **values
    ) -> AIToolsMetric:
        """A blocked chat prompt and its moderation queue row."""
        flags = {"pii_detected": True, "content_violation": False}
        chat_metric = await self.chat_metric(user_id, prompt_text=prompt_text, content_flags=flags)
        return await self.metric(
            user_id,
            model="gpt-4-turbo-preview",
            prompt_id=chat_metric.id,
            prompt_type="chat",
            content_flags=flags,
            flagged=True,
            **values,
        )

    async def subscription(self, **values) -> Subscription:
        values.setdefault("stripe_subscription_id", "sub_test_123")
        return await self.add(Subscription(**values))


# =====================================================================
# Fixtures
# =====================================================================


@pytest_asyncio.fixture
async def engine():
    """A fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_sessionmaker(engine)


@pytest_asyncio.fixture(name="session")
async def session_fixture(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(session: AsyncSession) -> Seeder:
    return Seeder(session)


@pytest.fixture
def openai_fake() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def exchange() -> ExchangeRateService:
    """Exchange service with a fresh cached rate, so no rate is fetched."""
    service = ExchangeRateService("http://mock/rates", ttl_seconds=3600, fallback_rate=0.79)
    service._rate = TEST_GBP_RATE
    service._fetched_at = time.monotonic()
    return service


@pytest.fixture
def billing() -> FakeBilling:
    return FakeBilling(settings.stripe.webhook_secret)


@pytest.fixture
def identity() -> AsyncMock:
    return AsyncMock(spec=IdentityClient)


@pytest.fixture
def email() -> AsyncMock:
    return AsyncMock(spec=EmailService)


@pytest.fixture
def auth() -> AuthState:
    return AuthState()


@pytest.fixture
def sign_stripe() -> Callable[[str], str]:
    """Build a ``stripe-signature`` header for a payload."""

    def _sign(payload: str, secret: Optional[str] = None, timestamp: Optional[int] = None) -> str:
        secret = secret or settings.stripe.webhook_secret
        timestamp = timestamp or int(time.time())
        signature = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={signature}"

    return _sign


@pytest.fixture
def sign_svix() -> Callable[[str, str], Dict[str, str]]:
    """Build Svix signature headers for a payload."""

    def _sign(payload: str, secret: str, msg_id: str = "msg_test_1") -> Dict[str, str]:
        now = datetime.now(timezone.utc)
        signature = Webhook(secret).sign(msg_id, now, payload)
        return {
            "svix-id": msg_id,
            "svix-timestamp": str(int(now.timestamp())),
            "svix-signature": signature,
            "content-type": "application/json",
        }

    return _sign


@pytest_asyncio.fixture(name="client")
async def client_fixture(
    session: AsyncSession,
    session_factory,
    openai_fake: FakeOpenAI,
    exchange: ExchangeRateService,
    billing: FakeBilling,
    identity: AsyncMock,
    email: AsyncMock,
    auth: AuthState,
) -> AsyncGenerator[AsyncClient, None]:
    """An async HTTP client with every external collaborator replaced."""
    from sse_starlette.sse import AppStatus

    from edify_ai.core.database import get_session, get_session_factory
    from edify_ai.server.main import app
    from edify_ai.server.services.auth import get_auth
    from edify_ai.server.services.billing import get_billing_service
    from edify_ai.server.services.email import get_email_service
    from edify_ai.server.services.exchange import get_exchange_service
    from edify_ai.server.services.identity import get_identity_client
    from edify_ai.server.services.llm import get_openai_client

    async def get_session_override() -> AsyncGenerator[AsyncSession, None]:
        yield session

    async def get_auth_override() -> AuthContext:
        return auth.context

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_auth] = get_auth_override
    app.dependency_overrides[get_openai_client] = lambda: openai_fake
    app.dependency_overrides[get_exchange_service] = lambda: exchange
    app.dependency_overrides[get_billing_service] = lambda: billing
    app.dependency_overrides[get_identity_client] = lambda: identity
    app.dependency_overrides[get_email_service] = lambda: email

    # The exit event is bound to the loop of the first streaming test otherwise
    AppStatus.should_exit_event = None

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def sse_events(body: str) -> List[Dict[str, Any]]:
    """Decode the JSON payloads of a server-sent event stream."""
    return [json.loads(line[len("data:"):].strip()) for line in body.splitlines() if line.startswith("data:")]


@pytest.fixture
def parse_sse() -> Callable[[str], List[Dict[str, Any]]]:
    return sse_events
