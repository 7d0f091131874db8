"""
Service Dependencies.

Annotated dependency aliases for the API endpoints. Overriding the underlying
provider functions in ``app.dependency_overrides`` swaps the collaborator for
every route.
"""

from typing import Annotated

from fastapi import Depends
from openai import AsyncOpenAI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from edify_ai.core.database import get_session, get_session_factory
from edify_ai.server.services.auth import AuthContext, get_auth, require_user
from edify_ai.server.services.billing import BillingService, get_billing_service
from edify_ai.server.services.chat_service import ChatService
from edify_ai.server.services.email import EmailService, get_email_service
from edify_ai.server.services.exchange import ExchangeRateService, get_exchange_service
from edify_ai.server.services.identity import IdentityClient, get_identity_client
from edify_ai.server.services.llm import get_openai_client

SessionDep = Annotated[AsyncSession, Depends(get_session)]
SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
AuthDep = Annotated[AuthContext, Depends(get_auth)]
OpenAIDep = Annotated[AsyncOpenAI, Depends(get_openai_client)]
ExchangeDep = Annotated[ExchangeRateService, Depends(get_exchange_service)]
BillingDep = Annotated[BillingService, Depends(get_billing_service)]
IdentityDep = Annotated[IdentityClient, Depends(get_identity_client)]
EmailDep = Annotated[EmailService, Depends(get_email_service)]


async def current_user(auth: AuthDep) -> AuthContext:
    """The signed-in caller; 401 otherwise."""
    return require_user(auth)


CurrentUser = Annotated[AuthContext, Depends(current_user)]


def get_chat_service(client: OpenAIDep, session_factory: SessionFactoryDep, exchange: ExchangeDep) -> ChatService:
    return ChatService(client, session_factory, exchange)


ChatServiceDep = Annotated[ChatService, Depends(get_chat_service)]
