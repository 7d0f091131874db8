"""
Database repository layer.

Each module wraps the tables of one business area:

- identity: users, organizations, memberships
- subscriptions: billing subscriptions
- waitlist: waitlist entries
- chat: chat sessions and chat metrics
- ai_tools: AI tool metrics, usage and access log
- mcq: MCQ generator results
"""

from .ai_tools import AIToolsMetricRepository, AIToolUsageRepository
from .base import AsyncBaseRepository, QueryBuilder
from .chat import ChatMetricRepository, ChatSessionRepository
from .identity import OrganizationRepository, OrgMemberRepository, UserRepository
from .mcq import MCQResultRepository
from .subscriptions import SubscriptionRepository
from .waitlist import WaitlistRepository

__all__ = [
    "AIToolUsageRepository",
    "AIToolsMetricRepository",
    "AsyncBaseRepository",
    "ChatMetricRepository",
    "ChatSessionRepository",
    "MCQResultRepository",
    "OrgMemberRepository",
    "OrganizationRepository",
    "QueryBuilder",
    "SubscriptionRepository",
    "UserRepository",
    "WaitlistRepository",
]
