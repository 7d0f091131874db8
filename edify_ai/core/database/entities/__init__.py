"""
Database entities.

Importing this package registers every table on ``Base.metadata``.
"""

from .ai_tools import AIToolsMetric, AIToolUsage, AIUsageLog
from .chat import ChatMetric, ChatSession
from .identity import Organization, OrgMember, User
from .mcq import MCQGeneratorResult
from .subscriptions import Subscription
from .waitlist import WaitlistEntry

__all__ = [
    "AIToolUsage",
    "AIToolsMetric",
    "AIUsageLog",
    "ChatMetric",
    "ChatSession",
    "MCQGeneratorResult",
    "OrgMember",
    "Organization",
    "Subscription",
    "User",
    "WaitlistEntry",
]
