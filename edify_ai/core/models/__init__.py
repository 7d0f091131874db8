"""Shared value models."""

from .chat import ChatMessage, EditHistoryEntry, MessageRole, ResponseHistoryEntry
from .content_flags import FLAG_NAMES, VIOLATION_LABELS, ContentFlags, violation_labels

__all__ = [
    "FLAG_NAMES",
    "VIOLATION_LABELS",
    "ChatMessage",
    "ContentFlags",
    "EditHistoryEntry",
    "MessageRole",
    "ResponseHistoryEntry",
    "violation_labels",
]
