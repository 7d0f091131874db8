"""
Content screening flags.

Every screened prompt produces one ``ContentFlags`` value. It is stored as
JSON on metrics rows and on user chat messages, and drives the moderation
queue and the violation reports.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

FLAG_NAMES: tuple[str, ...] = (
    "pii_detected",
    "bias_detected",
    "content_violation",
    "self_harm_detected",
    "extremist_content_detected",
    "child_safety_violation",
    "prompt_injection_detected",
    "misinformation_detected",
    "fraudulent_intent_detected",
    "automation_misuse_detected",
)

# Display labels in report order
VIOLATION_LABELS: dict[str, str] = {
    "pii_detected": "PII Detected",
    "bias_detected": "Bias Detected",
    "content_violation": "Content Violation",
    "prompt_injection_detected": "Prompt Injection",
    "fraudulent_intent_detected": "Fraudulent Intent",
    "misinformation_detected": "Misinformation",
    "automation_misuse_detected": "Automation Misuse",
    "self_harm_detected": "Self Harm",
    "extremist_content_detected": "Extremist Content",
    "child_safety_violation": "Child Safety",
}


class ContentFlags(BaseModel):
    """Ten boolean screening results, all false by default."""

    model_config = ConfigDict(extra="ignore")

    pii_detected: bool = False
    bias_detected: bool = False
    content_violation: bool = False
    self_harm_detected: bool = False
    extremist_content_detected: bool = False
    child_safety_violation: bool = False
    prompt_injection_detected: bool = False
    misinformation_detected: bool = False
    fraudulent_intent_detected: bool = False
    automation_misuse_detected: bool = False

    @classmethod
    def from_stored(cls, data: Optional[Mapping[str, Any]]) -> "ContentFlags":
        """Build flags from a stored JSON object, treating missing or null values as false."""
        data = data or {}
        return cls(**{name: bool(data.get(name)) for name in FLAG_NAMES})

    def any(self) -> bool:
        return any(getattr(self, name) for name in FLAG_NAMES)

    def active(self) -> list[str]:
        """Names of the flags that are set."""
        return [name for name in FLAG_NAMES if getattr(self, name)]


def violation_labels(flags: Optional[Mapping[str, Any]], names: Optional[tuple[str, ...]] = None) -> list[str]:
    """Human-readable labels of the set flags, in report order.

    Args:
        flags: Stored content flags
        names: Restrict the labels to these flag names

    Returns:
        Labels such as ``"PII Detected"``
    """
    flags = flags or {}
    return [
        label
        for name, label in VIOLATION_LABELS.items()
        if (names is None or name in names) and flags.get(name)
    ]
