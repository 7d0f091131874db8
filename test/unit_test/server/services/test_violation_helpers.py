"""
Unit tests for the moderation and violation helpers.

This test suite covers:
- Role classification for the moderation workflow
- Display names of mirrored users
- Violation summaries for moderation emails
- Day parsing for date range filters
- Prompt input lookup across tool result tables
"""

from datetime import datetime, timezone

import pytest

from edify_ai.server.services.violations import (
    ModerationRole,
    display_username,
    fetch_prompt_input,
    get_chat_title,
    moderation_role,
    parse_day,
    summarize_violations,
)


class TestModerationRole:
    @pytest.mark.parametrize(
        ("org_role", "expected"),
        [
            ("moderator", ModerationRole.MODERATOR),
            ("org:moderator", ModerationRole.MODERATOR),
            ("org:admin", ModerationRole.ADMIN),
            ("org:educator", ModerationRole.EDUCATOR),
            ("basic", ModerationRole.EDUCATOR),
            ("org:member", None),
            (None, None),
        ],
    )
    def test_classification(self, org_role, expected):
        assert moderation_role(org_role) is expected


class TestDisplayUsername:
    def test_suffix_is_stripped(self):
        assert display_username("alice_lice01") == "alice"

    def test_only_last_suffix_is_stripped(self):
        assert display_username("mary_jane_e12345") == "mary_jane"

    def test_plain_name_is_kept(self):
        assert display_username("alice") == "alice"

    def test_missing_name(self):
        assert display_username(None) == "Unknown"


class TestSummarizeViolations:
    def test_types_and_severities(self):
        summary = summarize_violations(
            {
                "pii_detected": True,
                "child_safety_violation": True,
                "self_harm_detected": True,
                "prompt_injection_detected": True,
                "bias_detected": False,
            }
        )

        assert summary == [
            {"type": "Pii", "severity": "high"},
            {"type": "Child Safety", "severity": "critical"},
            {"type": "Self Harm", "severity": "medium"},
            {"type": "Prompt Injection", "severity": "high"},
        ]

    def test_extremist_content_is_critical(self):
        assert summarize_violations({"extremist_content_detected": True}) == [
            {"type": "Extremist Content", "severity": "critical"}
        ]

    def test_non_boolean_values_are_ignored(self):
        assert summarize_violations({"moderator_approval": "approved", "pii_detected": 1}) == []

    def test_no_flags(self):
        assert summarize_violations(None) == []


class TestParseDay:
    def test_start_of_day(self):
        assert parse_day("2024-03-05", end=False) == datetime(2024, 3, 5, tzinfo=timezone.utc)

    def test_end_of_day(self):
        assert parse_day("2024-03-05", end=True) == datetime(2024, 3, 5, 23, 59, 59, 999000, tzinfo=timezone.utc)

    def test_iso_timestamp_uses_its_day(self):
        assert parse_day("2024-03-05T10:30:00.000Z", end=False) == datetime(2024, 3, 5, tzinfo=timezone.utc)

    def test_empty_value(self):
        assert parse_day("", end=True) is None

    def test_invalid_value(self):
        with pytest.raises(ValueError):
            parse_day("05/03/2024", end=False)


class TestFetchPromptInput:
    @pytest.mark.asyncio
    async def test_chat_prompt_text(self, seed, session):
        chat_metric = await seed.chat_metric(prompt_text="What is osmosis?")

        assert await fetch_prompt_input(session, "chat", chat_metric.id) == "What is osmosis?"

    @pytest.mark.asyncio
    async def test_empty_input_is_not_available(self, seed, session):
        chat_metric = await seed.chat_metric(prompt_text="")

        assert await fetch_prompt_input(session, "chat", chat_metric.id) == "N/A"

    @pytest.mark.asyncio
    async def test_unknown_prompt_type(self, session):
        assert await fetch_prompt_input(session, "poetry", "any") is None

    @pytest.mark.asyncio
    async def test_missing_tool_table_is_tolerated(self, seed, session):
        # lesson plans are stored by a tool outside this service
        assert await fetch_prompt_input(session, "lesson_plan", "any") is None

        chat_metric = await seed.chat_metric(prompt_text="still usable")
        assert await fetch_prompt_input(session, "chat", chat_metric.id) == "still usable"

    @pytest.mark.asyncio
    async def test_chat_title_falls_back(self, session):
        assert await get_chat_title(session, None) == "Untitled Chat"
        assert await get_chat_title(session, "missing") == "Untitled Chat"
