"""
Unit tests for content screening.

This test suite covers:
- Chat screening with the ten detectors
- Widening of content_violation for critical categories
- Tool screening over the moderation endpoint and six detectors
- User-facing violation messages
"""

import pytest

from edify_ai.core.models.content_flags import ContentFlags
from edify_ai.server.services.content_safety import (
    CHAT_DETECTORS,
    CHAT_VIOLATION_MESSAGES,
    GENERIC_VIOLATION_MESSAGE,
    TOOL_DETECTORS,
    map_moderation_categories,
    moderation_check,
    perform_content_checks,
    screen_chat_message,
    violation_message,
)


class TestScreenChatMessage:
    @pytest.mark.asyncio
    async def test_clean_message(self, openai_fake):
        flags = await screen_chat_message(openai_fake, "What is photosynthesis?")

        assert flags.any() is False
        assert len(openai_fake.completions.calls) == len(CHAT_DETECTORS) == 10

    @pytest.mark.asyncio
    async def test_detector_question_includes_input(self, openai_fake):
        await screen_chat_message(openai_fake, "What is photosynthesis?")

        questions = [call["messages"][1]["content"] for call in openai_fake.completions.calls]
        assert 'Does this contain PII? "What is photosynthesis?"' in questions
        assert all(call["temperature"] == 0 for call in openai_fake.completions.calls)

    @pytest.mark.asyncio
    async def test_pii_does_not_widen_content_violation(self, openai_fake):
        openai_fake.completions.flag(CHAT_DETECTORS["pii_detected"])

        flags = await screen_chat_message(openai_fake, "My card is 4111 1111 1111 1111")

        assert flags.active() == ["pii_detected"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "detector",
        [
            "bias_detected",
            "misinformation_detected",
            "self_harm_detected",
            "extremist_content_detected",
            "child_safety_violation",
        ],
    )
    async def test_critical_categories_widen_content_violation(self, openai_fake, detector):
        openai_fake.completions.flag(CHAT_DETECTORS[detector])

        flags = await screen_chat_message(openai_fake, "text")

        assert getattr(flags, detector) is True
        assert flags.content_violation is True

    @pytest.mark.asyncio
    async def test_detector_failure_propagates(self, openai_fake):
        openai_fake.completions.detector_error = RuntimeError("provider down")

        with pytest.raises(RuntimeError, match="provider down"):
            await screen_chat_message(openai_fake, "text")


class TestViolationMessage:
    def test_child_safety_comes_first(self):
        flags = ContentFlags(child_safety_violation=True, content_violation=True, prompt_injection_detected=True)
        assert violation_message(flags) == CHAT_VIOLATION_MESSAGES["child_safety_violation"]

    def test_content_violation_before_injection(self):
        flags = ContentFlags(content_violation=True, prompt_injection_detected=True)
        assert violation_message(flags) == CHAT_VIOLATION_MESSAGES["content_violation"]

    def test_prompt_injection(self):
        flags = ContentFlags(prompt_injection_detected=True)
        assert "manipulate AI behavior" in violation_message(flags)

    def test_generic(self):
        assert violation_message(ContentFlags(pii_detected=True)) == GENERIC_VIOLATION_MESSAGE


class TestModeration:
    def test_category_mapping(self):
        flags = map_moderation_categories(True, {"hate": True, "sexual/minors": False})

        assert flags["content_violation"] is True
        assert flags["extremist_content_detected"] is True
        assert flags["bias_detected"] is True
        assert flags["automation_misuse_detected"] is True
        assert flags["child_safety_violation"] is False
        assert flags["pii_detected"] is False

    def test_self_harm_and_minors(self):
        flags = map_moderation_categories(True, {"self-harm": True, "sexual/minors": True})

        assert flags["self_harm_detected"] is True
        assert flags["child_safety_violation"] is True
        assert flags["extremist_content_detected"] is False

    @pytest.mark.asyncio
    async def test_moderation_check(self, openai_fake):
        openai_fake.moderations.flagged = True
        openai_fake.moderations.categories = {"violence": True}

        flags = await moderation_check(openai_fake, "text")

        assert flags["content_violation"] is True
        assert flags["automation_misuse_detected"] is True

    @pytest.mark.asyncio
    async def test_moderation_failure_returns_no_flags(self, openai_fake):
        openai_fake.moderations.fail_with = RuntimeError("moderation down")

        assert await moderation_check(openai_fake, "text") == {}


class TestPerformContentChecks:
    @pytest.mark.asyncio
    async def test_clean_input_may_proceed(self, openai_fake):
        result = await perform_content_checks(openai_fake, "Photosynthesis")

        assert result.should_proceed is True
        assert result.flags.any() is False
        assert len(openai_fake.completions.calls) == len(TOOL_DETECTORS) == 6

    @pytest.mark.asyncio
    async def test_detector_flag_blocks(self, openai_fake):
        openai_fake.completions.flag(TOOL_DETECTORS["pii_detected"])

        result = await perform_content_checks(openai_fake, "Call Jane on 07700 900123")

        assert result.should_proceed is False
        assert result.flags.active() == ["pii_detected"]

    @pytest.mark.asyncio
    async def test_detector_results_override_moderation(self, openai_fake):
        openai_fake.moderations.flagged = True
        openai_fake.moderations.categories = {"violence": True}

        result = await perform_content_checks(openai_fake, "text")

        assert result.should_proceed is False
        assert result.violations["content_violation"] is True
        assert result.violations["automation_misuse_detected"] is False

    @pytest.mark.asyncio
    async def test_failed_detector_counts_as_clean(self, openai_fake):
        openai_fake.completions.detector_error = RuntimeError("provider down")

        result = await perform_content_checks(openai_fake, "text")

        assert result.should_proceed is True
        assert set(TOOL_DETECTORS) <= set(result.violations)
