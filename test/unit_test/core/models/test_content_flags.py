"""Unit tests for the content screening flags."""

from edify_ai.core.models.content_flags import FLAG_NAMES, VIOLATION_LABELS, ContentFlags, violation_labels


class TestContentFlags:
    def test_defaults_are_clean(self):
        flags = ContentFlags()

        assert flags.any() is False
        assert flags.active() == []

    def test_from_stored_treats_missing_and_null_as_false(self):
        flags = ContentFlags.from_stored({"pii_detected": True, "bias_detected": None, "moderator_approval": "x"})

        assert flags.active() == ["pii_detected"]
        assert flags.any() is True

    def test_from_stored_without_data(self):
        assert ContentFlags.from_stored(None) == ContentFlags()

    def test_active_follows_flag_order(self):
        flags = ContentFlags(automation_misuse_detected=True, pii_detected=True, child_safety_violation=True)

        assert flags.active() == ["pii_detected", "child_safety_violation", "automation_misuse_detected"]

    def test_every_flag_has_a_label(self):
        assert set(VIOLATION_LABELS) == set(FLAG_NAMES)
        assert len(FLAG_NAMES) == 10


class TestViolationLabels:
    def test_report_order(self):
        labels = violation_labels({"self_harm_detected": True, "pii_detected": True, "content_violation": True})

        assert labels == ["PII Detected", "Content Violation", "Self Harm"]

    def test_restricted_names(self):
        labels = violation_labels(
            {"self_harm_detected": True, "pii_detected": True}, names=("pii_detected", "bias_detected")
        )

        assert labels == ["PII Detected"]

    def test_no_flags(self):
        assert violation_labels(None) == []
