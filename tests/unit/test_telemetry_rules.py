"""Unit tests for telemetry abuse checks."""

import pytest

from supportdesk.triage.domain.telemetry import (
    MAX_EVENT_DATA_CHARS, AbuseReason, detect_abuse, is_event_type_allowed
)


def verdict(event_data=None, body_size=100, allowed=True, rate_limited=False, duplicate=False):
    return detect_abuse(
        event_data or {},
        body_size=body_size,
        max_body_size=10240,
        allowed=allowed,
        rate_limited=rate_limited,
        duplicate=duplicate,
    )


class TestDetectAbuse:

    @pytest.mark.unit
    def test_clean_event(self):
        result = verdict({"doc_id": "support_kb_articles_4"})
        assert result.is_abuse is False
        assert result.reason is None

    @pytest.mark.unit
    def test_first_failing_check_wins(self):
        """Allowlist is checked before size, rate limit and duplicates."""
        result = verdict(body_size=20000, allowed=False, rate_limited=True, duplicate=True)
        assert result.reason == AbuseReason.NOT_ALLOWED

    @pytest.mark.unit
    @pytest.mark.parametrize("kwargs, reason", [
        ({"body_size": 20000}, AbuseReason.BODY_TOO_LARGE),
        ({"rate_limited": True, "duplicate": True}, AbuseReason.RATE_LIMITED),
        ({"duplicate": True}, AbuseReason.DUPLICATE),
    ])
    def test_request_level_checks(self, kwargs, reason):
        assert verdict(**kwargs).reason == reason

    @pytest.mark.unit
    def test_oversized_event_data(self):
        result = verdict({"text": "a" * MAX_EVENT_DATA_CHARS})
        assert result.reason == AbuseReason.DATA_TOO_LARGE

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", [
        {"text": "<script>alert(1)</script>"},
        {"href": "javascript:void(0)"},
        {"html": "<img onerror=steal()>"},
    ])
    def test_suspicious_content(self, payload):
        assert verdict(payload).reason == AbuseReason.SUSPICIOUS


class TestAllowlist:

    @pytest.mark.unit
    def test_empty_allows_all(self):
        assert is_event_type_allowed("anything", []) is True

    @pytest.mark.unit
    def test_listed_only(self):
        assert is_event_type_allowed("widget_open", ["widget_open"]) is True
        assert is_event_type_allowed("exfiltrate", ["widget_open"]) is False
