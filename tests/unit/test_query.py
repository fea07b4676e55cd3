"""Unit tests for query shaping and route helpers."""

import pytest

from supportdesk.assist.domain import (
    ConversationTurn,
    extract_conversation_context,
    is_safe_app_slug,
    normalize_doc_id,
    normalize_query,
    resolve_route,
    route_matches_pattern,
    strip_question_fluff,
    synonym_fallback_query,
)
from supportdesk.config.rules import DEFAULT_SYNONYMS, SynonymRule


class TestNormalizeQuery:

    @pytest.mark.unit
    def test_collapses_whitespace_and_strips_marker(self):
        """Whitespace runs collapse and a follow-up marker is dropped."""
        assert normalize_query("  follow-up:  how   do I\treset ") == "how do I reset"

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", [
        "  Follow up:   export   PDF ",
        "followup: followup: billing",
        "plain question",
        "",
    ])
    def test_idempotent(self, raw):
        """Normalizing twice changes nothing."""
        once = normalize_query(raw)
        assert normalize_query(once) == once

    @pytest.mark.unit
    def test_empty_input(self):
        assert normalize_query("") == ""


class TestStripQuestionFluff:

    @pytest.mark.unit
    def test_removes_interrogative_lead_in(self):
        assert strip_question_fluff("How do I reset my password?") == "reset my password?"

    @pytest.mark.unit
    def test_keeps_input_when_too_short_after_stripping(self):
        """A bare "how do i" would leave one character, so it is kept."""
        assert strip_question_fluff("how do i") == "how do i"


class TestConversationContext:

    @pytest.mark.unit
    def test_uses_only_user_turns(self):
        """Assistant text never reaches the context query."""
        history = [
            ConversationTurn("user", "I can't log in to my account"),
            ConversationTurn("assistant", "Have you tried resetting your password?"),
            ConversationTurn("user", "yes"),
        ]

        context = extract_conversation_context(history, "still broken")

        assert context == "I can't log in to my account still broken"
        assert "resetting" not in context

    @pytest.mark.unit
    def test_long_message_joins_recent_user_turns(self):
        history = [
            ConversationTurn("user", "export to PDF fails"),
            ConversationTurn("user", "on the resume page"),
        ]
        message = "I already tried a different browser and it still fails"

        assert extract_conversation_context(history, message) == "export to PDF fails on the resume page"

    @pytest.mark.unit
    def test_only_last_three_user_turns(self):
        history = [ConversationTurn("user", f"question number {i}") for i in range(5)]
        context = extract_conversation_context(history, "x" * 40)
        assert context == "question number 2 question number 3 question number 4"

    @pytest.mark.unit
    @pytest.mark.parametrize("history", [
        None,
        [],
        [ConversationTurn("assistant", "How can I help?")],
        [ConversationTurn("user", "ok")],
    ])
    def test_no_usable_history(self, history):
        assert extract_conversation_context(history, "help") is None


class TestSynonymFallback:

    @pytest.mark.unit
    def test_first_matching_rule_wins(self):
        assert synonym_fallback_query(
            "I am not getting interviews at all", DEFAULT_SYNONYMS
        ) == "ATS resume rejected applicant tracking"

    @pytest.mark.unit
    def test_case_insensitive(self):
        assert synonym_fallback_query("Is the RESET LINK still valid?", DEFAULT_SYNONYMS) == "reset password forgot"

    @pytest.mark.unit
    def test_no_match(self):
        assert synonym_fallback_query("dark mode", DEFAULT_SYNONYMS) is None

    @pytest.mark.unit
    def test_custom_table_order(self):
        rules = [
            SynonymRule(phrases=["invoice"], query="billing invoices"),
            SynonymRule(phrases=["invoice pdf"], query="export invoice"),
        ]
        assert synonym_fallback_query("where is my invoice pdf", rules) == "billing invoices"


class TestRoutes:

    @pytest.mark.unit
    @pytest.mark.parametrize("pattern, route, expected", [
        ("/resume/export", "/resume/export", True),
        ("/resume/*", "/resume/export", True),
        ("/resume/*", "/billing", False),
        ("/resume", "/resume/export", False),
        ("", "/resume", False),
    ])
    def test_route_matches_pattern(self, pattern, route, expected):
        assert route_matches_pattern(pattern, route) is expected

    @pytest.mark.unit
    def test_explicit_route_wins(self):
        assert resolve_route(" /settings ", "https://app.example.com/billing") == "/settings"

    @pytest.mark.unit
    def test_page_url_path(self):
        assert resolve_route(None, "https://app.example.com/resume/export?tab=pdf") == "/resume/export"

    @pytest.mark.unit
    def test_referer_used_when_page_url_has_no_path(self):
        assert resolve_route(
            None, "https://app.example.com/", "https://app.example.com/billing/plans"
        ) == "/billing/plans"

    @pytest.mark.unit
    def test_unparseable_urls(self):
        assert resolve_route(None, "not a url", None) is None


class TestIdentifiers:

    @pytest.mark.unit
    @pytest.mark.parametrize("slug, expected", [
        ("resume-coach", True),
        ("*", True),
        ("Resume Coach", False),
        ("resume_coach", False),
    ])
    def test_app_slug(self, slug, expected):
        assert is_safe_app_slug(slug) is expected

    @pytest.mark.unit
    @pytest.mark.parametrize("raw, expected", [
        ("29", 29),
        ("support_kb_articles_29", 29),
        ("support_kb_articles:29", 29),
        ("abc", None),
        ("", None),
    ])
    def test_normalize_doc_id(self, raw, expected):
        assert normalize_doc_id(raw) == expected
