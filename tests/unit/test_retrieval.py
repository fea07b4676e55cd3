"""Unit tests for multi-query retrieval, merge and re-ranking."""

import pytest

from supportdesk.assist.application.retrieval import RetrievalMerger, build_filter, merge_hits, rerank
from supportdesk.assist.application.services import build_query
from supportdesk.assist.domain import ConversationTurn, RetrievalHit
from supportdesk.config.rules import DEFAULT_SYNONYMS
from supportdesk.core import SearchIndexException

from tests.fakes import FakeSearchIndex, kb_hit


class TestMergeHits:

    @pytest.mark.unit
    def test_keeps_best_scored_copy(self):
        """The same document from two queries keeps the higher score."""
        hits = [
            RetrievalHit(id="doc-1", title="first", ranking_score=0.5),
            RetrievalHit(id="doc-2", title="other", ranking_score=0.6),
            RetrievalHit(id="doc-1", title="second", ranking_score=0.7),
        ]

        merged = merge_hits(hits)

        assert [h.id for h in merged] == ["doc-1", "doc-2"]
        assert merged[0].ranking_score == 0.7

    @pytest.mark.unit
    def test_tie_prefers_more_content(self):
        hits = [
            RetrievalHit(id="doc-1", body_text="short", ranking_score=0.5),
            RetrievalHit(id="doc-1", body_text="much longer body", steps_text="1. do it", ranking_score=0.5),
        ]
        assert merge_hits(hits)[0].body_text == "much longer body"

    @pytest.mark.unit
    def test_missing_score_counts_as_zero(self):
        hits = [
            RetrievalHit(id="doc-1", title="unscored"),
            RetrievalHit(id="doc-1", title="scored", ranking_score=0.1),
        ]
        assert merge_hits(hits)[0].title == "scored"

    @pytest.mark.unit
    def test_drops_hits_without_id(self):
        assert merge_hits([RetrievalHit(id="")]) == []


class TestRerank:

    @pytest.mark.unit
    def test_app_specific_before_shared(self):
        hits = [
            RetrievalHit(id="shared", doc_app_slug="*", ranking_score=0.9),
            RetrievalHit(id="own", doc_app_slug="resume-coach", ranking_score=0.5),
        ]
        assert [h.id for h in rerank(hits, "resume-coach", None)] == ["own", "shared"]

    @pytest.mark.unit
    def test_route_match_before_score(self):
        hits = [
            RetrievalHit(id="generic", doc_app_slug="*", ranking_score=0.9),
            RetrievalHit(id="export", doc_app_slug="*", routes=["/resume/*"], ranking_score=0.3),
        ]
        assert [h.id for h in rerank(hits, "resume-coach", "/resume/export")] == ["export", "generic"]

    @pytest.mark.unit
    def test_score_orders_within_group(self):
        hits = [
            RetrievalHit(id="low", doc_app_slug="resume-coach", ranking_score=0.2),
            RetrievalHit(id="high", doc_app_slug="resume-coach", ranking_score=0.8),
        ]
        assert [h.id for h in rerank(hits, "resume-coach", None)] == ["high", "low"]


class TestRetrievalMerger:

    @pytest.mark.unit
    def test_filter_escapes_quotes(self):
        assert build_filter('a"b') == '_status = "published" AND (appSlug = "a\\"b" OR appSlug = "*")'

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_searches_every_variant(self):
        """q1, the fluff-stripped q2 and the context query are all searched."""
        index = FakeSearchIndex(hits=[kb_hit(1, "Reset your password", ranking=0.8)])
        merger = RetrievalMerger(index)
        query = build_query(
            "How do I reset my password?",
            [ConversationTurn("user", "I cannot log in anymore")]
        )

        hits = await merger.retrieve(query, app_slug="resume-coach")

        assert index.queries == [
            "How do I reset my password?",
            "reset my password?",
            "I cannot log in anymore How do I reset my password?",
        ]
        assert len(hits) == 1
        assert query.q3 is None
        assert all('appSlug = "resume-coach"' in f for f in index.filters)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_synonym_fallback_on_zero_hits(self):
        index = FakeSearchIndex(responses={
            "reset password forgot": [kb_hit(3, "Forgot your password", ranking=0.7)],
        })
        merger = RetrievalMerger(index)
        query = build_query("is the reset link still valid")

        hits = await merger.retrieve(query, app_slug="resume-coach", synonyms=DEFAULT_SYNONYMS)

        assert query.q3 == "reset password forgot"
        assert query.to_dict()["q3"] == "reset password forgot"
        assert [h.id for h in hits] == ["support_kb_articles_3"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_fallback_when_hits_found(self):
        index = FakeSearchIndex(hits=[kb_hit(1, "Reset link")])
        query = build_query("reset link expired")

        await RetrievalMerger(index).retrieve(query, app_slug="resume-coach", synonyms=DEFAULT_SYNONYMS)

        assert query.q3 is None
        assert "reset password forgot" not in index.queries

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_index_failure_is_no_hits(self):
        index = FakeSearchIndex(error=SearchIndexException("connection refused"))
        hits = await RetrievalMerger(index).retrieve(build_query("reset password"), app_slug="resume-coach")
        assert hits == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_without_index(self):
        merger = RetrievalMerger(None)
        assert merger.available is False
        assert await merger.retrieve(build_query("reset"), app_slug="resume-coach") == []
