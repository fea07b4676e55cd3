"""
Retrieval Merger
================

Runs every query variant against the KB index, merges the hits and
re-ranks them for the requesting app and route.
"""

from typing import Any, Dict, Iterable, List, Optional

from supportdesk.assist.domain.entities import Query, RetrievalHit
from supportdesk.assist.domain.query import route_matches_pattern, synonym_fallback_query
from supportdesk.config.rules import SynonymRule
from supportdesk.core import SearchIndexException
from supportdesk.infrastructure.search import ISearchIndex, KB_ATTRIBUTES, escape_filter_value
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def build_filter(app_slug: str) -> str:
    """Published documents for the app or shared across apps (`*`)."""
    slug = escape_filter_value(app_slug)
    return f'_status = "published" AND (appSlug = "{slug}" OR appSlug = "*")'


def merge_hits(hits: Iterable[RetrievalHit]) -> List[RetrievalHit]:
    """
    Dedupe by id, keeping the best-scored copy.

    A missing score counts as 0; equal scores keep the copy with more
    body + steps text. Hits without an id are dropped. First-seen order
    is kept.
    """
    best: Dict[str, RetrievalHit] = {}
    for hit in hits:
        if not hit.id:
            continue
        current = best.get(hit.id)
        if current is None:
            best[hit.id] = hit
            continue
        if hit.effective_score > current.effective_score:
            best[hit.id] = hit
        elif hit.effective_score == current.effective_score and hit.content_length > current.content_length:
            best[hit.id] = hit
    return list(best.values())


def matches_route(hit: RetrievalHit, route: Optional[str]) -> bool:
    if not route:
        return False
    return any(route_matches_pattern(pattern, route) for pattern in hit.routes)


def rerank(hits: List[RetrievalHit], app_slug: str, route: Optional[str]) -> List[RetrievalHit]:
    """App-specific first, then route matches (when a route is known), then score."""
    def sort_key(hit: RetrievalHit):
        return (
            0 if hit.doc_app_slug == app_slug else 1,
            0 if matches_route(hit, route) else 1,
            -hit.effective_score,
        )

    return sorted(hits, key=sort_key)


class RetrievalMerger:
    """
    Multi-query retrieval against an `ISearchIndex`.

    Index failures never propagate: they are logged and treated as
    no hits, so the caller falls through to ticket creation.
    """

    def __init__(self, search_index: Optional[ISearchIndex], result_limit: int = 8):
        self._index = search_index
        self._limit = result_limit

    @property
    def available(self) -> bool:
        return self._index is not None

    async def _search(self, query: str, filter_expression: str) -> List[RetrievalHit]:
        raw_hits: List[Dict[str, Any]] = await self._index.search(
            query,
            filter_expression=filter_expression,
            limit=self._limit,
            attributes=KB_ATTRIBUTES,
        )
        return [RetrievalHit.from_index(raw) for raw in raw_hits]

    async def retrieve(
        self,
        query: Query,
        app_slug: str,
        route: Optional[str] = None,
        synonyms: Iterable[SynonymRule] = ()
    ) -> List[RetrievalHit]:
        """
        Search all query variants and return merged, re-ranked hits.

        Sets `query.q3` when the synonym fallback was searched.
        """
        if self._index is None:
            return []

        filter_expression = build_filter(app_slug)
        collected: List[RetrievalHit] = []

        try:
            for text in query.search_queries:
                collected.extend(await self._search(text, filter_expression))
        except SearchIndexException as e:
            logger.warning(
                "KB search failed, treating as no hits",
                extra={"app_slug": app_slug, "error": str(e)}
            )
            return []

        hits = merge_hits(collected)

        if not hits:
            q3 = synonym_fallback_query(query.q1, synonyms)
            if q3:
                query.q3 = q3
                try:
                    hits = merge_hits(await self._search(q3, filter_expression))
                except SearchIndexException as e:
                    logger.warning(
                        "Synonym fallback search failed",
                        extra={"app_slug": app_slug, "error": str(e)}
                    )
                    return []

        return rerank(hits, app_slug, route)
