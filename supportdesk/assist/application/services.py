"""
Assist Application Services
===========================

Orchestrates query shaping, retrieval, the relevance gate and answer
synthesis for one widget message.
"""

import time
from typing import Callable, Iterable, List, Optional, Sequence

from supportdesk.assist.application.retrieval import RetrievalMerger, matches_route
from supportdesk.assist.application.synthesis import AnswerSynthesizer
from supportdesk.assist.domain.entities import (
    AnswerResult, ConversationTurn, GateResult, Query, RetrievalHit
)
from supportdesk.assist.domain.query import (
    KB_DOCUMENT_PREFIX, extract_conversation_context, normalize_doc_id,
    normalize_query, strip_question_fluff
)
from supportdesk.assist.domain.relevance import (
    check_relevance_gate, compute_lexical_score, gate_thresholds
)
from supportdesk.config import GateReason
from supportdesk.config.rules import SynonymRule
from supportdesk.core import (
    ResourceNotFoundException, SearchIndexException,
    ServiceUnavailableException, ValidationException
)
from supportdesk.infrastructure.search import ISearchIndex
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SOURCE_LIMIT = 5
DOCUMENT_FIELDS = ["id", "title", "summary", "stepsText", "triggersText"]


def build_query(message: str, history: Optional[Sequence[ConversationTurn]] = None) -> Query:
    q1 = normalize_query(message)
    return Query(
        raw=message,
        q1=q1,
        q2=strip_question_fluff(q1),
        q_context=extract_conversation_context(history, message),
    )


class AnswerService:
    """
    Service for KB-grounded answers.

    Never raises for index or gateway trouble: every degraded path ends in
    a gate result the caller can act on.
    """

    def __init__(
        self,
        retrieval: RetrievalMerger,
        synthesizer: AnswerSynthesizer,
        synonyms_provider: Optional[Callable[[], Iterable[SynonymRule]]] = None
    ):
        self._retrieval = retrieval
        self._synthesizer = synthesizer
        self._synonyms_provider = synonyms_provider or (lambda: ())

    @property
    def llm_enabled(self) -> bool:
        return self._synthesizer.llm_enabled

    def _debug_info(
        self,
        q1: str,
        hits: List[RetrievalHit],
        route: Optional[str],
        gate: GateResult
    ) -> dict:
        return {
            "topHits": [
                {
                    "id": hit.id,
                    "title": hit.title,
                    "_rankingScore": hit.ranking_score,
                    "lexicalScore": compute_lexical_score(q1, hit.searchable_text),
                    "docAppSlug": hit.doc_app_slug,
                    "routesMatched": matches_route(hit, route),
                }
                for hit in hits[:SOURCE_LIMIT]
            ],
            "gateThresholds": gate_thresholds(gate),
        }

    async def answer(
        self,
        app_slug: str,
        message: str,
        route: Optional[str] = None,
        history: Optional[Sequence[ConversationTurn]] = None,
        debug: bool = False
    ) -> AnswerResult:
        """
        Retrieve, gate and (on pass) synthesize.

        Args:
            app_slug: Validated app slug
            message: Raw user message
            route: Resolved route, used only for re-ranking
            history: Prior widget turns (only user turns are read)
            debug: Include top-hit scoring details

        Returns:
            AnswerResult; `gate.reason` is no_hits, weak_match or passed
        """
        start_time = time.perf_counter()
        query = build_query(message, history)

        hits = await self._retrieval.retrieve(
            query,
            app_slug=app_slug,
            route=route,
            synonyms=self._synonyms_provider()
        )

        if not hits:
            logger.info(
                "No KB hits",
                extra={"app_slug": app_slug, "latency_ms": int((time.perf_counter() - start_time) * 1000)}
            )
            return AnswerResult(
                gate=GateResult.no_hits(),
                query=query,
                confidence=0.0,
                llm_enabled=self.llm_enabled,
            )

        best = hits[0]
        gate = check_relevance_gate(query.q1, best)
        sources = [hit.to_source() for hit in hits[:SOURCE_LIMIT]]
        debug_info = self._debug_info(query.q1, hits, route, gate) if debug else None

        if not gate.passed:
            logger.info(
                "Relevance gate failed",
                extra={
                    "app_slug": app_slug,
                    "best_doc_id": best.id,
                    "lexical_score": gate.lexical_score,
                    "ranking_score": gate.ranking_score,
                }
            )
            return AnswerResult(
                gate=GateResult(
                    passed=False,
                    reason=GateReason.WEAK_MATCH,
                    lexical_score=gate.lexical_score,
                    ranking_score=gate.ranking_score,
                ),
                query=query,
                sources=sources,
                best_doc_id=best.id,
                confidence=gate.lexical_score or 0.0,
                llm_enabled=self.llm_enabled,
                debug=debug_info,
            )

        answer = await self._synthesizer.synthesize(message, best, history)
        confidence = max(gate.lexical_score or 0.0, gate.ranking_score or 0.0)

        logger.info(
            "KB answer produced",
            extra={
                "app_slug": app_slug,
                "best_doc_id": best.id,
                "confidence": confidence,
                "latency_ms": int((time.perf_counter() - start_time) * 1000),
            }
        )

        return AnswerResult(
            gate=gate,
            query=query,
            sources=sources,
            answer=answer,
            best_doc_id=best.id,
            confidence=confidence,
            llm_enabled=self.llm_enabled,
            debug=debug_info,
        )


class DocumentService:
    """Single-document lookup for related-article links."""

    def __init__(self, search_index: Optional[ISearchIndex]):
        self._index = search_index

    async def get_document(self, raw_id: Optional[str]) -> dict:
        """
        Fetch one published KB article by any accepted id form.

        Raises:
            ValidationException: id missing or malformed
            ServiceUnavailableException: index not configured
            ResourceNotFoundException: no such document
        """
        if not raw_id or not raw_id.strip():
            raise ValidationException("id parameter is required")

        numeric_id = normalize_doc_id(raw_id)
        if numeric_id is None:
            raise ValidationException("invalid id format")

        if self._index is None:
            raise ServiceUnavailableException("Search index not configured")

        document_id = f"{KB_DOCUMENT_PREFIX}{numeric_id}"
        try:
            doc = await self._index.get_document(document_id, fields=DOCUMENT_FIELDS)
        except SearchIndexException as e:
            logger.error("Document fetch failed", extra={"document_id": document_id, "error": str(e)})
            raise ServiceUnavailableException("Search index unavailable")

        if not doc:
            raise ResourceNotFoundException("KB document", document_id)

        result = {
            "id": document_id,
            "title": doc.get("title") or "",
            "summary": doc.get("summary") or "",
        }
        if doc.get("stepsText"):
            result["stepsText"] = doc["stepsText"]
        if doc.get("triggersText"):
            result["triggersText"] = doc["triggersText"]
        return result
