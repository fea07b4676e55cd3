"""
Assist Domain Layer
===================

Domain layer for KB answering.

Contains:
- Entities: Query, RetrievalHit, GateResult, AnswerResult, ConversationTurn
- Query shaping: normalization, fluff stripping, context extraction, routes
- Relevance: lexical score and the relevance gate

This layer is framework-agnostic and contains pure business logic.
"""

from supportdesk.assist.domain.entities import (
    AnswerResult,
    ConversationTurn,
    GateResult,
    Query,
    RetrievalHit,
)
from supportdesk.assist.domain.query import (
    extract_conversation_context,
    is_safe_app_slug,
    normalize_doc_id,
    normalize_query,
    resolve_route,
    route_matches_pattern,
    strip_question_fluff,
    synonym_fallback_query,
)
from supportdesk.assist.domain.relevance import check_relevance_gate, compute_lexical_score

__all__ = [
    "AnswerResult",
    "ConversationTurn",
    "GateResult",
    "Query",
    "RetrievalHit",
    "extract_conversation_context",
    "is_safe_app_slug",
    "normalize_doc_id",
    "normalize_query",
    "resolve_route",
    "route_matches_pattern",
    "strip_question_fluff",
    "synonym_fallback_query",
    "check_relevance_gate",
    "compute_lexical_score",
]
