"""
Relevance Gate
==============

Decides whether the best KB hit is close enough to the question to be
shown as an answer. Two independent signals, either one suffices:

- lexical overlap between query tokens and the document text
- the index's own normalized ranking score
"""

import re
from typing import Any, Dict, List, Optional

from supportdesk.assist.domain.entities import GateResult, RetrievalHit
from supportdesk.config import GateReason, LEXICAL_THRESHOLD, RANKING_THRESHOLD

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def tokenize(text: str) -> List[str]:
    """Lowercase alphanumeric tokens of length >= 2."""
    return [t for t in _TOKEN_SPLIT.split(text.lower()) if len(t) >= 2]


def compute_lexical_score(query: str, document_text: str) -> float:
    """
    Fraction of query tokens occurring as substrings of the lowercased document.

    Returns 0.0 for an empty query, an empty document or a query with no
    usable tokens.
    """
    if not query or not document_text:
        return 0.0

    tokens = tokenize(query)
    if not tokens:
        return 0.0

    haystack = document_text.lower()
    matches = sum(1 for t in tokens if t in haystack)
    return matches / len(tokens)


def check_relevance_gate(query: str, top_hit: Optional[RetrievalHit]) -> GateResult:
    """Gate passes when lexical >= 0.2 or ranking >= 0.4 (both inclusive)."""
    if top_hit is None:
        return GateResult.no_hits()

    lexical = compute_lexical_score(query, top_hit.searchable_text)
    ranking = top_hit.ranking_score

    lexical_passed = lexical >= LEXICAL_THRESHOLD
    ranking_passed = ranking is not None and ranking >= RANKING_THRESHOLD

    return GateResult(
        passed=lexical_passed or ranking_passed,
        reason=GateReason.PASSED if (lexical_passed or ranking_passed) else GateReason.WEAK_MATCH,
        lexical_score=lexical,
        ranking_score=ranking,
    )


def gate_thresholds(gate: GateResult) -> Dict[str, Any]:
    """Threshold block for debug output."""
    ranking = gate.ranking_score
    return {
        "lexicalThreshold": LEXICAL_THRESHOLD,
        "rankingThreshold": RANKING_THRESHOLD,
        "lexicalPassed": (gate.lexical_score or 0.0) >= LEXICAL_THRESHOLD,
        "rankingPassed": ranking is not None and ranking >= RANKING_THRESHOLD,
    }
