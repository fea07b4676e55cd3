"""
Assist Domain Entities
======================

Plain business objects for KB retrieval and answering.

Serialization helpers emit the camelCase keys the support widget reads
(`queryUsed`, `lexicalScore`, `bestDocId`).
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from supportdesk.config import GateReason


@dataclass(frozen=True)
class ConversationTurn:
    """One prior message in the widget conversation."""
    role: str       # "user" or "assistant"
    content: str

    @property
    def is_user(self) -> bool:
        return self.role == "user"


@dataclass
class Query:
    """
    The query variants derived from one user message.

    q1 is always searched; q2 only when fluff stripping changed it; q_context
    when history produced one; q3 only after a zero-hit synonym rescue.
    """
    raw: str
    q1: str
    q2: str
    q_context: Optional[str] = None
    q3: Optional[str] = None

    @property
    def search_queries(self) -> List[str]:
        queries = [self.q1]
        if self.q2 and self.q2 != self.q1:
            queries.append(self.q2)
        if self.q_context:
            queries.append(self.q_context)
        return queries

    def to_dict(self) -> Dict[str, str]:
        used = {"q1": self.q1}
        if self.q2 and self.q2 != self.q1:
            used["q2"] = self.q2
        if self.q_context:
            used["qContext"] = self.q_context
        if self.q3:
            used["q3"] = self.q3
        return used


@dataclass
class RetrievalHit:
    """A KB document returned by the index for one of the queries."""
    id: str
    type: str = ""
    title: str = ""
    summary: str = ""
    body_text: str = ""
    steps_text: str = ""
    triggers_text: str = ""
    routes: List[str] = field(default_factory=list)
    doc_app_slug: str = ""
    ranking_score: Optional[float] = None

    @classmethod
    def from_index(cls, raw: Dict[str, Any]) -> "RetrievalHit":
        """Build from a raw index hit, tolerating missing or odd-typed fields."""
        score = raw.get("_rankingScore")
        routes = raw.get("routes")
        return cls(
            id=str(raw.get("id") or ""),
            type=str(raw.get("type") or ""),
            title=str(raw.get("title") or ""),
            summary=str(raw.get("summary") or ""),
            body_text=str(raw.get("bodyText") or ""),
            steps_text=str(raw.get("stepsText") or ""),
            triggers_text=str(raw.get("triggersText") or ""),
            routes=[str(r) for r in routes] if isinstance(routes, list) else [],
            doc_app_slug=str(raw.get("appSlug") or ""),
            ranking_score=float(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
        )

    @property
    def searchable_text(self) -> str:
        return " ".join([self.title, self.summary, self.body_text, self.steps_text, self.triggers_text])

    @property
    def content_length(self) -> int:
        return len(self.body_text) + len(self.steps_text)

    @property
    def effective_score(self) -> float:
        return self.ranking_score if self.ranking_score is not None else 0.0

    def to_source(self) -> Dict[str, str]:
        return {"id": self.id, "type": self.type, "title": self.title, "summary": self.summary}


@dataclass
class GateResult:
    """Relevance gate decision for the top hit."""
    passed: bool
    reason: str
    lexical_score: Optional[float] = None
    ranking_score: Optional[float] = None

    @classmethod
    def no_hits(cls) -> "GateResult":
        return cls(passed=False, reason=GateReason.NO_HITS)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"passed": self.passed, "reason": self.reason}
        if self.lexical_score is not None:
            data["lexicalScore"] = self.lexical_score
        if self.ranking_score is not None:
            data["rankingScore"] = self.ranking_score
        return data


@dataclass
class AnswerResult:
    """Outcome of the retrieve, gate and synthesize pipeline."""
    gate: GateResult
    query: Query
    sources: List[Dict[str, str]] = field(default_factory=list)
    answer: Optional[str] = None
    best_doc_id: Optional[str] = None
    confidence: float = 0.0
    llm_enabled: bool = False
    debug: Optional[Dict[str, Any]] = None

    @property
    def resolved(self) -> bool:
        """True when the gate passed and some answer text exists."""
        return self.gate.passed and bool(self.answer)
