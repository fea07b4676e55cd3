"""
Assist Application DTOs
=======================

Pydantic models for the answer and document endpoints.

Response fields use camelCase aliases to match the widget contract.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional

from supportdesk.assist.domain.entities import AnswerResult, ConversationTurn
from supportdesk.assist.domain.query import is_safe_app_slug
from supportdesk.config import GateReason, TriageAction, TriageCategory, TriageReason

VALID_ROLES = ("user", "assistant")

NO_HITS_FALLBACK = "I couldn't find specific documentation for your question."
WEAK_MATCH_FALLBACK = "I found some related content, but it may not fully address your question."
TICKET_SUGGESTION = "Please create a support ticket for further assistance."
EMPTY_ANSWER = "Please see the documentation linked below."


def validate_app_slug(v: str) -> str:
    """Shared app_slug check for every widget request model."""
    v = v.strip()
    if not v:
        raise ValueError("app_slug is required")
    if not is_safe_app_slug(v):
        raise ValueError("Invalid app_slug format")
    return v


def filter_history(v: Optional[List[Any]]) -> Optional[List[Dict[str, str]]]:
    """Drop malformed turns instead of rejecting the request."""
    if v is None:
        return None
    return [
        {"role": item["role"], "content": item["content"]}
        for item in v
        if isinstance(item, dict)
        and isinstance(item.get("role"), str)
        and isinstance(item.get("content"), str)
        and item["role"] in VALID_ROLES
    ]


# ========== Request DTOs ==========

class AnswerRequest(BaseModel):
    """Request model for a KB answer."""
    app_slug: str = Field(..., description="App the widget is embedded in")
    message: str = Field(..., description="User question")
    route: Optional[str] = Field(None, description="Explicit in-app route")
    page_url: Optional[str] = Field(None, description="Full page URL")
    user_id: Optional[str] = Field(None, description="Caller user id")
    conversation_history: Optional[List[Any]] = Field(None, description="Prior widget turns")
    debug: bool = Field(default=False, description="Include scoring details")

    @field_validator("app_slug")
    @classmethod
    def check_app_slug(cls, v: str) -> str:
        return validate_app_slug(v)

    @field_validator("conversation_history")
    @classmethod
    def drop_malformed_turns(cls, v: Optional[List[Any]]) -> Optional[List[Dict[str, str]]]:
        return filter_history(v)

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("message is required")
        if len(v) > 4000:
            raise ValueError("Message too long (max 4000 characters)")
        return v

    def history_turns(self) -> Optional[List[ConversationTurn]]:
        if self.conversation_history is None:
            return None
        return [ConversationTurn(role=t["role"], content=t["content"]) for t in self.conversation_history]


# ========== Response DTOs ==========

class SourceInfo(BaseModel):
    """Top KB document reference."""
    id: str
    type: str
    title: str
    summary: str


class GateInfo(BaseModel):
    """Relevance gate outcome."""
    model_config = ConfigDict(populate_by_name=True)

    passed: bool
    reason: str
    lexical_score: Optional[float] = Field(None, alias="lexicalScore")
    ranking_score: Optional[float] = Field(None, alias="rankingScore")


class AnswerTriageInfo(BaseModel):
    """Triage block reported when the KB resolved the question."""
    category: str = TriageCategory.USER_ERROR
    action: str = TriageAction.ANSWER_NOW
    reason: str = TriageReason.KB_HIT
    confidence: float
    route: Optional[str] = None


class AnswerResponse(BaseModel):
    """Response model for POST /support/answer."""
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    answer: str
    sources: List[SourceInfo] = Field(default_factory=list)
    fallback: Optional[bool] = None
    resolved: Optional[bool] = None
    best_doc_id: Optional[str] = Field(None, alias="bestDocId")
    confidence: Optional[float] = None
    gate: GateInfo
    triage: Optional[AnswerTriageInfo] = None
    query_used: Dict[str, str] = Field(..., alias="queryUsed")
    app_slug: str = Field(..., alias="appSlug")
    route: Optional[str] = None
    user_id: Optional[str] = Field(None, alias="userId")
    llm_enabled: bool = Field(..., alias="llmEnabled")
    debug: Optional[Dict[str, Any]] = None

    @classmethod
    def from_result(
        cls,
        result: AnswerResult,
        app_slug: str,
        route: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> "AnswerResponse":
        common = dict(
            sources=result.sources,
            gate=GateInfo(**result.gate.to_dict()),
            query_used=result.query.to_dict(),
            app_slug=app_slug,
            route=route or None,
            user_id=user_id or None,
            llm_enabled=result.llm_enabled,
            debug=result.debug,
        )

        if not result.gate.passed:
            lead = NO_HITS_FALLBACK if result.gate.reason == GateReason.NO_HITS else WEAK_MATCH_FALLBACK
            return cls(answer=f"{lead} {TICKET_SUGGESTION}", fallback=True, **common)

        return cls(
            answer=result.answer or EMPTY_ANSWER,
            resolved=True,
            best_doc_id=result.best_doc_id,
            confidence=result.confidence,
            triage=AnswerTriageInfo(confidence=result.confidence, route=route),
            **common,
        )


class DocumentInfo(BaseModel):
    """Public fields of one KB document."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    summary: str = ""
    steps_text: Optional[str] = Field(None, alias="stepsText")
    triggers_text: Optional[str] = Field(None, alias="triggersText")


class DocumentResponse(BaseModel):
    """Response model for GET /support/doc."""
    ok: bool = True
    doc: DocumentInfo
