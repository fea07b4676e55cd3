"""
Triage Application DTOs
========================

Data Transfer Objects for the ticket, telemetry, triage report and
operator endpoints.

Pydantic models for request/response validation.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Literal, Optional, Union
from datetime import date, datetime

from supportdesk.assist.application.dto import (
    AnswerTriageInfo, GateInfo, SourceInfo, filter_history, validate_app_slug
)
from supportdesk.assist.domain.entities import AnswerResult, ConversationTurn
from supportdesk.config import Severity, VALID_SEVERITIES


# ========== Type Aliases for Literals ==========
SeverityStr = Literal["low", "medium", "high", "critical"]
TicketStatusStr = Literal["open", "in_progress", "resolved", "closed"]


def _string_or_none(v: Any) -> Optional[str]:
    """Non-string optional fields are ignored rather than rejected."""
    return v if isinstance(v, str) else None


def _trimmed_or_none(v: Any) -> Optional[str]:
    if not isinstance(v, str):
        return None
    return v.strip() or None


# ========== Request DTOs ==========

class TicketRequest(BaseModel):
    """Request model for ticket submission from the widget."""
    app_slug: str = Field(..., description="App the widget is embedded in")
    message: str = Field(..., description="What the user reported")
    severity: SeverityStr = Field(default=Severity.MEDIUM, description="Unknown values become medium")
    page_url: Optional[str] = Field(None, description="Full page URL")
    route: Optional[str] = Field(None, description="Explicit in-app route")
    user_agent: Optional[str] = Field(None, description="Used when the User-Agent header is absent")
    sentry_event_id: Optional[str] = Field(None, description="Linked error-tracker event")
    user_id: Optional[str] = Field(None, description="Caller user id")
    user_email: Optional[str] = Field(None, description="Contact email")
    email: Optional[str] = Field(None, description="Contact email (legacy field)")
    force_ticket: bool = Field(default=False, description="Skip the KB answer attempt")
    details: Dict[str, Any] = Field(default_factory=dict, description="Free-form caller context")
    conversation_history: Optional[List[Any]] = Field(None, description="Prior widget turns")

    @field_validator("app_slug")
    @classmethod
    def check_app_slug(cls, v: str) -> str:
        return validate_app_slug(v)

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("message is required")
        if len(v) > 10000:
            raise ValueError("Message too long (max 10000 characters)")
        return v

    @field_validator("severity", mode="before")
    @classmethod
    def coerce_severity(cls, v: Any) -> str:
        if isinstance(v, str) and v.strip().lower() in VALID_SEVERITIES:
            return v.strip().lower()
        return Severity.MEDIUM

    @field_validator("page_url", "route", "user_agent", "sentry_event_id", "user_id", mode="before")
    @classmethod
    def ignore_non_strings(cls, v: Any) -> Optional[str]:
        return _string_or_none(v)

    @field_validator("user_email", "email", mode="before")
    @classmethod
    def trim_email(cls, v: Any) -> Optional[str]:
        return _trimmed_or_none(v)

    @field_validator("force_ticket", mode="before")
    @classmethod
    def strict_force_flag(cls, v: Any) -> bool:
        return v is True

    @field_validator("details", mode="before")
    @classmethod
    def details_object(cls, v: Any) -> Dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @field_validator("conversation_history")
    @classmethod
    def drop_malformed_turns(cls, v: Optional[List[Any]]) -> Optional[List[Dict[str, str]]]:
        return filter_history(v)

    @property
    def contact_email(self) -> Optional[str]:
        return self.user_email or self.email

    @property
    def is_forced(self) -> bool:
        return self.force_ticket or self.details.get("force_ticket") is True

    @property
    def explicit_route(self) -> Optional[str]:
        if self.route is not None:
            return self.route
        detail_route = self.details.get("route")
        return detail_route if isinstance(detail_route, str) else None

    def history_turns(self) -> Optional[List[ConversationTurn]]:
        if self.conversation_history is None:
            return None
        return [ConversationTurn(role=t["role"], content=t["content"]) for t in self.conversation_history]


class TelemetryRequest(BaseModel):
    """Request model for a widget telemetry event."""
    app_slug: str = Field(..., description="App the widget is embedded in")
    event_type: str = Field(..., description="e.g. widget_open, message_sent, doc_viewed")
    event_data: Dict[str, Any] = Field(default_factory=dict, description="Event payload")
    page_url: Optional[str] = None
    route: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @field_validator("app_slug")
    @classmethod
    def check_app_slug(cls, v: str) -> str:
        return validate_app_slug(v)

    @field_validator("event_type")
    @classmethod
    def validate_event_type(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("event_type is required")
        return v

    @field_validator("event_data", mode="before")
    @classmethod
    def event_data_object(cls, v: Any) -> Dict[str, Any]:
        return v if isinstance(v, dict) else {}

    @field_validator("page_url", "route", "user_id", "session_id", mode="before")
    @classmethod
    def ignore_non_strings(cls, v: Any) -> Optional[str]:
        return _string_or_none(v)


class TicketUpdateRequest(BaseModel):
    """Operator update of one ticket."""
    status: Optional[TicketStatusStr] = None
    internal_notes: Optional[str] = None
    assigned_to: Optional[str] = None

    @property
    def has_updates(self) -> bool:
        return any(v is not None for v in (self.status, self.internal_notes, self.assigned_to))


# ========== Ticket Response DTOs ==========

class AnsweredTicketResponse(BaseModel):
    """The KB resolved the request; no ticket was written."""
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    resolved: Literal[True] = True
    answer: str
    sources: List[SourceInfo] = Field(default_factory=list)
    triage: AnswerTriageInfo
    gate: GateInfo
    query_used: Dict[str, str] = Field(..., alias="queryUsed")
    llm_enabled: bool = Field(..., alias="llmEnabled")

    @classmethod
    def from_result(cls, result: AnswerResult, route: Optional[str] = None) -> "AnsweredTicketResponse":
        return cls(
            answer=result.answer,
            sources=result.sources,
            triage=AnswerTriageInfo(confidence=result.confidence, route=route),
            gate=GateInfo(**result.gate.to_dict()),
            query_used=result.query.to_dict(),
            llm_enabled=result.llm_enabled,
        )


class TicketTriageInfo(BaseModel):
    category: str
    action: str
    reason: str
    forced: bool


class CreatedTicketInfo(BaseModel):
    id: str
    created_at: datetime
    app_slug: str
    severity: SeverityStr
    triage: TicketTriageInfo
    alert_queued: Optional[bool] = None


class CreatedTicketResponse(BaseModel):
    """A ticket was persisted."""
    ok: bool = True
    ticket: CreatedTicketInfo


TicketSubmissionResponse = Union[AnsweredTicketResponse, CreatedTicketResponse]


# ========== Telemetry / Triage Response DTOs ==========

class TelemetryResponse(BaseModel):
    ok: bool = True
    event_id: str
    created_at: datetime
    flagged: Optional[bool] = None
    abuse_reason: Optional[str] = None


class ReportPeriod(BaseModel):
    start: datetime
    end: datetime
    hours: int


class ReportSummary(BaseModel):
    ticket_count: int
    event_count: int
    clusters: Dict[str, Dict[str, Any]]
    suggested_actions: List[Dict[str, Any]]
    ai_summary: Optional[str] = None


class TriageRunResponse(BaseModel):
    """Response model for POST /support/triage."""
    ok: bool = True
    report_id: str
    period: ReportPeriod
    summary: ReportSummary
    slack_posted: bool


# ========== Operator Response DTOs ==========

class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def build(cls, total: int, limit: int, offset: int, returned: int) -> "Pagination":
        return cls(total=total, limit=limit, offset=offset, has_more=offset + returned < total)


class TicketListItem(BaseModel):
    id: str
    created_at: datetime
    app_slug: str
    status: str
    severity: str
    route: Optional[str] = None
    page_url: Optional[str] = None
    category: Optional[str] = None
    user_email: Optional[str] = None
    user_id: Optional[str] = None
    slack_alerted: bool = False
    message_preview: str


class TicketListResponse(BaseModel):
    ok: bool = True
    tickets: List[TicketListItem]
    pagination: Pagination


class TicketDetail(BaseModel):
    id: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    app_slug: str
    status: str
    severity: str
    route: Optional[str] = None
    page_url: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    sentry_event_id: Optional[str] = None
    user_email: Optional[str] = None
    user_id: Optional[str] = None
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    internal_notes: Optional[str] = None
    assigned_to: Optional[str] = None


class TicketDetailResponse(BaseModel):
    ok: bool = True
    ticket: TicketDetail


class TicketUpdateInfo(BaseModel):
    id: str
    status: str
    updated_at: Optional[datetime] = None
    internal_notes: Optional[str] = None
    assigned_to: Optional[str] = None


class TicketUpdateResponse(BaseModel):
    ok: bool = True
    ticket: TicketUpdateInfo


class TriageReportItem(BaseModel):
    id: str
    app_slug: Optional[str] = None
    report_date: date
    period_start: datetime
    period_end: datetime
    ticket_count: int
    event_count: int
    clusters: Dict[str, Any] = Field(default_factory=dict)
    suggested_actions: List[Dict[str, Any]] = Field(default_factory=list)
    ai_summary: Optional[str] = None
    slack_posted: bool = False
    created_at: Optional[datetime] = None


class TriageReportListResponse(BaseModel):
    ok: bool = True
    reports: List[TriageReportItem]
    pagination: Pagination


class EventItem(BaseModel):
    id: str
    app_slug: str
    event_type: str
    event_data: Dict[str, Any] = Field(default_factory=dict)
    page_url: Optional[str] = None
    route: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    is_abuse: bool = False
    abuse_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class EventListResponse(BaseModel):
    ok: bool = True
    events: List[EventItem]
    pagination: Pagination
