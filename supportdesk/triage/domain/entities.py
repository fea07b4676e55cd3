"""
Triage Domain Entities
======================

Domain entities for the ticket triage module.

Contains pure Python business objects for tickets, telemetry events and
the periodic triage report.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from supportdesk.config import (
    ALERT_SEVERITIES, Severity, TicketStatus,
    TriageAction, TriageCategory
)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


@dataclass
class TriageDecision:
    """
    Outcome of classifying one support request.

    Embedded in the ticket's `details.triage` payload.
    """
    category: str
    action: str
    reason: str
    forced: bool = False
    confidence: float = 0.5
    route: Optional[str] = None
    page_url: Optional[str] = None
    severity: Optional[str] = None

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be between 0 and 1")

    @property
    def creates_ticket(self) -> bool:
        return self.action == TriageAction.CREATE_TICKET

    def to_details(self) -> Dict[str, Any]:
        """Full payload stored under `details.triage`."""
        return {
            "category": self.category,
            "action": self.action,
            "reason": self.reason,
            "route": self.route,
            "page_url": self.page_url,
            "severity": self.severity,
            "forced": self.forced,
            "confidence": self.confidence,
        }

    def to_summary(self) -> Dict[str, Any]:
        """Short form returned to the widget."""
        return {
            "category": self.category,
            "action": self.action,
            "reason": self.reason,
            "forced": self.forced,
        }


@dataclass
class Ticket:
    """
    Support ticket entity.

    Created once per accepted submission and never deleted. `details`
    carries caller context plus the triage payload and, once alerted,
    an `alerted_at` stamp.
    """
    id: Optional[str]
    app_slug: str
    message: str
    severity: str = Severity.MEDIUM
    status: str = TicketStatus.OPEN
    page_url: Optional[str] = None
    route: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    sentry_event_id: Optional[str] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def triage(self) -> Dict[str, Any]:
        triage = self.details.get("triage")
        return triage if isinstance(triage, dict) else {}

    @property
    def category(self) -> str:
        return self.triage.get("category") or TriageCategory.UNKNOWN

    @property
    def alerted_at(self) -> Optional[str]:
        return self.details.get("alerted_at")

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id and not self.user_email

    @property
    def needs_alert(self) -> bool:
        """System failures and high/critical severities alert once."""
        if self.alerted_at:
            return False
        return self.category == TriageCategory.SYSTEM_FAILURE or self.severity in ALERT_SEVERITIES

    @property
    def internal_notes(self) -> Optional[str]:
        return self.details.get("internal_notes")

    @property
    def assigned_to(self) -> Optional[str]:
        return self.details.get("assigned_to")

    def message_preview(self, length: int = 100) -> str:
        return self.message[:length]


@dataclass
class SupportEvent:
    """Widget telemetry event, possibly flagged as abuse."""
    id: Optional[str]
    app_slug: str
    event_type: str
    event_data: Dict[str, Any] = field(default_factory=dict)
    page_url: Optional[str] = None
    route: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    is_abuse: bool = False
    abuse_reason: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class CategoryCluster:
    """Tickets of one triage category within a report window."""
    category: str
    count: int = 0
    examples: List[str] = field(default_factory=list)
    severity_breakdown: Dict[str, int] = field(default_factory=dict)
    top_routes: List[Dict[str, Any]] = field(default_factory=list)
    recent_spike: bool = False
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    @classmethod
    def from_dict(cls, category: str, data: Dict[str, Any]) -> "CategoryCluster":
        return cls(
            category=category,
            count=int(data.get("count", 0)),
            examples=list(data.get("examples") or []),
            severity_breakdown=dict(data.get("severity_breakdown") or {}),
            top_routes=list(data.get("top_routes") or []),
            recent_spike=bool(data.get("recent_spike")),
            first_seen=_parse_timestamp(data.get("first_seen")),
            last_seen=_parse_timestamp(data.get("last_seen")),
        )

    def has_severity(self, severity: str) -> bool:
        return self.severity_breakdown.get(severity, 0) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "count": self.count,
            "examples": self.examples,
            "severity_breakdown": self.severity_breakdown,
            "top_routes": self.top_routes,
            "recent_spike": self.recent_spike,
            "first_seen": self.first_seen.isoformat() if self.first_seen else None,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }


@dataclass
class SuggestedAction:
    """An operator to-do derived from the clusters."""
    id: str
    priority: str
    type: str
    title: str
    description: str
    category: str
    ticket_count: int
    assignee_hint: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SuggestedAction":
        return cls(
            id=data.get("id", ""),
            priority=data.get("priority", ""),
            type=data.get("type", ""),
            title=data.get("title", ""),
            description=data.get("description", ""),
            category=data.get("category", ""),
            ticket_count=int(data.get("ticket_count", 0)),
            assignee_hint=data.get("assignee_hint"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "priority": self.priority,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "ticket_count": self.ticket_count,
            "assignee_hint": self.assignee_hint,
        }


@dataclass
class TriageReport:
    """Aggregated view of tickets over a lookback window."""
    period_start: datetime
    period_end: datetime
    app_slug: Optional[str] = None
    ticket_count: int = 0
    event_count: int = 0
    event_counts: Dict[str, int] = field(default_factory=dict)
    clusters: Dict[str, CategoryCluster] = field(default_factory=dict)
    suggested_actions: List[SuggestedAction] = field(default_factory=list)
    ai_summary: Optional[str] = None
    slack_posted: bool = False
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def report_date(self) -> date:
        return self.period_end.date()

    @property
    def hours(self) -> int:
        return int(round((self.period_end - self.period_start).total_seconds() / 3600))

    def clusters_payload(self) -> Dict[str, Dict[str, Any]]:
        return {category: cluster.to_dict() for category, cluster in self.clusters.items()}

    def actions_payload(self) -> List[Dict[str, Any]]:
        return [action.to_dict() for action in self.suggested_actions]
