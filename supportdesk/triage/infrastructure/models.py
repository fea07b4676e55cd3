"""
Triage Infrastructure Models
=============================

SQLAlchemy ORM models for the triage module.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from supportdesk.config import Severity, TicketStatus
from supportdesk.infrastructure.database import Base
from supportdesk.triage.domain.entities import (
    CategoryCluster, SuggestedAction, SupportEvent, Ticket, TriageReport
)

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Tickets are never deleted; operators move them through statuses.
    """
    __tablename__ = "support_tickets"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Submission
    app_slug: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default=Severity.MEDIUM, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=TicketStatus.OPEN, index=True)

    # Caller context
    page_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    route: Mapped[Optional[str]] = mapped_column(String(500), nullable=True, index=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sentry_event_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    # Caller details + triage payload + alerted_at / operator notes
    details: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        index=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_entity(self) -> Ticket:
        return Ticket(
            id=str(self.id),
            app_slug=self.app_slug,
            message=self.message,
            severity=self.severity,
            status=self.status,
            page_url=self.page_url,
            route=self.route,
            user_agent=self.user_agent,
            client_ip=self.client_ip,
            sentry_event_id=self.sentry_event_id,
            user_id=self.user_id,
            user_email=self.user_email,
            details=dict(self.details or {}),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )


class SupportEventModel(Base):
    """
    Database model for widget telemetry events.

    Abusive events are kept with `is_abuse` set unless dropping is enabled.
    """
    __tablename__ = "support_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    app_slug: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    event_data: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    page_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    route: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    client_ip: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Abuse flags
    is_abuse: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    abuse_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        index=True
    )

    def to_entity(self) -> SupportEvent:
        return SupportEvent(
            id=str(self.id),
            app_slug=self.app_slug,
            event_type=self.event_type,
            event_data=dict(self.event_data or {}),
            page_url=self.page_url,
            route=self.route,
            user_agent=self.user_agent,
            client_ip=self.client_ip,
            user_id=self.user_id,
            session_id=self.session_id,
            is_abuse=self.is_abuse,
            abuse_reason=self.abuse_reason,
            created_at=as_utc(self.created_at),
        )


class TriageReportModel(Base):
    """
    Database model for TriageReport entity.

    Clusters and actions are stored as the JSON payloads returned by the API.
    """
    __tablename__ = "support_triage_reports"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # None means the report covers every app
    app_slug: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    report_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    ticket_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    event_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clusters: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    suggested_actions: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    slack_posted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow
    )

    def to_entity(self) -> TriageReport:
        return TriageReport(
            id=str(self.id),
            app_slug=self.app_slug,
            period_start=as_utc(self.period_start),
            period_end=as_utc(self.period_end),
            ticket_count=self.ticket_count,
            event_count=self.event_count,
            clusters={
                category: CategoryCluster.from_dict(category, data)
                for category, data in (self.clusters or {}).items()
            },
            suggested_actions=[SuggestedAction.from_dict(a) for a in (self.suggested_actions or [])],
            ai_summary=self.ai_summary,
            slack_posted=self.slack_posted,
            created_at=as_utc(self.created_at),
        )
