"""
Operator Controllers (API Routes)
==================================

Bearer-protected listings and ticket updates for support operators.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.core import ResourceNotFoundException, ValidationException
from supportdesk.infrastructure.database import get_session
from supportdesk.shared.api.middleware import require_bearer_token
from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.triage.application import (
    EventFilters,
    EventListResponse,
    ReportFilters,
    TicketDetailResponse,
    TicketFilters,
    TicketListResponse,
    TicketUpdateRequest,
    TicketUpdateResponse,
    TriageReportListResponse,
)
from supportdesk.triage.application.dto import (
    EventItem, Pagination, TicketDetail, TicketListItem, TriageReportItem
)
from supportdesk.triage.domain.entities import SupportEvent, Ticket, TriageReport
from supportdesk.triage.infrastructure import (
    SQLAlchemyEventRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyTriageReportRepository,
)

logger = get_logger(__name__)


def require_admin_token(request: Request) -> None:
    """Operator endpoints are unavailable until an admin token is configured."""
    require_bearer_token(request, request.app.state.settings.admin_token, required=True)


router = APIRouter(
    prefix="/support/admin",
    tags=["Support Operators"],
    dependencies=[Depends(require_admin_token)],
)

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


# ========== Mappers ==========

def _ticket_list_item(ticket: Ticket) -> TicketListItem:
    return TicketListItem(
        id=ticket.id,
        created_at=ticket.created_at,
        app_slug=ticket.app_slug,
        status=ticket.status,
        severity=ticket.severity,
        route=ticket.route,
        page_url=ticket.page_url,
        category=ticket.triage.get("category"),
        user_email=ticket.user_email,
        user_id=ticket.user_id,
        slack_alerted=bool(ticket.alerted_at),
        message_preview=ticket.message_preview(),
    )


def _ticket_detail(ticket: Ticket) -> TicketDetail:
    return TicketDetail(
        id=ticket.id,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
        app_slug=ticket.app_slug,
        status=ticket.status,
        severity=ticket.severity,
        route=ticket.route,
        page_url=ticket.page_url,
        user_agent=ticket.user_agent,
        client_ip=ticket.client_ip,
        sentry_event_id=ticket.sentry_event_id,
        user_email=ticket.user_email,
        user_id=ticket.user_id,
        message=ticket.message,
        details=ticket.details,
        internal_notes=ticket.internal_notes,
        assigned_to=ticket.assigned_to,
    )


def _report_item(report: TriageReport) -> TriageReportItem:
    return TriageReportItem(
        id=report.id,
        app_slug=report.app_slug,
        report_date=report.report_date,
        period_start=report.period_start,
        period_end=report.period_end,
        ticket_count=report.ticket_count,
        event_count=report.event_count,
        clusters=report.clusters_payload(),
        suggested_actions=report.actions_payload(),
        ai_summary=report.ai_summary,
        slack_posted=report.slack_posted,
        created_at=report.created_at,
    )


def _event_item(event: SupportEvent) -> EventItem:
    return EventItem(
        id=event.id,
        app_slug=event.app_slug,
        event_type=event.event_type,
        event_data=event.event_data,
        page_url=event.page_url,
        route=event.route,
        user_agent=event.user_agent,
        client_ip=event.client_ip,
        user_id=event.user_id,
        session_id=event.session_id,
        is_abuse=event.is_abuse,
        abuse_reason=event.abuse_reason,
        created_at=event.created_at,
    )


# ========== Route Handlers ==========

@router.get(
    "/tickets",
    response_model=TicketListResponse,
    summary="List tickets",
    description="Newest first. `category` matches the stored triage category; `q` is a case-insensitive message search."
)
async def list_tickets(
    limit: int = Query(DEFAULT_LIMIT, ge=1, description=f"Clamped to {MAX_LIMIT}"),
    offset: int = Query(0, ge=0),
    app_slug: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    route: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Message substring"),
    created_from: Optional[datetime] = Query(None, alias="from"),
    created_to: Optional[datetime] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_session)
):
    limit = min(limit, MAX_LIMIT)
    filters = TicketFilters(
        app_slug=app_slug,
        status=status,
        severity=severity,
        category=category,
        route=route,
        q=q,
        created_from=created_from,
        created_to=created_to,
    )
    tickets, total = await SQLAlchemyTicketRepository(db).list(filters, limit, offset)

    return TicketListResponse(
        tickets=[_ticket_list_item(t) for t in tickets],
        pagination=Pagination.build(total, limit, offset, len(tickets)),
    )


@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketDetailResponse,
    summary="Get one ticket",
    responses={404: {"description": "Ticket not found"}}
)
async def get_ticket(
    ticket_id: str,
    db: AsyncSession = Depends(get_session)
):
    ticket = await SQLAlchemyTicketRepository(db).get_by_id(ticket_id)
    if ticket is None:
        raise ResourceNotFoundException("Ticket", ticket_id)
    return TicketDetailResponse(ticket=_ticket_detail(ticket))


@router.patch(
    "/tickets/{ticket_id}",
    response_model=TicketUpdateResponse,
    summary="Update a ticket",
    description="Set status and/or record internal notes and an assignee (stored in details).",
    responses={
        400: {"description": "No updates provided or invalid status"},
        404: {"description": "Ticket not found"}
    }
)
async def update_ticket(
    request: Request,
    ticket_id: str,
    payload: TicketUpdateRequest,
    db: AsyncSession = Depends(get_session)
):
    if not payload.has_updates:
        raise ValidationException("No updates provided")

    details_patch = {}
    if payload.internal_notes is not None:
        details_patch["internal_notes"] = payload.internal_notes
    if payload.assigned_to is not None:
        details_patch["assigned_to"] = payload.assigned_to

    ticket = await SQLAlchemyTicketRepository(db).update(
        ticket_id,
        status=payload.status,
        details_patch=details_patch,
    )
    if ticket is None:
        raise ResourceNotFoundException("Ticket", ticket_id)

    await db.commit()

    logger.info(
        "Ticket updated",
        extra={
            "correlation_id": getattr(request.state, "correlation_id", "unknown"),
            "ticket_id": ticket.id,
            "status": ticket.status,
            "fields": sorted(payload.model_dump(exclude_none=True)),
        }
    )

    return TicketUpdateResponse(
        ticket={
            "id": ticket.id,
            "status": ticket.status,
            "updated_at": ticket.updated_at,
            "internal_notes": ticket.internal_notes,
            "assigned_to": ticket.assigned_to,
        }
    )


@router.get(
    "/triage-reports",
    response_model=TriageReportListResponse,
    summary="List triage reports",
    description="Most recent report date first; `from`/`to` filter on the report date."
)
async def list_triage_reports(
    limit: int = Query(DEFAULT_LIMIT, ge=1, description=f"Clamped to {MAX_LIMIT}"),
    offset: int = Query(0, ge=0),
    app_slug: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_session)
):
    limit = min(limit, MAX_LIMIT)
    filters = ReportFilters(app_slug=app_slug, date_from=date_from, date_to=date_to)
    reports, total = await SQLAlchemyTriageReportRepository(db).list(filters, limit, offset)

    return TriageReportListResponse(
        reports=[_report_item(r) for r in reports],
        pagination=Pagination.build(total, limit, offset, len(reports)),
    )


@router.get(
    "/events",
    response_model=EventListResponse,
    summary="List telemetry events",
    description="Newest first, including events flagged as abuse unless `is_abuse=false`."
)
async def list_events(
    limit: int = Query(DEFAULT_LIMIT, ge=1, description=f"Clamped to {MAX_LIMIT}"),
    offset: int = Query(0, ge=0),
    app_slug: Optional[str] = Query(None),
    event_type: Optional[str] = Query(None),
    route: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None),
    is_abuse: Optional[bool] = Query(None),
    created_from: Optional[datetime] = Query(None, alias="from"),
    created_to: Optional[datetime] = Query(None, alias="to"),
    db: AsyncSession = Depends(get_session)
):
    limit = min(limit, MAX_LIMIT)
    filters = EventFilters(
        app_slug=app_slug,
        event_type=event_type,
        route=route,
        session_id=session_id,
        created_from=created_from,
        created_to=created_to,
        is_abuse=is_abuse,
    )
    events, total = await SQLAlchemyEventRepository(db).list(filters, limit, offset)

    return EventListResponse(
        events=[_event_item(e) for e in events],
        pagination=Pagination.build(total, limit, offset, len(events)),
    )
