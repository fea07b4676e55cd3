"""
Triage Controllers (API Routes)
================================

FastAPI routes for ticket submission, widget telemetry and triage reports.

Controllers delegate to application services.
"""

from typing import Optional, Union

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.core import RepositoryException
from supportdesk.infrastructure.database import get_session
from supportdesk.shared.api.middleware import (
    extract_client_ip, extract_referer, extract_user_agent, require_bearer_token
)
from supportdesk.shared.infrastructure.guards import RateLimiter
from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.triage.application import (
    AlertDispatcher,
    AnsweredTicketResponse,
    ClientContext,
    CreatedTicketResponse,
    TelemetryRequest,
    TelemetryResponse,
    TelemetryService,
    TicketRequest,
    TicketService,
    TriageReportService,
    TriageRunResponse,
)
from supportdesk.triage.infrastructure import (
    SQLAlchemyEventRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyTriageReportRepository,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/support", tags=["Support Tickets"])


# ========== Example payloads for Swagger ==========

TICKET_REQUEST_EXAMPLE = {
    "app_slug": "resume-coach",
    "message": "Getting 500 error when I export my resume",
    "severity": "high",
    "page_url": "https://app.example.com/resume/export",
    "user_email": "jane@example.com",
    "details": {"plan": "pro"}
}

TICKET_CREATED_EXAMPLE = {
    "ok": True,
    "ticket": {
        "id": "123e4567-e89b-12d3-a456-426614174000",
        "created_at": "2026-01-05T14:03:11.204Z",
        "app_slug": "resume-coach",
        "severity": "high",
        "triage": {
            "category": "system_failure",
            "action": "create_ticket",
            "reason": "system_signal",
            "forced": False
        },
        "alert_queued": True
    }
}

TICKET_ANSWERED_EXAMPLE = {
    "ok": True,
    "resolved": True,
    "answer": "Open Settings > Account and choose Reset password.",
    "sources": [
        {
            "id": "support_kb_articles_12",
            "type": "support_kb_articles",
            "title": "Reset your password",
            "summary": "Use the reset link from Settings > Account."
        }
    ],
    "triage": {
        "category": "user_error",
        "action": "answer_now",
        "reason": "kb_hit",
        "confidence": 0.86,
        "route": "/account/settings"
    },
    "gate": {"passed": True, "reason": "passed", "lexicalScore": 0.67, "rankingScore": 0.86},
    "queryUsed": {"q1": "how do i reset my password"},
    "llmEnabled": True
}

TRIAGE_RESPONSE_EXAMPLE = {
    "ok": True,
    "report_id": "0b6f5a4e-9d55-4b53-8a38-2f8f1c3f6e10",
    "period": {"start": "2026-01-04T14:00:00Z", "end": "2026-01-05T14:00:00Z", "hours": 24},
    "summary": {
        "ticket_count": 7,
        "event_count": 412,
        "clusters": {
            "system_failure": {
                "category": "system_failure",
                "count": 4,
                "examples": ["Getting 500 error when I export my resume"],
                "severity_breakdown": {"high": 3, "medium": 1},
                "top_routes": [{"route": "/resume/export", "count": 3}],
                "recent_spike": True,
                "first_seen": "2026-01-04T22:10:00+00:00",
                "last_seen": "2026-01-05T13:40:00+00:00"
            }
        },
        "suggested_actions": [
            {
                "id": "action-1",
                "priority": "high",
                "type": "investigate",
                "title": "Investigate system failures (4)",
                "description": "SPIKE DETECTED: 4 system failures, increasing in recent hours. Top routes: /resume/export",
                "category": "system_failure",
                "ticket_count": 4,
                "assignee_hint": "infrastructure"
            }
        ],
        "ai_summary": None
    },
    "slack_posted": True
}


# ========== Dependencies ==========

def get_client_context(request: Request) -> ClientContext:
    return ClientContext(
        client_ip=extract_client_ip(request),
        user_agent=extract_user_agent(request),
        referer=extract_referer(request),
    )


async def enforce_ticket_rate_limit(request: Request) -> None:
    """Runs before the body is read, so over-limit clients get 429 first."""
    limiter: RateLimiter = request.app.state.ticket_rate_limiter
    await limiter.enforce(RateLimiter.ticket_key(extract_client_ip(request)))


def require_triage_token(request: Request) -> None:
    require_bearer_token(request, request.app.state.settings.triage_token)


def get_alert_dispatcher(request: Request) -> Optional[AlertDispatcher]:
    return getattr(request.app.state, "alert_dispatcher", None)


async def get_ticket_service(
    request: Request,
    db: AsyncSession = Depends(get_session)
) -> TicketService:
    """Build a request-scoped ticket service."""
    state = request.app.state
    dispatcher = get_alert_dispatcher(request)
    rules_manager = getattr(state, "rules_manager", None)

    return TicketService(
        repository=SQLAlchemyTicketRepository(db),
        duplicate_guard=state.ticket_duplicate_guard,
        answer_service=getattr(state, "answer_service", None),
        rules_provider=(lambda: rules_manager.config) if rules_manager else None,
        alerts_enabled=dispatcher is not None and dispatcher.enabled,
    )


async def get_telemetry_service(
    request: Request,
    db: AsyncSession = Depends(get_session)
) -> TelemetryService:
    state = request.app.state
    return TelemetryService(
        repository=SQLAlchemyEventRepository(db),
        rate_limiter=state.telemetry_rate_limiter,
        duplicate_guard=state.telemetry_duplicate_guard,
        config=state.settings,
    )


async def get_report_service(
    request: Request,
    db: AsyncSession = Depends(get_session)
) -> TriageReportService:
    state = request.app.state
    return TriageReportService(
        ticket_repository=SQLAlchemyTicketRepository(db),
        event_repository=SQLAlchemyEventRepository(db),
        report_repository=SQLAlchemyTriageReportRepository(db),
        notifier=getattr(state, "ticket_notifier", None),
        llm_client=getattr(state, "llm_client", None),
    )


# ========== Route Handlers ==========

@router.post(
    "/ticket",
    response_model=Union[AnsweredTicketResponse, CreatedTicketResponse],
    response_model_exclude_none=True,
    dependencies=[Depends(enforce_ticket_rate_limit)],
    summary="Submit a support ticket",
    description="""
    Submit a support request from the widget.

    The endpoint:
    1. Rejects the client with 429 when over the per-IP rate limit
    2. Rejects forced tickets that carry no user_id or email (400, `needs_contact`)
    3. Tries to answer from the KB unless forced or a system/bug/feature keyword is present
    4. Classifies the request and persists a ticket (409 for a recent duplicate)
    5. Queues a Slack alert for system failures and high/critical tickets

    Returns either a KB answer (`resolved: true`, no ticket) or the created ticket.
    """,
    responses={
        200: {
            "description": "KB answer or created ticket",
            "content": {
                "application/json": {
                    "examples": {
                        "created": {"value": TICKET_CREATED_EXAMPLE},
                        "answered": {"value": TICKET_ANSWERED_EXAMPLE}
                    }
                }
            }
        },
        400: {"description": "Validation error or contact required"},
        409: {"description": "Duplicate submission"},
        429: {"description": "Rate limited"},
        500: {"description": "Ticket could not be stored"}
    }
)
async def submit_ticket(
    request: Request,
    payload: TicketRequest,
    background_tasks: BackgroundTasks,
    client: ClientContext = Depends(get_client_context),
    db: AsyncSession = Depends(get_session),
    service: TicketService = Depends(get_ticket_service)
):
    correlation_id = getattr(request.state, "correlation_id", "unknown")

    logger.info(
        "Ticket submitted",
        extra={
            "correlation_id": correlation_id,
            "app_slug": payload.app_slug,
            "severity": payload.severity,
            "forced": payload.is_forced,
        }
    )

    outcome = await service.submit(payload, client)

    if outcome.answered:
        return AnsweredTicketResponse.from_result(outcome.answer, route=outcome.route)

    # Committed before the alert task opens its own session
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await service.abandon(outcome)
        raise RepositoryException("Failed to store ticket", {"error": str(e)}) from e

    ticket = outcome.ticket
    alert_queued = None
    if outcome.alert_needed:
        background_tasks.add_task(get_alert_dispatcher(request).dispatch, ticket)
        alert_queued = True

    return CreatedTicketResponse(
        ticket={
            "id": ticket.id,
            "created_at": ticket.created_at,
            "app_slug": ticket.app_slug,
            "severity": ticket.severity,
            "triage": outcome.decision.to_summary(),
            "alert_queued": alert_queued,
        }
    )


@router.post(
    "/telemetry",
    response_model=TelemetryResponse,
    response_model_exclude_none=True,
    summary="Record a widget telemetry event",
    description="""
    Store one widget event (widget_open, message_sent, doc_viewed, ...).

    Events failing the abuse checks (allowlist, body size, rate limit,
    duplicate, oversized or script-like event_data) are stored with
    `flagged: true`, or rejected when abuse dropping is enabled.
    """,
    responses={
        400: {"description": "Validation error or dropped event"},
        409: {"description": "Dropped duplicate event"},
        429: {"description": "Dropped rate-limited event"}
    }
)
async def record_telemetry(
    request: Request,
    payload: TelemetryRequest,
    client: ClientContext = Depends(get_client_context),
    service: TelemetryService = Depends(get_telemetry_service)
):
    body_size = len(await request.body())
    event, verdict = await service.record(payload, client, body_size)

    return TelemetryResponse(
        event_id=event.id,
        created_at=event.created_at,
        flagged=True if verdict.is_abuse else None,
        abuse_reason=verdict.reason,
    )


@router.post(
    "/triage",
    response_model=TriageRunResponse,
    dependencies=[Depends(require_triage_token)],
    summary="Generate a triage report",
    description="""
    Cluster recent tickets by category, derive suggested actions, optionally
    summarize with the completion gateway, store the report and post a Slack
    digest when there were tickets.

    Requires `Authorization: Bearer <TRIAGE_TOKEN>` when a triage token is configured.
    """,
    responses={
        200: {
            "description": "Report generated",
            "content": {"application/json": {"example": TRIAGE_RESPONSE_EXAMPLE}}
        },
        401: {"description": "Missing or wrong bearer token"}
    }
)
async def run_triage(
    request: Request,
    hours: int = Query(24, ge=1, le=24 * 31, description="Lookback window in hours"),
    app_slug: Optional[str] = Query(None, description="Restrict to one app"),
    service: TriageReportService = Depends(get_report_service)
):
    report = await service.run(hours=hours, app_slug=app_slug or None)

    return TriageRunResponse(
        report_id=report.id,
        period={"start": report.period_start, "end": report.period_end, "hours": hours},
        summary={
            "ticket_count": report.ticket_count,
            "event_count": report.event_count,
            "clusters": report.clusters_payload(),
            "suggested_actions": report.actions_payload(),
            "ai_summary": report.ai_summary,
        },
        slack_posted=report.slack_posted,
    )
