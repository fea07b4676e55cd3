"""
Triage Application Services
============================

Application services for ticket intake and widget telemetry.

Orchestrates business logic between domain rules, guards and repositories.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from supportdesk.assist.application import AnswerService
from supportdesk.assist.domain.entities import AnswerResult
from supportdesk.assist.domain.query import resolve_route
from supportdesk.config import Settings
from supportdesk.config.rules import RulesConfig
from supportdesk.core import ContactRequiredException, EventDroppedException
from supportdesk.shared.infrastructure.guards import DuplicateGuard, RateLimiter
from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.triage.application.dto import TelemetryRequest, TicketRequest
from supportdesk.triage.domain.classifier import (
    MessageSignals, answered_decision, classify, should_attempt_answer
)
from supportdesk.triage.domain.entities import (
    SupportEvent, Ticket, TriageDecision, TriageReport
)
from supportdesk.triage.domain.telemetry import (
    AbuseVerdict, detect_abuse, is_event_type_allowed
)

logger = get_logger(__name__)


# ========== Query Filters ==========

@dataclass
class TicketFilters:
    """Operator ticket listing filters; None means unfiltered."""
    app_slug: Optional[str] = None
    status: Optional[str] = None
    severity: Optional[str] = None
    category: Optional[str] = None
    route: Optional[str] = None
    q: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


@dataclass
class EventFilters:
    """Operator telemetry listing filters."""
    app_slug: Optional[str] = None
    event_type: Optional[str] = None
    route: Optional[str] = None
    session_id: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    is_abuse: Optional[bool] = None


@dataclass
class ReportFilters:
    """Operator report listing filters, applied to `report_date`."""
    app_slug: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


# ========== Repository Interfaces ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Persist a new ticket; returns it with id and created_at set."""

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by id; None for unknown or malformed ids."""

    @abstractmethod
    async def merge_details(self, ticket_id: str, patch: Dict[str, Any]) -> Optional[Ticket]:
        """Shallow-merge `patch` into the ticket's details."""

    @abstractmethod
    async def update(
        self,
        ticket_id: str,
        status: Optional[str] = None,
        details_patch: Optional[Dict[str, Any]] = None
    ) -> Optional[Ticket]:
        """Apply an operator update and stamp updated_at."""

    @abstractmethod
    async def list(
        self,
        filters: TicketFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[Ticket], int]:
        """Newest first; returns (page, total matching)."""

    @abstractmethod
    async def list_in_window(
        self,
        start: datetime,
        end: datetime,
        app_slug: Optional[str] = None,
        limit: int = 500
    ) -> List[Ticket]:
        """Tickets created inside [start, end], newest first."""


class IEventRepository(ABC):
    """Interface for telemetry event storage."""

    @abstractmethod
    async def create(self, event: SupportEvent) -> SupportEvent:
        """Persist an event."""

    @abstractmethod
    async def count_by_type(
        self,
        start: datetime,
        end: datetime,
        app_slug: Optional[str] = None
    ) -> Dict[str, int]:
        """Event counts per event_type inside [start, end]."""

    @abstractmethod
    async def list(
        self,
        filters: EventFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[SupportEvent], int]:
        """Newest first; returns (page, total matching)."""


class ITriageReportRepository(ABC):
    """Interface for triage report storage."""

    @abstractmethod
    async def create(self, report: TriageReport) -> TriageReport:
        """Persist a report."""

    @abstractmethod
    async def mark_slack_posted(self, report_id: str) -> None:
        """Record that the digest reached Slack."""

    @abstractmethod
    async def list(
        self,
        filters: ReportFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[TriageReport], int]:
        """Most recent report_date first."""


class ITicketNotifier(ABC):
    """Interface for outbound ticket alerts and report digests."""

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """False when no delivery channel is configured."""

    @abstractmethod
    async def send_ticket_alert(self, ticket: Ticket) -> bool:
        """Alert on one ticket; True when delivered."""

    @abstractmethod
    async def send_triage_digest(self, report: TriageReport) -> bool:
        """Post a report digest; True when delivered."""


# ========== Application Services ==========

@dataclass
class ClientContext:
    """Request metadata taken from headers rather than the body."""
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None


@dataclass
class TicketOutcome:
    """Either a KB answer (no ticket) or a persisted ticket."""
    decision: TriageDecision
    route: Optional[str] = None
    answer: Optional[AnswerResult] = None
    ticket: Optional[Ticket] = None
    alert_needed: bool = False
    dedupe_key: Optional[str] = None

    @property
    def answered(self) -> bool:
        return self.answer is not None


class TicketService:
    """
    Service for ticket intake.

    Flow: contact check, answer-first (when no strong signal), classify,
    dedupe, persist. Rate limiting runs before this service is reached.
    """

    def __init__(
        self,
        repository: ITicketRepository,
        duplicate_guard: DuplicateGuard,
        answer_service: Optional[AnswerService] = None,
        rules_provider: Optional[Callable[[], RulesConfig]] = None,
        alerts_enabled: bool = False
    ):
        self._repository = repository
        self._duplicate_guard = duplicate_guard
        self._answer_service = answer_service
        self._rules_provider = rules_provider or RulesConfig
        self._alerts_enabled = alerts_enabled

    async def _try_answer(
        self,
        payload: TicketRequest,
        route: Optional[str]
    ) -> Optional[AnswerResult]:
        if self._answer_service is None:
            return None

        result = await self._answer_service.answer(
            app_slug=payload.app_slug,
            message=payload.message,
            route=route,
            history=payload.history_turns()
        )
        return result if result.resolved else None

    async def submit(self, payload: TicketRequest, client: ClientContext) -> TicketOutcome:
        """
        Handle one widget ticket submission.

        Raises:
            ContactRequiredException: forced ticket without user_id or email
            DuplicateSubmissionException: same message from same client recently
            RepositoryException: ticket could not be stored
        """
        forced = payload.is_forced
        contact_email = payload.contact_email

        if forced and not payload.user_id and not contact_email:
            raise ContactRequiredException()

        route = resolve_route(payload.explicit_route, payload.page_url, client.referer)
        signals = MessageSignals.detect(payload.message, self._rules_provider())

        if should_attempt_answer(signals, forced):
            answer = await self._try_answer(payload, route)
            if answer is not None:
                logger.info(
                    "Ticket deflected by KB answer",
                    extra={"app_slug": payload.app_slug, "best_doc_id": answer.best_doc_id}
                )
                return TicketOutcome(
                    decision=answered_decision(answer.confidence, route),
                    route=route,
                    answer=answer,
                )

        decision = classify(
            signals,
            forced=forced,
            route=route,
            page_url=payload.page_url,
            severity=payload.severity,
        )

        dedupe_key = DuplicateGuard.ticket_key(payload.app_slug, client.client_ip, payload.message)
        await self._duplicate_guard.enforce(dedupe_key)

        details = {
            **payload.details,
            "route": route or payload.details.get("route") or None,
            "triage": decision.to_details(),
        }

        try:
            ticket = await self._repository.create(Ticket(
                id=None,
                app_slug=payload.app_slug,
                message=payload.message,
                severity=payload.severity,
                page_url=payload.page_url,
                route=route,
                user_agent=client.user_agent or payload.user_agent,
                client_ip=client.client_ip,
                sentry_event_id=payload.sentry_event_id,
                user_id=payload.user_id,
                user_email=contact_email,
                details=details,
            ))
        except Exception:
            # A retry of an unstored ticket must not be rejected as a duplicate
            await self._duplicate_guard.release(dedupe_key)
            raise

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": ticket.id,
                "app_slug": ticket.app_slug,
                "severity": ticket.severity,
                "category": decision.category,
                "reason": decision.reason,
                "forced": forced,
            }
        )

        return TicketOutcome(
            decision=decision,
            route=route,
            ticket=ticket,
            alert_needed=self._alerts_enabled and ticket.needs_alert,
            dedupe_key=dedupe_key,
        )

    async def abandon(self, outcome: TicketOutcome) -> None:
        """Release the dedupe mark of a ticket whose transaction did not commit."""
        if outcome.dedupe_key:
            await self._duplicate_guard.release(outcome.dedupe_key)


class TelemetryService:
    """
    Service for widget telemetry.

    Abusive events are stored flagged, or rejected when `drop_abuse` is on.
    """

    def __init__(
        self,
        repository: IEventRepository,
        rate_limiter: RateLimiter,
        duplicate_guard: DuplicateGuard,
        config: Settings
    ):
        self._repository = repository
        self._rate_limiter = rate_limiter
        self._duplicate_guard = duplicate_guard
        self._allowlist = config.telemetry_allowlist
        self._max_body_size = config.telemetry_max_body_size
        self._drop_abuse = config.telemetry_drop_abuse

    async def _evaluate(
        self,
        payload: TelemetryRequest,
        client: ClientContext,
        body_size: int
    ) -> AbuseVerdict:
        decision = await self._rate_limiter.check(
            RateLimiter.telemetry_key(client.client_ip, payload.session_id)
        )
        duplicate = await self._duplicate_guard.is_duplicate(
            DuplicateGuard.telemetry_key(
                payload.app_slug,
                payload.event_type,
                payload.event_data,
                client.client_ip,
                payload.session_id,
            )
        )
        return detect_abuse(
            payload.event_data,
            body_size=body_size,
            max_body_size=self._max_body_size,
            allowed=is_event_type_allowed(payload.event_type, self._allowlist),
            rate_limited=not decision.allowed,
            duplicate=duplicate,
        )

    async def record(
        self,
        payload: TelemetryRequest,
        client: ClientContext,
        body_size: int
    ) -> Tuple[SupportEvent, AbuseVerdict]:
        """
        Evaluate and store one event.

        Raises:
            EventDroppedException: event is abusive and dropping is enabled
        """
        verdict = await self._evaluate(payload, client, body_size)

        if verdict.is_abuse:
            logger.info(
                "Telemetry event flagged",
                extra={
                    "app_slug": payload.app_slug,
                    "event_type": payload.event_type,
                    "abuse_reason": verdict.reason,
                    "dropped": self._drop_abuse,
                }
            )
            if self._drop_abuse:
                raise EventDroppedException(verdict.reason)

        event = await self._repository.create(SupportEvent(
            id=None,
            app_slug=payload.app_slug,
            event_type=payload.event_type,
            event_data=payload.event_data,
            page_url=payload.page_url,
            route=payload.route,
            user_agent=client.user_agent,
            client_ip=client.client_ip,
            user_id=payload.user_id,
            session_id=payload.session_id,
            is_abuse=verdict.is_abuse,
            abuse_reason=verdict.reason,
        ))
        return event, verdict
