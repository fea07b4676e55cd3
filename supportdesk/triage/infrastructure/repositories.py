"""
Triage Infrastructure Repositories
====================================

SQLAlchemy implementations of triage repositories.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.core import RepositoryException
from supportdesk.infrastructure.database import get_session_context
from supportdesk.triage.application.services import (
    EventFilters, IEventRepository, ITicketRepository, ITriageReportRepository,
    ReportFilters, TicketFilters
)
from supportdesk.triage.domain.entities import SupportEvent, Ticket, TriageReport


def _parse_uuid(value: Optional[str]) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


async def _count(session: AsyncSession, stmt: Select) -> int:
    result = await session.execute(select(func.count()).select_from(stmt.order_by(None).subquery()))
    return int(result.scalar_one())


class SQLAlchemyTicketRepository(ITicketRepository):
    """SQLAlchemy implementation for support tickets."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, ticket_id: str) -> Optional[Any]:
        from supportdesk.triage.infrastructure.models import TicketModel

        ticket_uuid = _parse_uuid(ticket_id)
        if ticket_uuid is None:
            return None

        stmt = select(TicketModel).where(TicketModel.id == ticket_uuid)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, ticket: Ticket) -> Ticket:
        """Create new ticket."""
        from supportdesk.triage.infrastructure.models import TicketModel

        model = TicketModel(
            app_slug=ticket.app_slug,
            message=ticket.message,
            severity=ticket.severity,
            status=ticket.status,
            page_url=ticket.page_url,
            route=ticket.route,
            user_agent=ticket.user_agent,
            client_ip=ticket.client_ip,
            sentry_event_id=ticket.sentry_event_id,
            user_id=ticket.user_id,
            user_email=ticket.user_email,
            details=ticket.details,
        )

        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to create ticket", {"error": str(e)}) from e

        return model.to_entity()

    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        """Get ticket by id."""
        model = await self._get_model(ticket_id)
        return model.to_entity() if model else None

    async def merge_details(self, ticket_id: str, patch: Dict[str, Any]) -> Optional[Ticket]:
        """Shallow-merge a patch into details."""
        model = await self._get_model(ticket_id)
        if model is None:
            return None

        # Reassign so the JSON column is marked dirty
        model.details = {**(model.details or {}), **patch}
        await self._session.flush()
        return model.to_entity()

    async def update(
        self,
        ticket_id: str,
        status: Optional[str] = None,
        details_patch: Optional[Dict[str, Any]] = None
    ) -> Optional[Ticket]:
        """Apply an operator update."""
        model = await self._get_model(ticket_id)
        if model is None:
            return None

        if status is not None:
            model.status = status
        if details_patch:
            model.details = {**(model.details or {}), **details_patch}
        model.updated_at = datetime.now(timezone.utc)

        await self._session.flush()
        return model.to_entity()

    async def list(
        self,
        filters: TicketFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[Ticket], int]:
        """List tickets, newest first."""
        from supportdesk.triage.infrastructure.models import TicketModel

        stmt = select(TicketModel)
        if filters.app_slug:
            stmt = stmt.where(TicketModel.app_slug == filters.app_slug)
        if filters.status:
            stmt = stmt.where(TicketModel.status == filters.status)
        if filters.severity:
            stmt = stmt.where(TicketModel.severity == filters.severity)
        if filters.category:
            stmt = stmt.where(TicketModel.details["triage"]["category"].as_string() == filters.category)
        if filters.route:
            stmt = stmt.where(TicketModel.route == filters.route)
        if filters.q:
            stmt = stmt.where(TicketModel.message.ilike(f"%{filters.q}%"))
        if filters.created_from:
            stmt = stmt.where(TicketModel.created_at >= filters.created_from)
        if filters.created_to:
            stmt = stmt.where(TicketModel.created_at <= filters.created_to)

        total = await _count(self._session, stmt)

        stmt = stmt.order_by(TicketModel.created_at.desc()).limit(limit).offset(offset)
        result = await self._session.execute(stmt)
        return [model.to_entity() for model in result.scalars().all()], total

    async def list_in_window(
        self,
        start: datetime,
        end: datetime,
        app_slug: Optional[str] = None,
        limit: int = 500
    ) -> List[Ticket]:
        """Tickets inside the report window, newest first."""
        from supportdesk.triage.infrastructure.models import TicketModel

        stmt = select(TicketModel).where(
            TicketModel.created_at >= start,
            TicketModel.created_at <= end
        )
        if app_slug:
            stmt = stmt.where(TicketModel.app_slug == app_slug)

        stmt = stmt.order_by(TicketModel.created_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return [model.to_entity() for model in result.scalars().all()]


class SQLAlchemyEventRepository(IEventRepository):
    """SQLAlchemy implementation for telemetry events."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event: SupportEvent) -> SupportEvent:
        """Store one event."""
        from supportdesk.triage.infrastructure.models import SupportEventModel

        model = SupportEventModel(
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
        )

        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to store event", {"error": str(e)}) from e

        return model.to_entity()

    async def count_by_type(
        self,
        start: datetime,
        end: datetime,
        app_slug: Optional[str] = None
    ) -> Dict[str, int]:
        """Event counts grouped by type."""
        from supportdesk.triage.infrastructure.models import SupportEventModel

        stmt = (
            select(SupportEventModel.event_type, func.count())
            .where(SupportEventModel.created_at >= start, SupportEventModel.created_at <= end)
            .group_by(SupportEventModel.event_type)
        )
        if app_slug:
            stmt = stmt.where(SupportEventModel.app_slug == app_slug)

        result = await self._session.execute(stmt)
        return {event_type: int(count) for event_type, count in result.all()}

    async def list(
        self,
        filters: EventFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[SupportEvent], int]:
        """List events, newest first."""
        from supportdesk.triage.infrastructure.models import SupportEventModel

        stmt = select(SupportEventModel)
        if filters.app_slug:
            stmt = stmt.where(SupportEventModel.app_slug == filters.app_slug)
        if filters.event_type:
            stmt = stmt.where(SupportEventModel.event_type == filters.event_type)
        if filters.route:
            stmt = stmt.where(SupportEventModel.route == filters.route)
        if filters.session_id:
            stmt = stmt.where(SupportEventModel.session_id == filters.session_id)
        if filters.created_from:
            stmt = stmt.where(SupportEventModel.created_at >= filters.created_from)
        if filters.created_to:
            stmt = stmt.where(SupportEventModel.created_at <= filters.created_to)
        if filters.is_abuse is not None:
            stmt = stmt.where(SupportEventModel.is_abuse == filters.is_abuse)

        total = await _count(self._session, stmt)

        stmt = stmt.order_by(SupportEventModel.created_at.desc()).limit(limit).offset(offset)
        result = await self._session.execute(stmt)
        return [model.to_entity() for model in result.scalars().all()], total


class SQLAlchemyTriageReportRepository(ITriageReportRepository):
    """SQLAlchemy implementation for triage reports."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, report: TriageReport) -> TriageReport:
        """Store a report."""
        from supportdesk.triage.infrastructure.models import TriageReportModel

        model = TriageReportModel(
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
        )

        try:
            self._session.add(model)
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to store triage report", {"error": str(e)}) from e

        report.id = str(model.id)
        report.created_at = model.created_at
        return report

    async def mark_slack_posted(self, report_id: str) -> None:
        """Set slack_posted on a stored report."""
        from supportdesk.triage.infrastructure.models import TriageReportModel

        report_uuid = _parse_uuid(report_id)
        if report_uuid is None:
            return

        stmt = select(TriageReportModel).where(TriageReportModel.id == report_uuid)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is not None:
            model.slack_posted = True
            await self._session.flush()

    async def list(
        self,
        filters: ReportFilters,
        limit: int,
        offset: int
    ) -> Tuple[List[TriageReport], int]:
        """List reports, most recent report_date first."""
        from supportdesk.triage.infrastructure.models import TriageReportModel

        stmt = select(TriageReportModel)
        if filters.app_slug:
            stmt = stmt.where(TriageReportModel.app_slug == filters.app_slug)
        if filters.date_from:
            stmt = stmt.where(TriageReportModel.report_date >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(TriageReportModel.report_date <= filters.date_to)

        total = await _count(self._session, stmt)

        stmt = (
            stmt.order_by(TriageReportModel.report_date.desc(), TriageReportModel.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return [model.to_entity() for model in result.scalars().all()], total


@asynccontextmanager
async def ticket_repository_scope() -> AsyncGenerator[ITicketRepository, None]:
    """Ticket repository on a fresh session, for work outside a request."""
    async with get_session_context() as session:
        yield SQLAlchemyTicketRepository(session)
