"""Integration tests for the SQLAlchemy repositories against SQLite."""

from datetime import date, datetime, timedelta, timezone

import pytest

from supportdesk.infrastructure.database import get_session_context
from supportdesk.triage.application.services import EventFilters, ReportFilters, TicketFilters
from supportdesk.triage.domain.entities import SupportEvent, Ticket, TriageReport
from supportdesk.triage.domain.reporting import cluster_tickets, suggest_actions
from supportdesk.triage.infrastructure import (
    SQLAlchemyEventRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyTriageReportRepository,
    ticket_repository_scope,
)


def ticket(message: str, category: str = "valid_bug", **kwargs) -> Ticket:
    return Ticket(
        id=None,
        app_slug=kwargs.pop("app_slug", "resume-coach"),
        message=message,
        details={"triage": {"category": category}},
        **kwargs,
    )


@pytest.mark.usefixtures("database")
class TestTicketRepository:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_and_get(self):
        async with get_session_context() as session:
            created = await SQLAlchemyTicketRepository(session).create(
                ticket("Export is broken", route="/export", user_email="jane@example.com")
            )

        async with get_session_context() as session:
            fetched = await SQLAlchemyTicketRepository(session).get_by_id(created.id)

        assert fetched.id == created.id
        assert fetched.status == "open"
        assert fetched.severity == "medium"
        assert fetched.category == "valid_bug"
        assert fetched.created_at.tzinfo is not None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_malformed_id(self):
        async with get_session_context() as session:
            assert await SQLAlchemyTicketRepository(session).get_by_id("123") is None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_merge_details_keeps_existing_keys(self):
        async with get_session_context() as session:
            created = await SQLAlchemyTicketRepository(session).create(ticket("Export is broken"))

        async with ticket_repository_scope() as repository:
            await repository.merge_details(created.id, {"alerted_at": "2026-03-02T12:00:00+00:00"})

        async with get_session_context() as session:
            fetched = await SQLAlchemyTicketRepository(session).get_by_id(created.id)

        assert fetched.alerted_at == "2026-03-02T12:00:00+00:00"
        assert fetched.category == "valid_bug"
        assert fetched.needs_alert is False

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update(self):
        async with get_session_context() as session:
            repository = SQLAlchemyTicketRepository(session)
            created = await repository.create(ticket("Export is broken"))
            updated = await repository.update(created.id, status="resolved", details_patch={"assigned_to": "sam"})

        assert updated.status == "resolved"
        assert updated.assigned_to == "sam"
        assert updated.updated_at is not None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_filters(self):
        async with get_session_context() as session:
            repository = SQLAlchemyTicketRepository(session)
            await repository.create(ticket("Export is broken", route="/export"))
            await repository.create(ticket("please add dark mode", category="feature_request", severity="low"))
            await repository.create(ticket("Login is broken", app_slug="cover-letters"))

        async with get_session_context() as session:
            repository = SQLAlchemyTicketRepository(session)

            everything, total = await repository.list(TicketFilters(), limit=10, offset=0)
            assert total == 3
            assert [t.message for t in everything] == [
                "Login is broken", "please add dark mode", "Export is broken"
            ]

            _, total = await repository.list(TicketFilters(category="valid_bug"), limit=10, offset=0)
            assert total == 2

            found, _ = await repository.list(TicketFilters(q="DARK"), limit=10, offset=0)
            assert [t.message for t in found] == ["please add dark mode"]

            _, total = await repository.list(TicketFilters(severity="low", app_slug="resume-coach"), 10, 0)
            assert total == 1

            _, total = await repository.list(TicketFilters(route="/export"), 10, 0)
            assert total == 1

            page, total = await repository.list(TicketFilters(), limit=1, offset=1)
            assert total == 3
            assert [t.message for t in page] == ["please add dark mode"]

            future = datetime.now(timezone.utc) + timedelta(hours=1)
            _, total = await repository.list(TicketFilters(created_from=future), 10, 0)
            assert total == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_list_in_window(self):
        async with get_session_context() as session:
            repository = SQLAlchemyTicketRepository(session)
            await repository.create(ticket("Export is broken"))
            await repository.create(ticket("Login is broken", app_slug="cover-letters"))

        now = datetime.now(timezone.utc)
        async with get_session_context() as session:
            repository = SQLAlchemyTicketRepository(session)
            window = await repository.list_in_window(now - timedelta(hours=1), now + timedelta(minutes=1))
            one_app = await repository.list_in_window(
                now - timedelta(hours=1), now + timedelta(minutes=1), app_slug="cover-letters"
            )
            old = await repository.list_in_window(now - timedelta(hours=48), now - timedelta(hours=24))

        assert len(window) == 2
        assert [t.message for t in one_app] == ["Login is broken"]
        assert old == []


@pytest.mark.usefixtures("database")
class TestEventRepository:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_list_and_count(self):
        async with get_session_context() as session:
            repository = SQLAlchemyEventRepository(session)
            for event_type in ("widget_open", "widget_open", "message_sent"):
                await repository.create(SupportEvent(id=None, app_slug="resume-coach", event_type=event_type))
            await repository.create(SupportEvent(
                id=None, app_slug="resume-coach", event_type="widget_open",
                event_data={"text": "<script>"}, is_abuse=True, abuse_reason="suspicious_content",
            ))

        now = datetime.now(timezone.utc)
        async with get_session_context() as session:
            repository = SQLAlchemyEventRepository(session)
            counts = await repository.count_by_type(now - timedelta(hours=1), now + timedelta(minutes=1))
            flagged, total = await repository.list(EventFilters(is_abuse=True), limit=10, offset=0)

        assert counts == {"widget_open": 3, "message_sent": 1}
        assert total == 1
        assert flagged[0].event_data == {"text": "<script>"}
        assert flagged[0].abuse_reason == "suspicious_content"


@pytest.mark.usefixtures("database")
class TestTriageReportRepository:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_create_mark_and_list(self):
        end = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
        start = end - timedelta(hours=24)
        tickets = [ticket("Export is broken", created_at=end - timedelta(hours=1), route="/export")]
        clusters = cluster_tickets(tickets, start, end)
        report = TriageReport(
            period_start=start,
            period_end=end,
            ticket_count=1,
            clusters=clusters,
            suggested_actions=suggest_actions(clusters, 1),
        )

        async with get_session_context() as session:
            stored = await SQLAlchemyTriageReportRepository(session).create(report)
        async with get_session_context() as session:
            await SQLAlchemyTriageReportRepository(session).mark_slack_posted(stored.id)

        async with get_session_context() as session:
            reports, total = await SQLAlchemyTriageReportRepository(session).list(
                ReportFilters(date_from=date(2026, 3, 1)), limit=10, offset=0
            )
            none, _ = await SQLAlchemyTriageReportRepository(session).list(
                ReportFilters(date_to=date(2026, 3, 1)), limit=10, offset=0
            )

        assert total == 1
        assert none == []
        loaded = reports[0]
        assert loaded.id == stored.id
        assert loaded.slack_posted is True
        assert loaded.report_date == date(2026, 3, 2)
        assert loaded.clusters["valid_bug"].count == 1
        assert loaded.clusters["valid_bug"].top_routes == [{"route": "/export", "count": 1}]
        assert loaded.suggested_actions[0].id == "action-1"
