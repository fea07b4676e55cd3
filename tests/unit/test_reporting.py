"""Unit tests for ticket clustering, suggested actions and the report service."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from supportdesk.config import ActionPriority, ActionType, Severity, TriageCategory
from supportdesk.core import LLMException
from supportdesk.triage.application.reports import TriageReportService, build_summary_prompt
from supportdesk.triage.domain.entities import Ticket, TriageReport
from supportdesk.triage.domain.reporting import cluster_tickets, suggest_actions

from tests.fakes import FakeLLMClient, FakeNotifier

END = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
START = END - timedelta(hours=24)


def make_ticket(category, hours_ago=1.0, severity=Severity.MEDIUM, route=None, message="Export is broken"):
    return Ticket(
        id=None,
        app_slug="resume-coach",
        message=message,
        severity=severity,
        route=route,
        details={"triage": {"category": category}},
        created_at=END - timedelta(hours=hours_ago),
    )


def tickets_of(category, count, **kwargs):
    return [make_ticket(category, **kwargs) for _ in range(count)]


class TestClusterTickets:

    @pytest.mark.unit
    def test_groups_by_category(self):
        tickets = tickets_of(TriageCategory.VALID_BUG, 2) + [make_ticket(TriageCategory.FEATURE_REQUEST)]

        clusters = cluster_tickets(tickets, START, END)

        assert clusters[TriageCategory.VALID_BUG].count == 2
        assert clusters[TriageCategory.FEATURE_REQUEST].count == 1

    @pytest.mark.unit
    def test_missing_category_is_unknown(self):
        ticket = Ticket(id=None, app_slug="a", message="m", created_at=END)
        assert list(cluster_tickets([ticket], START, END)) == [TriageCategory.UNKNOWN]

    @pytest.mark.unit
    def test_examples_and_severities(self):
        tickets = [
            make_ticket(TriageCategory.VALID_BUG, message="x" * 150, severity=Severity.HIGH),
            make_ticket(TriageCategory.VALID_BUG, message="second"),
            make_ticket(TriageCategory.VALID_BUG, message="third"),
            make_ticket(TriageCategory.VALID_BUG, message="fourth"),
        ]

        cluster = cluster_tickets(tickets, START, END)[TriageCategory.VALID_BUG]

        assert cluster.examples == ["x" * 100, "second", "third"]
        assert cluster.severity_breakdown == {"high": 1, "medium": 3}

    @pytest.mark.unit
    def test_top_routes(self):
        routes = ["/export", "/export", "/login", "/billing", "/billing", "/billing", "/editor"]
        tickets = [make_ticket(TriageCategory.VALID_BUG, route=r) for r in routes]
        tickets.append(make_ticket(TriageCategory.VALID_BUG))

        cluster = cluster_tickets(tickets, START, END)[TriageCategory.VALID_BUG]

        assert cluster.top_routes == [
            {"route": "/billing", "count": 3},
            {"route": "/export", "count": 2},
            {"route": "/login", "count": 1},
        ]

    @pytest.mark.unit
    def test_first_and_last_seen(self):
        tickets = [
            make_ticket(TriageCategory.VALID_BUG, hours_ago=2),
            make_ticket(TriageCategory.VALID_BUG, hours_ago=20),
        ]
        cluster = cluster_tickets(tickets, START, END)[TriageCategory.VALID_BUG]
        assert cluster.first_seen == END - timedelta(hours=20)
        assert cluster.last_seen == END - timedelta(hours=2)

    @pytest.mark.unit
    @pytest.mark.parametrize("recent, old, spike", [
        (3, 0, True),
        (2, 1, True),
        (3, 2, False),
        (2, 0, False),
    ])
    def test_recent_spike(self, recent, old, spike):
        """More than 60% of at least three tickets in the later half."""
        tickets = (
            tickets_of(TriageCategory.SYSTEM_FAILURE, recent, hours_ago=1)
            + tickets_of(TriageCategory.SYSTEM_FAILURE, old, hours_ago=20)
        )
        cluster = cluster_tickets(tickets, START, END)[TriageCategory.SYSTEM_FAILURE]
        assert cluster.recent_spike is spike


class TestSuggestActions:

    @pytest.mark.unit
    def test_no_tickets(self):
        actions = suggest_actions({}, 0)

        assert len(actions) == 1
        assert actions[0].title == "Systems healthy"
        assert actions[0].type == ActionType.MONITOR
        assert actions[0].id == "action-1"

    @pytest.mark.unit
    @pytest.mark.parametrize("severities, priority", [
        ([Severity.CRITICAL, Severity.LOW], ActionPriority.CRITICAL),
        ([Severity.HIGH], ActionPriority.HIGH),
        ([Severity.MEDIUM, Severity.LOW], ActionPriority.MEDIUM),
    ])
    def test_system_failure_priority(self, severities, priority):
        tickets = [make_ticket(TriageCategory.SYSTEM_FAILURE, severity=s, hours_ago=20) for s in severities]
        actions = suggest_actions(cluster_tickets(tickets, START, END), len(tickets))
        assert actions[0].priority == priority
        assert actions[0].type == ActionType.INVESTIGATE

    @pytest.mark.unit
    def test_system_failure_spike_description(self):
        tickets = tickets_of(TriageCategory.SYSTEM_FAILURE, 3, route="/export")
        actions = suggest_actions(cluster_tickets(tickets, START, END), 3)
        assert actions[0].description.startswith("SPIKE DETECTED: 3 system failures")
        assert "/export" in actions[0].description

    @pytest.mark.unit
    def test_many_system_failures_description(self):
        tickets = tickets_of(TriageCategory.SYSTEM_FAILURE, 6, hours_ago=20)
        actions = suggest_actions(cluster_tickets(tickets, START, END), 6)
        assert "Investigate infrastructure and check error logs." in actions[0].description

    @pytest.mark.unit
    @pytest.mark.parametrize("count, severity, priority", [
        (2, Severity.MEDIUM, ActionPriority.MEDIUM),
        (6, Severity.MEDIUM, ActionPriority.HIGH),
        (1, Severity.CRITICAL, ActionPriority.HIGH),
    ])
    def test_bug_priority(self, count, severity, priority):
        tickets = tickets_of(TriageCategory.VALID_BUG, count, severity=severity)
        actions = suggest_actions(cluster_tickets(tickets, START, END), count)
        assert actions[0].priority == priority
        assert actions[0].assignee_hint == "engineering"

    @pytest.mark.unit
    @pytest.mark.parametrize("count, priority", [(10, ActionPriority.LOW), (11, ActionPriority.MEDIUM)])
    def test_feature_priority(self, count, priority):
        tickets = tickets_of(TriageCategory.FEATURE_REQUEST, count)
        assert suggest_actions(cluster_tickets(tickets, START, END), count)[0].priority == priority

    @pytest.mark.unit
    def test_kb_update_needs_more_than_five(self):
        five = tickets_of(TriageCategory.USER_ERROR, 5)
        six = tickets_of(TriageCategory.USER_ERROR, 6)

        assert suggest_actions(cluster_tickets(five, START, END), 5) == []
        actions = suggest_actions(cluster_tickets(six, START, END), 6)
        assert [a.type for a in actions] == [ActionType.KB_UPDATE]

    @pytest.mark.unit
    def test_sorted_by_priority_with_creation_ids(self):
        tickets = (
            tickets_of(TriageCategory.FEATURE_REQUEST, 1)
            + tickets_of(TriageCategory.VALID_BUG, 1)
            + tickets_of(TriageCategory.SYSTEM_FAILURE, 1, severity=Severity.CRITICAL)
        )

        actions = suggest_actions(cluster_tickets(tickets, START, END), len(tickets))

        assert [(a.id, a.priority) for a in actions] == [
            ("action-1", ActionPriority.CRITICAL),
            ("action-2", ActionPriority.MEDIUM),
            ("action-3", ActionPriority.LOW),
        ]


@pytest.fixture
def repositories():
    tickets = AsyncMock()
    events = AsyncMock()
    reports = AsyncMock()
    tickets.list_in_window.return_value = []
    events.count_by_type.return_value = {"widget_open": 4, "answer_shown": 2}

    async def store(report):
        report.id = "report-1"
        return report

    reports.create.side_effect = store
    return tickets, events, reports


class TestTriageReportService:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_window(self, repositories):
        tickets, events, reports = repositories
        notifier = FakeNotifier()
        llm = FakeLLMClient()
        service = TriageReportService(tickets, events, reports, notifier=notifier, llm_client=llm)

        report = await service.run(hours=24, now=END)

        assert report.id == "report-1"
        assert report.ticket_count == 0
        assert report.event_count == 6
        assert report.suggested_actions[0].title == "Systems healthy"
        assert report.ai_summary is None
        assert report.slack_posted is False
        assert llm.calls == []
        assert notifier.digests == []
        tickets.list_in_window.assert_awaited_once_with(START, END, app_slug=None, limit=500)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_summary_and_digest(self, repositories):
        tickets, events, reports = repositories
        tickets.list_in_window.return_value = tickets_of(TriageCategory.SYSTEM_FAILURE, 2, severity=Severity.HIGH)
        notifier = FakeNotifier()
        llm = FakeLLMClient(content="  Export is failing. Check the worker.  ")
        service = TriageReportService(tickets, events, reports, notifier=notifier, llm_client=llm)

        report = await service.run(hours=24, app_slug="resume-coach", now=END)

        assert report.ai_summary == "Export is failing. Check the worker."
        assert llm.calls[0]["operation"] == "triage_summary"
        assert notifier.digests == [report]
        assert report.slack_posted is True
        reports.mark_slack_posted.assert_awaited_once_with("report-1")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_delivery_is_not_marked(self, repositories):
        tickets, events, reports = repositories
        tickets.list_in_window.return_value = tickets_of(TriageCategory.VALID_BUG, 1)
        service = TriageReportService(tickets, events, reports, notifier=FakeNotifier(deliver=False))

        report = await service.run(now=END)

        assert report.slack_posted is False
        reports.mark_slack_posted.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_summary_failure_is_ignored(self, repositories):
        tickets, events, reports = repositories
        tickets.list_in_window.return_value = tickets_of(TriageCategory.VALID_BUG, 1)
        llm = FakeLLMClient(error=LLMException("gateway down"))
        service = TriageReportService(tickets, events, reports, llm_client=llm)

        report = await service.run(now=END)

        assert report.ai_summary is None
        reports.create.assert_awaited_once()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_disabled_notifier_is_skipped(self, repositories):
        tickets, events, reports = repositories
        tickets.list_in_window.return_value = tickets_of(TriageCategory.VALID_BUG, 1)
        notifier = FakeNotifier(enabled=False)

        await TriageReportService(tickets, events, reports, notifier=notifier).run(now=END)

        assert notifier.digests == []


class TestSummaryPrompt:

    @pytest.mark.unit
    def test_prompt_sections(self):
        tickets = tickets_of(TriageCategory.SYSTEM_FAILURE, 3, route="/export", message="Getting 500 error")
        clusters = cluster_tickets(tickets, START, END)
        report = TriageReport(
            period_start=START,
            period_end=END,
            clusters=clusters,
            suggested_actions=suggest_actions(clusters, 3),
        )

        prompt = build_summary_prompt(report, tickets, 24)

        assert prompt.startswith("Support triage for last 24 hours:")
        assert "- system_failure: 3 tickets [SPIKE] (routes: /export)" in prompt
        assert "- [MEDIUM] Investigate system failures (3)" in prompt
        assert "[medium] system_failure: Getting 500 error" in prompt
        assert prompt.endswith("Total: 3 tickets")
