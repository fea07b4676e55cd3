"""
Triage Report Service
=====================

Builds, summarizes, stores and announces the periodic triage report.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from supportdesk.core import LLMException
from supportdesk.infrastructure.llm import ILLMClient
from supportdesk.shared.infrastructure.logging import get_logger, log_latency
from supportdesk.triage.application.services import (
    IEventRepository, ITicketNotifier, ITicketRepository, ITriageReportRepository
)
from supportdesk.triage.domain.entities import Ticket, TriageReport
from supportdesk.triage.domain.reporting import (
    cluster_tickets, clusters_by_count, suggest_actions
)

logger = get_logger(__name__)

REPORT_TICKET_LIMIT = 500
SUMMARY_MAX_TOKENS = 250
SUMMARY_SAMPLE_SIZE = 15

SUMMARY_SYSTEM_PROMPT = """You are a support triage assistant. Analyze the ticket data and provide:
1. A 1-sentence executive summary of the situation
2. The most critical issue that needs immediate attention (if any)
3. One recommendation for preventing similar issues

Be direct and actionable. No fluff. Max 4 sentences total."""


def build_summary_prompt(report: TriageReport, tickets: Sequence[Ticket], hours: int) -> str:
    """User message for the AI summary."""
    cluster_lines: List[str] = []
    for cluster in clusters_by_count(report.clusters):
        spike = " [SPIKE]" if cluster.recent_spike else ""
        routes = ""
        if cluster.top_routes:
            routes = f" (routes: {', '.join(r['route'] for r in cluster.top_routes)})"
        cluster_lines.append(f"- {cluster.category}: {cluster.count} tickets{spike}{routes}")

    action_lines = [
        f"- [{action.priority.upper()}] {action.title}"
        for action in report.suggested_actions[:3]
    ]
    sample_lines = [
        f"[{ticket.severity}] {ticket.category}: {ticket.message[:60]}"
        for ticket in tickets[:SUMMARY_SAMPLE_SIZE]
    ]

    return (
        f"Support triage for last {hours} hours:\n\n"
        f"CLUSTER BREAKDOWN:\n{chr(10).join(cluster_lines) or 'No clusters'}\n\n"
        f"SUGGESTED ACTIONS:\n{chr(10).join(action_lines) or 'No actions needed'}\n\n"
        f"SAMPLE TICKETS:\n{chr(10).join(sample_lines) or 'None'}\n\n"
        f"Total: {len(tickets)} tickets"
    )


class TriageReportService:
    """
    Service for triage reports.

    Persistence failures propagate; the AI summary and the Slack digest
    are best effort.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        event_repository: IEventRepository,
        report_repository: ITriageReportRepository,
        notifier: Optional[ITicketNotifier] = None,
        llm_client: Optional[ILLMClient] = None
    ):
        self._tickets = ticket_repository
        self._events = event_repository
        self._reports = report_repository
        self._notifier = notifier
        self._llm = llm_client

    async def _summarize(self, report: TriageReport, tickets: Sequence[Ticket], hours: int) -> Optional[str]:
        if self._llm is None or not tickets:
            return None

        messages = [
            {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
            {"role": "user", "content": build_summary_prompt(report, tickets, hours)},
        ]
        try:
            result = await self._llm.chat_completion(
                messages=messages,
                temperature=0.3,
                max_tokens=SUMMARY_MAX_TOKENS,
                operation="triage_summary"
            )
        except LLMException as e:
            logger.warning("AI triage summary failed", extra={"error": e.message})
            return None

        return result.content.strip() or None

    async def run(
        self,
        hours: int = 24,
        app_slug: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> TriageReport:
        """
        Generate and store a report for the last `hours` hours.

        Args:
            hours: Lookback window
            app_slug: Restrict to one app (None covers every app)
            now: End of the window, defaults to the current time

        Returns:
            The stored TriageReport, with `slack_posted` reflecting delivery
        """
        period_end = now or datetime.now(timezone.utc)
        period_start = period_end - timedelta(hours=hours)

        with log_latency(logger, "triage_report", hours=hours, app_slug=app_slug):
            tickets = await self._tickets.list_in_window(
                period_start, period_end, app_slug=app_slug, limit=REPORT_TICKET_LIMIT
            )
            event_counts = await self._events.count_by_type(period_start, period_end, app_slug=app_slug)

            clusters = cluster_tickets(tickets, period_start, period_end)
            report = TriageReport(
                period_start=period_start,
                period_end=period_end,
                app_slug=app_slug,
                ticket_count=len(tickets),
                event_count=sum(event_counts.values()),
                event_counts=event_counts,
                clusters=clusters,
                suggested_actions=suggest_actions(clusters, len(tickets)),
            )
            report.ai_summary = await self._summarize(report, tickets, hours)

            report = await self._reports.create(report)

        if tickets and self._notifier is not None and self._notifier.enabled:
            if await self._notifier.send_triage_digest(report):
                await self._reports.mark_slack_posted(report.id)
                report.slack_posted = True

        logger.info(
            "Triage report stored",
            extra={
                "report_id": report.id,
                "ticket_count": report.ticket_count,
                "event_count": report.event_count,
                "clusters": len(report.clusters),
                "slack_posted": report.slack_posted,
            }
        )
        return report
