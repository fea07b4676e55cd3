"""
Triage External Service Adapters
==================================

Slack adapter for ticket alerts and triage digests.

Implements the application layer ITicketNotifier interface on top of the
shared SlackClient, which owns retries and the circuit breaker.
"""

from typing import Any, Dict, List

from supportdesk.config import Severity, TriageCategory
from supportdesk.shared.infrastructure.notifications import SlackClient
from supportdesk.triage.application.services import ITicketNotifier
from supportdesk.triage.domain.entities import Ticket, TriageReport
from supportdesk.triage.domain.reporting import clusters_by_count

MESSAGE_LIMIT = 500
ACTION_DESCRIPTION_LIMIT = 100

SEVERITY_EMOJI = {
    Severity.CRITICAL: "🔴",
    Severity.HIGH: "🟠",
    Severity.MEDIUM: "🟡",
    Severity.LOW: "🟢",
}

CATEGORY_EMOJI = {
    TriageCategory.SYSTEM_FAILURE: "💥",
    TriageCategory.VALID_BUG: "🐛",
    TriageCategory.FEATURE_REQUEST: "✨",
}


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


def _clip(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _mrkdwn(text: str) -> Dict[str, str]:
    return {"type": "mrkdwn", "text": text}


def build_ticket_alert_blocks(ticket: Ticket) -> List[Dict[str, Any]]:
    """Block Kit payload for a single ticket alert."""
    triage = ticket.triage
    category = ticket.category
    forced = " (forced)" if triage.get("forced") else ""
    created = ticket.created_at.isoformat() if ticket.created_at else ""

    context_parts = [
        f"Route: `{ticket.route}`" if ticket.route else None,
        f"Page: {ticket.page_url}" if ticket.page_url else None,
        f"User: {ticket.user_id}" if ticket.user_id else None,
        f"Created: {created}",
    ]

    return [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"{CATEGORY_EMOJI.get(category, '❓')} Support Ticket #{ticket.id}",
                "emoji": True,
            },
        },
        {
            "type": "section",
            "fields": [
                _mrkdwn(f"*App:*\n{ticket.app_slug}"),
                _mrkdwn(f"*Severity:*\n{SEVERITY_EMOJI.get(ticket.severity, '🟢')} {ticket.severity}"),
                _mrkdwn(f"*Category:*\n{category}"),
                _mrkdwn(f"*Reason:*\n{triage.get('reason', '')}{forced}"),
            ],
        },
        {
            "type": "section",
            "text": _mrkdwn(f"*Message:*\n```{truncate(ticket.message, MESSAGE_LIMIT)}```"),
        },
        {
            "type": "context",
            "elements": [_mrkdwn(" • ".join(part for part in context_parts if part))],
        },
    ]


def build_triage_digest_blocks(report: TriageReport) -> List[Dict[str, Any]]:
    """Block Kit payload for a triage report digest."""
    cluster_lines = [
        f"• {cluster.category}: {cluster.count} tickets{' 📈' if cluster.recent_spike else ''}"
        for cluster in clusters_by_count(report.clusters)[:5]
    ]
    action_lines = [
        f"{SEVERITY_EMOJI.get(action.priority, '⚪')} *{action.title}*\n"
        f"   {_clip(action.description, ACTION_DESCRIPTION_LIMIT)}"
        for action in report.suggested_actions[:4]
    ]

    blocks: List[Dict[str, Any]] = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"📊 Support Triage Report #{report.id}",
                "emoji": True,
            },
        },
        {
            "type": "section",
            "fields": [
                _mrkdwn(f"*Period:*\n{report.hours}h ending {report.period_end.isoformat()[:16]}"),
                _mrkdwn(f"*Total Tickets:*\n{report.ticket_count}"),
            ],
        },
        {
            "type": "section",
            "text": _mrkdwn(f"*Clusters:*\n{chr(10).join(cluster_lines) or 'None'}"),
        },
    ]

    if action_lines:
        blocks.append({"type": "section", "text": _mrkdwn(f"*Actions:*\n{chr(10).join(action_lines)}")})
    if report.ai_summary:
        blocks.append({"type": "section", "text": _mrkdwn(f"*AI Analysis:*\n{report.ai_summary}")})

    return blocks


class SlackTicketNotifier(ITicketNotifier):
    """
    Adapter that wraps the shared Slack client.

    Implements the application layer ITicketNotifier interface.
    """

    def __init__(self, client: SlackClient):
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._client.enabled

    async def send_ticket_alert(self, ticket: Ticket) -> bool:
        return await self._client.post_blocks(
            build_ticket_alert_blocks(ticket),
            text=f"Support ticket #{ticket.id} ({ticket.category}, {ticket.severity})",
            context={"ticket_id": ticket.id},
        )

    async def send_triage_digest(self, report: TriageReport) -> bool:
        return await self._client.post_blocks(
            build_triage_digest_blocks(report),
            text=f"Support triage report #{report.id}: {report.ticket_count} tickets",
            context={"report_id": report.id},
        )
