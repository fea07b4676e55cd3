"""
Triage Report Rules
===================

Clustering of tickets by triage category and the threshold rules that
turn clusters into suggested operator actions.
"""

from collections import Counter
from datetime import datetime
from typing import Dict, List, Sequence

from supportdesk.config import (
    PRIORITY_ORDER, ActionPriority, ActionType, Severity, TriageCategory
)
from supportdesk.triage.domain.entities import CategoryCluster, SuggestedAction, Ticket

MAX_EXAMPLES = 3
EXAMPLE_LENGTH = 100
MAX_TOP_ROUTES = 3
SPIKE_MIN_COUNT = 3
SPIKE_RATIO = 0.6


def cluster_tickets(
    tickets: Sequence[Ticket],
    period_start: datetime,
    period_end: datetime
) -> Dict[str, CategoryCluster]:
    """
    Group tickets by `details.triage.category`.

    Examples follow ticket order (newest first from the repository).
    A cluster spikes when it has at least 3 tickets and more than 60% of
    them fall in the later half of the window.
    """
    halfway = period_start + (period_end - period_start) / 2
    clusters: Dict[str, CategoryCluster] = {}
    routes: Dict[str, Counter] = {}
    recent: Counter = Counter()

    for ticket in tickets:
        category = ticket.category
        cluster = clusters.get(category)
        if cluster is None:
            cluster = clusters[category] = CategoryCluster(category=category)
            routes[category] = Counter()

        cluster.count += 1
        if len(cluster.examples) < MAX_EXAMPLES:
            cluster.examples.append(ticket.message[:EXAMPLE_LENGTH])

        severity = ticket.severity or Severity.MEDIUM
        cluster.severity_breakdown[severity] = cluster.severity_breakdown.get(severity, 0) + 1

        if ticket.route:
            routes[category][ticket.route] += 1

        created_at = ticket.created_at
        if created_at is not None:
            if cluster.first_seen is None or created_at < cluster.first_seen:
                cluster.first_seen = created_at
            if cluster.last_seen is None or created_at > cluster.last_seen:
                cluster.last_seen = created_at
            if created_at >= halfway:
                recent[category] += 1

    for category, cluster in clusters.items():
        # Counter.most_common keeps first-seen order for ties
        cluster.top_routes = [
            {"route": route, "count": count}
            for route, count in routes[category].most_common(MAX_TOP_ROUTES)
        ]
        cluster.recent_spike = (
            cluster.count >= SPIKE_MIN_COUNT
            and recent[category] > cluster.count * SPIKE_RATIO
        )

    return clusters


def _route_list(cluster: CategoryCluster) -> str:
    return ", ".join(r["route"] for r in cluster.top_routes)


def _system_failure_action(cluster: CategoryCluster) -> SuggestedAction:
    if cluster.has_severity(Severity.CRITICAL):
        priority = ActionPriority.CRITICAL
    elif cluster.has_severity(Severity.HIGH):
        priority = ActionPriority.HIGH
    else:
        priority = ActionPriority.MEDIUM

    if cluster.recent_spike:
        description = (
            f"SPIKE DETECTED: {cluster.count} system failures, increasing in recent hours. "
            f"Top routes: {_route_list(cluster) or 'N/A'}"
        )
    elif cluster.count > 5:
        description = (
            f"{cluster.count} system failures detected. "
            "Investigate infrastructure and check error logs."
        )
    else:
        description = f"{cluster.count} system failures detected. Check infrastructure and error logs."

    return SuggestedAction(
        id="",
        priority=priority,
        type=ActionType.INVESTIGATE,
        title=f"Investigate system failures ({cluster.count})",
        description=description,
        category=TriageCategory.SYSTEM_FAILURE,
        ticket_count=cluster.count,
        assignee_hint="infrastructure",
    )


def _bug_action(cluster: CategoryCluster) -> SuggestedAction:
    high = cluster.has_severity(Severity.CRITICAL) or cluster.count > 5
    spike = "SPIKE DETECTED. " if cluster.recent_spike else ""
    return SuggestedAction(
        id="",
        priority=ActionPriority.HIGH if high else ActionPriority.MEDIUM,
        type=ActionType.FIX,
        title=f"Triage bug reports ({cluster.count})",
        description=(
            f"{cluster.count} bug reports need review. {spike}"
            f"Top affected routes: {_route_list(cluster) or 'various'}"
        ),
        category=TriageCategory.VALID_BUG,
        ticket_count=cluster.count,
        assignee_hint="engineering",
    )


def _feature_action(cluster: CategoryCluster) -> SuggestedAction:
    return SuggestedAction(
        id="",
        priority=ActionPriority.MEDIUM if cluster.count > 10 else ActionPriority.LOW,
        type=ActionType.REVIEW,
        title=f"Review feature requests ({cluster.count})",
        description=f"{cluster.count} feature requests. Consider adding to product roadmap.",
        category=TriageCategory.FEATURE_REQUEST,
        ticket_count=cluster.count,
        assignee_hint="product",
    )


def _kb_gap_action(cluster: CategoryCluster) -> SuggestedAction:
    return SuggestedAction(
        id="",
        priority=ActionPriority.LOW,
        type=ActionType.KB_UPDATE,
        title=f"Update KB for common questions ({cluster.count})",
        description=(
            f"{cluster.count} user questions not answered by KB. Review for documentation gaps. "
            f"Common examples: {'; '.join(cluster.examples[:2])}"
        ),
        category=TriageCategory.USER_ERROR,
        ticket_count=cluster.count,
        assignee_hint="docs",
    )


def suggest_actions(clusters: Dict[str, CategoryCluster], ticket_count: int) -> List[SuggestedAction]:
    """Threshold rules over clusters, sorted critical first."""
    actions: List[SuggestedAction] = []

    system = clusters.get(TriageCategory.SYSTEM_FAILURE)
    if system and system.count > 0:
        actions.append(_system_failure_action(system))

    bugs = clusters.get(TriageCategory.VALID_BUG)
    if bugs and bugs.count > 0:
        actions.append(_bug_action(bugs))

    features = clusters.get(TriageCategory.FEATURE_REQUEST)
    if features and features.count > 0:
        actions.append(_feature_action(features))

    user_errors = clusters.get(TriageCategory.USER_ERROR)
    if user_errors and user_errors.count > 5:
        actions.append(_kb_gap_action(user_errors))

    if ticket_count == 0:
        actions.append(SuggestedAction(
            id="",
            priority=ActionPriority.LOW,
            type=ActionType.MONITOR,
            title="Systems healthy",
            description="No tickets in period. Continue monitoring.",
            category="none",
            ticket_count=0,
        ))

    # Ids follow creation order; the sort below is stable
    for number, action in enumerate(actions, start=1):
        action.id = f"action-{number}"

    return sorted(actions, key=lambda a: PRIORITY_ORDER.get(a.priority, len(PRIORITY_ORDER)))


def clusters_by_count(clusters: Dict[str, CategoryCluster]) -> List[CategoryCluster]:
    return sorted(clusters.values(), key=lambda c: c.count, reverse=True)
