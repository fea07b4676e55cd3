"""
Triage Domain Layer
===================

Domain layer for ticket triage.

Contains:
- Entities: Ticket, SupportEvent, TriageDecision, TriageReport and its parts
- Classifier: keyword signals and ordered triage rules
- Telemetry: event abuse checks
- Reporting: ticket clustering and suggested actions

This layer is framework-agnostic and contains pure business logic.
"""

from supportdesk.triage.domain.entities import (
    CategoryCluster,
    SuggestedAction,
    SupportEvent,
    Ticket,
    TriageDecision,
    TriageReport,
)
from supportdesk.triage.domain.classifier import (
    MessageSignals,
    answered_decision,
    classify,
    should_attempt_answer,
)
from supportdesk.triage.domain.telemetry import AbuseReason, AbuseVerdict, detect_abuse
from supportdesk.triage.domain.reporting import cluster_tickets, suggest_actions

__all__ = [
    "CategoryCluster",
    "SuggestedAction",
    "SupportEvent",
    "Ticket",
    "TriageDecision",
    "TriageReport",
    "MessageSignals",
    "answered_decision",
    "classify",
    "should_attempt_answer",
    "AbuseReason",
    "AbuseVerdict",
    "detect_abuse",
    "cluster_tickets",
    "suggest_actions",
]
