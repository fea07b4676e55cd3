"""
Triage Infrastructure Layer
============================

Infrastructure implementations for ticket triage.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Data access implementations
- External: Slack notifier and Block Kit builders
"""

from supportdesk.triage.infrastructure.models import (
    TicketModel,
    SupportEventModel,
    TriageReportModel,
)
from supportdesk.triage.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyEventRepository,
    SQLAlchemyTriageReportRepository,
    ticket_repository_scope,
)
from supportdesk.triage.infrastructure.external import (
    SlackTicketNotifier,
    build_ticket_alert_blocks,
    build_triage_digest_blocks,
)

__all__ = [
    "TicketModel",
    "SupportEventModel",
    "TriageReportModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyEventRepository",
    "SQLAlchemyTriageReportRepository",
    "ticket_repository_scope",
    "SlackTicketNotifier",
    "build_ticket_alert_blocks",
    "build_triage_digest_blocks",
]
