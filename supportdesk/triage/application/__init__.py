"""
Triage Application Layer
=========================

Application layer for ticket triage.

Contains:
- Services: TicketService, TelemetryService, TriageReportService, AlertDispatcher
- Repository and notifier interfaces
- DTOs: Data transfer objects for API serialization
"""

from supportdesk.triage.application.dto import (
    TicketRequest,
    TelemetryRequest,
    TicketUpdateRequest,
    AnsweredTicketResponse,
    CreatedTicketResponse,
    TelemetryResponse,
    TriageRunResponse,
    TicketListResponse,
    TicketDetailResponse,
    TicketUpdateResponse,
    TriageReportListResponse,
    EventListResponse,
)
from supportdesk.triage.application.services import (
    ClientContext,
    TicketOutcome,
    TicketService,
    TelemetryService,
    TicketFilters,
    EventFilters,
    ReportFilters,
    ITicketRepository,
    IEventRepository,
    ITriageReportRepository,
    ITicketNotifier,
)
from supportdesk.triage.application.reports import TriageReportService
from supportdesk.triage.application.alerts import AlertDispatcher

__all__ = [
    # DTOs
    "TicketRequest",
    "TelemetryRequest",
    "TicketUpdateRequest",
    "AnsweredTicketResponse",
    "CreatedTicketResponse",
    "TelemetryResponse",
    "TriageRunResponse",
    "TicketListResponse",
    "TicketDetailResponse",
    "TicketUpdateResponse",
    "TriageReportListResponse",
    "EventListResponse",
    # Services
    "ClientContext",
    "TicketOutcome",
    "TicketService",
    "TelemetryService",
    "TriageReportService",
    "AlertDispatcher",
    "TicketFilters",
    "EventFilters",
    "ReportFilters",
    # Interfaces
    "ITicketRepository",
    "IEventRepository",
    "ITriageReportRepository",
    "ITicketNotifier",
]
