"""
Triage Interfaces Layer
========================

Interface adapters (controllers) for ticket triage.

Contains:
- Controllers: ticket, telemetry and triage report routes
- Admin: bearer-protected operator routes
"""

from supportdesk.triage.interfaces.controllers import router as triage_router
from supportdesk.triage.interfaces.admin import router as admin_router

__all__ = ["triage_router", "admin_router"]
