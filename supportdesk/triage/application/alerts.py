"""
Alert Dispatcher
================

Fire-and-forget Slack alerts for new tickets.

Runs after the response has been sent, so nothing here may raise.
"""

from datetime import datetime, timezone
from typing import AsyncContextManager, Callable

from sqlalchemy.exc import SQLAlchemyError

from supportdesk.core import ApplicationException
from supportdesk.shared.infrastructure.logging import get_logger
from supportdesk.triage.application.services import ITicketNotifier, ITicketRepository
from supportdesk.triage.domain.entities import Ticket

logger = get_logger(__name__)

RepositoryScope = Callable[[], AsyncContextManager[ITicketRepository]]


class AlertDispatcher:
    """
    Sends one alert per ticket and stamps `details.alerted_at` on success.

    The stamp is written through a fresh repository scope; the request
    session is closed by the time the background task runs.
    """

    def __init__(self, notifier: ITicketNotifier, repository_scope: RepositoryScope):
        self._notifier = notifier
        self._repository_scope = repository_scope

    @property
    def enabled(self) -> bool:
        return self._notifier.enabled

    async def dispatch(self, ticket: Ticket) -> bool:
        """Send the alert; returns True when Slack accepted it."""
        if not ticket.needs_alert:
            return False

        sent = await self._notifier.send_ticket_alert(ticket)
        if not sent:
            return False

        alerted_at = datetime.now(timezone.utc).isoformat()
        try:
            async with self._repository_scope() as repository:
                await repository.merge_details(ticket.id, {"alerted_at": alerted_at})
        except (SQLAlchemyError, ApplicationException, RuntimeError) as e:
            logger.error(
                "Failed to stamp alerted_at",
                extra={"ticket_id": ticket.id, "error": str(e)}
            )
        else:
            ticket.details["alerted_at"] = alerted_at

        return True
