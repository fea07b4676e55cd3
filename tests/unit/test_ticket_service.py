"""Unit tests for ticket intake."""

import pytest

from supportdesk.assist.application import AnswerService, AnswerSynthesizer, RetrievalMerger
from supportdesk.config import TriageAction, TriageCategory, TriageReason
from supportdesk.core import ContactRequiredException, DuplicateSubmissionException, RepositoryException
from supportdesk.shared.infrastructure.guards import DuplicateGuard, InMemoryGuardStore
from supportdesk.triage.application.dto import TicketRequest
from supportdesk.triage.application.services import ClientContext, TicketService

from tests.fakes import FakeSearchIndex, InMemoryTicketRepository, kb_hit

CLIENT = ClientContext(client_ip="203.0.113.7", user_agent="pytest", referer=None)


@pytest.fixture
def repository() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


def build_service(repository, index=None, alerts_enabled=False) -> TicketService:
    answer_service = AnswerService(RetrievalMerger(index or FakeSearchIndex()), AnswerSynthesizer(None))
    return TicketService(
        repository,
        DuplicateGuard(InMemoryGuardStore(), ttl_seconds=300),
        answer_service=answer_service,
        alerts_enabled=alerts_enabled,
    )


def request(message: str, **kwargs) -> TicketRequest:
    return TicketRequest(app_slug="resume-coach", message=message, user_email="jane@example.com", **kwargs)


class TestTicketService:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_forced_ticket_requires_contact(self, repository):
        payload = TicketRequest(app_slug="resume-coach", message="Please call me", force_ticket=True)

        with pytest.raises(ContactRequiredException):
            await build_service(repository).submit(payload, CLIENT)

        assert repository.tickets == {}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_legacy_email_counts_as_contact(self, repository):
        payload = TicketRequest(
            app_slug="resume-coach", message="Please call me", force_ticket=True, email="jane@example.com"
        )

        outcome = await build_service(repository).submit(payload, CLIENT)

        assert outcome.ticket.user_email == "jane@example.com"
        assert outcome.decision.reason == TriageReason.FORCED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_answered_without_ticket(self, repository):
        index = FakeSearchIndex(hits=[kb_hit(1, "Reset your password", summary="Use the reset link.", ranking=0.9)])

        outcome = await build_service(repository, index).submit(request("How do I reset my password?"), CLIENT)

        assert outcome.answered is True
        assert outcome.ticket is None
        assert outcome.answer.answer == "Use the reset link."
        assert outcome.decision.action == TriageAction.ANSWER_NOW
        assert outcome.decision.reason == TriageReason.KB_HIT
        assert repository.tickets == {}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_strong_signal_skips_answer(self, repository):
        index = FakeSearchIndex(hits=[kb_hit(1, "Export troubleshooting", summary="Retry the export.", ranking=0.9)])

        outcome = await build_service(repository, index).submit(request("The export button is broken"), CLIENT)

        assert index.queries == []
        assert outcome.decision.category == TriageCategory.VALID_BUG
        assert outcome.ticket.id in repository.tickets

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_soft_signal_escalates_after_kb_miss(self, repository):
        index = FakeSearchIndex()

        outcome = await build_service(repository, index).submit(request("The page is stuck"), CLIENT)

        assert index.queries
        assert outcome.decision.category == TriageCategory.SYSTEM_FAILURE
        assert outcome.ticket.details["triage"]["confidence"] == 0.6

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ticket_fields(self, repository):
        payload = request(
            "Getting 500 error on export",
            severity="HIGH",
            route="/resume/export",
            details={"plan": "pro"},
        )

        outcome = await build_service(repository).submit(payload, CLIENT)
        ticket = outcome.ticket

        assert ticket.severity == "high"
        assert ticket.route == "/resume/export"
        assert ticket.client_ip == "203.0.113.7"
        assert ticket.user_agent == "pytest"
        assert ticket.details["plan"] == "pro"
        assert ticket.details["route"] == "/resume/export"
        assert ticket.details["triage"]["category"] == TriageCategory.SYSTEM_FAILURE

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("alerts_enabled, expected", [(True, True), (False, False)])
    async def test_alert_needed_only_when_enabled(self, repository, alerts_enabled, expected):
        service = build_service(repository, alerts_enabled=alerts_enabled)
        outcome = await service.submit(request("Getting 502 on save"), CLIENT)
        assert outcome.alert_needed is expected

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_low_severity_feature_does_not_alert(self, repository):
        service = build_service(repository, alerts_enabled=True)
        outcome = await service.submit(request("please add dark mode", severity="low"), CLIENT)
        assert outcome.alert_needed is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duplicate_rejected(self, repository):
        service = build_service(repository)
        await service.submit(request("The export button is broken"), CLIENT)

        with pytest.raises(DuplicateSubmissionException):
            await service.submit(request("the export button is  BROKEN"), CLIENT)

        assert len(repository.tickets) == 1


class FailingOnceTicketRepository(InMemoryTicketRepository):
    """Raises on the first insert, then stores normally."""

    def __init__(self):
        super().__init__()
        self.failures = 1

    async def create(self, ticket):
        if self.failures:
            self.failures -= 1
            raise RepositoryException("Failed to create ticket")
        return await super().create(ticket)


class TestTicketStoreFailure:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retry_after_failed_insert_is_stored(self):
        repository = FailingOnceTicketRepository()
        service = build_service(repository)
        payload = request("The export button is broken")

        with pytest.raises(RepositoryException):
            await service.submit(payload, CLIENT)

        outcome = await service.submit(payload, CLIENT)

        assert outcome.ticket is not None
        assert len(repository.tickets) == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_abandon_releases_dedupe_mark(self, repository):
        service = build_service(repository)
        payload = request("The export button is broken")

        outcome = await service.submit(payload, CLIENT)
        await service.abandon(outcome)

        retried = await service.submit(payload, CLIENT)
        assert retried.ticket is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_abandon_without_key_keeps_marks(self, repository):
        service = build_service(repository)
        outcome = await service.submit(request("The export button is broken"), CLIENT)
        outcome.dedupe_key = None

        await service.abandon(outcome)

        with pytest.raises(DuplicateSubmissionException):
            await service.submit(request("The export button is broken"), CLIENT)
