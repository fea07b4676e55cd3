"""Integration tests for POST /support/ticket."""

import pytest

from supportdesk.shared.infrastructure.guards import InMemoryGuardStore, RateLimiter

from tests.fakes import kb_hit


async def list_tickets(api_client, admin_headers) -> dict:
    response = await api_client.get("/support/admin/tickets", headers=admin_headers)
    assert response.status_code == 200
    return response.json()


class TestTicketCreation:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_system_failure_is_alerted(self, api_client, admin_headers, ticket_payload, notifier):
        """A 500 report skips the KB, is stored and alerted once."""
        response = await api_client.post("/support/ticket", json=ticket_payload(severity="high"))

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        ticket = data["ticket"]
        assert ticket["app_slug"] == "resume-coach"
        assert ticket["severity"] == "high"
        assert ticket["triage"] == {
            "category": "system_failure",
            "action": "create_ticket",
            "reason": "system_signal",
            "forced": False,
        }
        assert ticket["alert_queued"] is True

        assert [t.id for t in notifier.alerts] == [ticket["id"]]

        listed = await list_tickets(api_client, admin_headers)
        assert listed["tickets"][0]["id"] == ticket["id"]
        assert listed["tickets"][0]["slack_alerted"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_feature_request_is_not_alerted(self, api_client, ticket_payload, notifier):
        response = await api_client.post("/support/ticket", json=ticket_payload(message="please add dark mode"))

        ticket = response.json()["ticket"]
        assert ticket["triage"]["category"] == "feature_request"
        assert "alert_queued" not in ticket
        assert notifier.alerts == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_no_kb_match(self, api_client, ticket_payload, search_index):
        response = await api_client.post("/support/ticket", json=ticket_payload(message="Where do I find my invoices?"))

        triage = response.json()["ticket"]["triage"]
        assert triage["category"] == "user_error"
        assert triage["reason"] == "no_kb_match"
        assert search_index.queries

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_soft_signal_becomes_system_failure(self, api_client, ticket_payload):
        response = await api_client.post("/support/ticket", json=ticket_payload(message="The page is stuck loading"))

        ticket = response.json()["ticket"]
        assert ticket["triage"]["category"] == "system_failure"
        assert ticket["alert_queued"] is True

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_route_from_referer(self, api_client, admin_headers, ticket_payload):
        response = await api_client.post(
            "/support/ticket",
            json=ticket_payload(message="The export button is broken"),
            headers={"Referer": "https://app.example.com/resume/export?tab=pdf"},
        )
        ticket_id = response.json()["ticket"]["id"]

        detail = await api_client.get(f"/support/admin/tickets/{ticket_id}", headers=admin_headers)

        assert detail.json()["ticket"]["route"] == "/resume/export"
        assert detail.json()["ticket"]["details"]["triage"]["route"] == "/resume/export"


class TestTicketAnswered:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_kb_answer_creates_no_ticket(self, api_client, admin_headers, ticket_payload, search_index):
        search_index.hits = [
            kb_hit(12, "Reset your password", summary="Use the reset link from Settings > Account.", ranking=0.86)
        ]

        response = await api_client.post(
            "/support/ticket",
            json=ticket_payload(message="How do I reset my password?", route="/account/settings"),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["resolved"] is True
        assert data["answer"] == "Use the reset link from Settings > Account."
        assert data["triage"]["reason"] == "kb_hit"
        assert data["triage"]["action"] == "answer_now"
        assert data["triage"]["route"] == "/account/settings"
        assert data["sources"][0]["id"] == "support_kb_articles_12"
        assert data["llmEnabled"] is False
        assert "ticket" not in data

        assert (await list_tickets(api_client, admin_headers))["pagination"]["total"] == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_forced_ticket_skips_kb(self, api_client, ticket_payload, search_index):
        search_index.hits = [kb_hit(12, "Reset your password", summary="Use the reset link.", ranking=0.86)]

        response = await api_client.post(
            "/support/ticket",
            json=ticket_payload(message="How do I reset my password?", force_ticket=True),
        )

        triage = response.json()["ticket"]["triage"]
        assert triage["reason"] == "forced"
        assert triage["forced"] is True
        assert search_index.queries == []


class TestTicketRejections:

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_forced_without_contact(self, api_client, admin_headers):
        response = await api_client.post("/support/ticket", json={
            "app_slug": "resume-coach",
            "message": "Please call me back",
            "force_ticket": True,
        })

        assert response.status_code == 400
        assert response.json()["needs_contact"] is True
        assert (await list_tickets(api_client, admin_headers))["pagination"]["total"] == 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_duplicate(self, api_client, ticket_payload):
        first = await api_client.post("/support/ticket", json=ticket_payload())
        second = await api_client.post("/support/ticket", json=ticket_payload(message="getting 500 ERROR when I export my resume"))

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error"] == "duplicate"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_rate_limited(self, app, api_client, ticket_payload):
        app.state.ticket_rate_limiter = RateLimiter(InMemoryGuardStore(), max_requests=2, window_seconds=60)
        headers = {"X-Forwarded-For": "198.51.100.4, 10.0.0.1"}

        for message in ("Export is broken", "Login is broken"):
            response = await api_client.post("/support/ticket", json=ticket_payload(message=message), headers=headers)
            assert response.status_code == 200

        limited = await api_client.post(
            "/support/ticket", json=ticket_payload(message="Billing is broken"), headers=headers
        )

        assert limited.status_code == 429
        assert limited.json()["message"] == "rate_limited"
        assert limited.json()["retry_after"] >= 1
        assert limited.headers["Retry-After"] == str(limited.json()["retry_after"])

        other_client = await api_client.post(
            "/support/ticket",
            json=ticket_payload(message="Billing is broken"),
            headers={"X-Forwarded-For": "198.51.100.5"},
        )
        assert other_client.status_code == 200

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"app_slug": "Resume Coach!", "message": "hello"},
        {"app_slug": "resume-coach", "message": "   "},
        {"message": "no app"},
    ])
    async def test_validation_errors_are_400(self, api_client, body):
        response = await api_client.post("/support/ticket", json=body)

        assert response.status_code == 400
        assert response.json()["ok"] is False
