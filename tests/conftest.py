"""Pytest configuration and fixtures."""

import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient

from supportdesk.config import Settings
from supportdesk.infrastructure.database import close_database, create_tables, init_database
from supportdesk.main import configure_services, create_app
from supportdesk.shared.infrastructure.guards import InMemoryGuardStore
from supportdesk.shared.infrastructure.notifications import SlackClient
from supportdesk.shared.infrastructure.rules import RulesConfigManager
from supportdesk.triage.application import AlertDispatcher
from supportdesk.triage.infrastructure import ticket_repository_scope

from tests.fakes import FakeNotifier, FakeSearchIndex

ADMIN_TOKEN = "admin-secret"
TRIAGE_TOKEN = "triage-secret"


# Test settings
@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with every external service disabled."""
    return Settings(
        environment="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'support.db'}",
        meili_host=None,
        llm_enabled=False,
        slack_webhook_url=None,
        redis_url=None,
        admin_token=ADMIN_TOKEN,
        triage_token=TRIAGE_TOKEN,
        health_token=None,
        support_rules_path=tmp_path / "support_rules.yaml",
        telemetry_allowlist=[],
    )


@pytest.fixture
async def database(test_settings) -> AsyncGenerator[None, None]:
    """Fresh SQLite database per test."""
    init_database(test_settings.database_url)
    await create_tables()
    yield
    await close_database()


@pytest.fixture
def search_index() -> FakeSearchIndex:
    return FakeSearchIndex()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def app(test_settings, database, search_index, notifier):
    """Application wired with fakes instead of running the lifespan."""
    application = create_app(with_lifespan=False)
    configure_services(
        application,
        test_settings,
        search_index=search_index,
        llm_client=None,
        slack_client=SlackClient(webhook_url="", config=test_settings),
        guard_store=InMemoryGuardStore(),
        rules_manager=RulesConfigManager(),
    )
    application.state.ticket_notifier = notifier
    application.state.alert_dispatcher = AlertDispatcher(notifier, ticket_repository_scope)
    return application


# FastAPI test client
@pytest.fixture
async def api_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the test application."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def triage_headers() -> dict:
    return {"Authorization": f"Bearer {TRIAGE_TOKEN}"}


# Sample ticket payload factory
@pytest.fixture
def ticket_payload():
    """Factory for ticket submission bodies."""

    def create_payload(**kwargs):
        defaults = {
            "app_slug": "resume-coach",
            "message": "Getting 500 error when I export my resume",
            "user_email": "jane@example.com",
        }
        return {**defaults, **kwargs}

    return create_payload
