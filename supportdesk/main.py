"""
Support Desk - Main Application
===============================

KB-grounded answers, relevance gating and ticket triage for embedded
support widgets.

Modules:
- Assist: Answer widget questions from the support KB
- Triage: Tickets, telemetry, alerts, triage reports and operator views

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, classifier and scoring rules
- Infrastructure: Database, completion gateway, search index, Slack
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configuration
from supportdesk.config import Settings, settings

# Infrastructure
from supportdesk.infrastructure.database import (
    close_database, create_tables, get_session_context, init_database, ping_database
)
from supportdesk.infrastructure.llm import ILLMClient, build_llm_client
from supportdesk.infrastructure.search import ISearchIndex, build_search_index

# Shared kernel
from supportdesk.shared.api.health import HealthChecker, router as health_router
from supportdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    register_exception_handlers,
)
from supportdesk.shared.infrastructure.guards import (
    DuplicateGuard, IGuardStore, RateLimiter, build_guard_store
)
from supportdesk.shared.infrastructure.logging import get_logger, setup_logging
from supportdesk.shared.infrastructure.notifications import SlackClient
from supportdesk.shared.infrastructure.rules import RulesConfigManager
from supportdesk.shared.infrastructure.scheduler import IntervalJobScheduler

# Assist module
from supportdesk.assist.application import (
    AnswerService, AnswerSynthesizer, DocumentService, RetrievalMerger
)
from supportdesk.assist.interfaces import assist_router

# Triage module
from supportdesk.triage.application import AlertDispatcher, TriageReportService
from supportdesk.triage.infrastructure import (
    SlackTicketNotifier,
    SQLAlchemyEventRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyTriageReportRepository,
    ticket_repository_scope,
)
from supportdesk.triage.interfaces import admin_router, triage_router

logger = get_logger(__name__)

TELEMETRY_RATE_WINDOW_SECONDS = 60


def configure_services(
    app: FastAPI,
    config: Settings,
    search_index: Optional[ISearchIndex],
    llm_client: Optional[ILLMClient],
    slack_client: SlackClient,
    guard_store: IGuardStore,
    rules_manager: RulesConfigManager
) -> None:
    """Build the long-lived services and store them on app.state."""
    app.state.settings = config
    app.state.search_index = search_index
    app.state.llm_client = llm_client
    app.state.slack_client = slack_client
    app.state.guard_store = guard_store
    app.state.rules_manager = rules_manager

    # Assist
    app.state.answer_service = AnswerService(
        retrieval=RetrievalMerger(search_index, result_limit=config.search_result_limit),
        synthesizer=AnswerSynthesizer(
            llm_client,
            max_tokens=config.llm_max_tokens,
            temperature=config.llm_temperature
        ),
        synonyms_provider=lambda: rules_manager.config.synonyms,
    )
    app.state.document_service = DocumentService(search_index)

    # Guards (one store, disjoint key prefixes)
    app.state.ticket_rate_limiter = RateLimiter(
        guard_store,
        max_requests=config.rate_limit_max_requests,
        window_seconds=config.rate_limit_window_seconds,
        enabled=config.rate_limit_enabled,
    )
    app.state.ticket_duplicate_guard = DuplicateGuard(guard_store, config.dedupe_ttl_seconds)
    app.state.telemetry_rate_limiter = RateLimiter(
        guard_store,
        max_requests=config.telemetry_rate_limit,
        window_seconds=TELEMETRY_RATE_WINDOW_SECONDS,
    )
    app.state.telemetry_duplicate_guard = DuplicateGuard(
        guard_store, config.telemetry_dedupe_window_seconds
    )

    # Triage
    notifier = SlackTicketNotifier(slack_client)
    app.state.ticket_notifier = notifier
    app.state.alert_dispatcher = AlertDispatcher(notifier, ticket_repository_scope)

    app.state.health_checker = HealthChecker(
        db_check=ping_database,
        search_index=search_index,
        index_name=config.meili_index_name,
        ttl_seconds=config.health_cache_ttl_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables (degraded mode if unreachable)
    3. Load classifier rules and watch the rules file
    4. Build search index, completion gateway, Slack and guard store clients
    5. Wire services onto app.state
    6. Start the triage report scheduler when configured

    SHUTDOWN:
    1. Stop scheduler and rules watcher
    2. Close external clients
    3. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Support Desk", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Note: If database is not available, the server will start but
    # ticket, telemetry and operator endpoints will fail
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Loading classifier rules")
    rules_manager = RulesConfigManager()
    rules_manager.load(settings.support_rules_path)
    rules_manager.start_watching()

    search_index = build_search_index(settings)
    llm_client = build_llm_client(settings)
    slack_client = SlackClient(config=settings)
    guard_store = build_guard_store(settings)

    if not slack_client.enabled:
        logger.info("Slack webhook not configured - alerts and digests disabled")

    configure_services(
        app,
        settings,
        search_index=search_index,
        llm_client=llm_client,
        slack_client=slack_client,
        guard_store=guard_store,
        rules_manager=rules_manager,
    )

    scheduler = None
    if settings.triage_schedule_hours > 0:
        notifier = app.state.ticket_notifier

        async def triage_report_job():
            """Scheduled triage report."""
            async with get_session_context() as session:
                service = TriageReportService(
                    ticket_repository=SQLAlchemyTicketRepository(session),
                    event_repository=SQLAlchemyEventRepository(session),
                    report_repository=SQLAlchemyTriageReportRepository(session),
                    notifier=notifier,
                    llm_client=llm_client,
                )
                await service.run(hours=settings.triage_lookback_hours)

        scheduler = IntervalJobScheduler(
            job_id="triage_report",
            interval_seconds=settings.triage_schedule_hours * 3600
        )
        await scheduler.start(triage_report_job)

    logger.info("Support Desk started successfully", extra={
        "search_index": search_index is not None,
        "llm_enabled": llm_client is not None,
        "slack_enabled": slack_client.enabled,
        "triage_scheduler": scheduler is not None,
    })

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Support Desk")

    if scheduler:
        await scheduler.stop()
    rules_manager.stop_watching()

    await slack_client.close()
    await guard_store.close()
    if search_index:
        await search_index.close()
    if llm_client:
        await llm_client.close()

    await close_database()

    logger.info("Support Desk shutdown complete")


def create_app(with_lifespan: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        with_lifespan: False skips startup wiring; callers then run
            `configure_services` themselves (tests)
    """
    application = FastAPI(
        title="Support Desk API",
        description="""
    ## KB Answers and Ticket Triage for Support Widgets

    ---

    ### 💬 Assist Module

    **Endpoints:**
    - `POST /support/answer` - Answer a question from the KB, or fall back to a ticket suggestion
    - `GET /support/doc/{id}` - Fetch one KB article

    **Features:**
    - Query normalization, fluff stripping and conversation context
    - Multi-query retrieval with app- and route-aware re-ranking
    - Relevance gate (lexical >= 0.2 or ranking >= 0.4)
    - Short answers through an OpenAI-compatible gateway, verbatim KB text otherwise

    ---

    ### 🎫 Triage Module

    **Endpoints:**
    - `POST /support/ticket` - Submit a ticket (answer-first unless forced or clearly a bug)
    - `POST /support/telemetry` - Record a widget event
    - `POST /support/triage` - Generate a triage report
    - `GET /support/admin/...` - Operator listings and ticket updates

    **Features:**
    - Keyword triage: user_error, valid_bug, system_failure, feature_request
    - Per-IP rate limiting and duplicate suppression
    - Slack alerts for system failures and high/critical tickets
    - Clustered triage reports with suggested actions and a Slack digest

    ---
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan if with_lifespan else None
    )

    # === CORS Middleware ===
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    application.add_middleware(CorrelationIDMiddleware)
    application.add_middleware(MetricsMiddleware)
    application.add_middleware(LoggingMiddleware)
    register_exception_handlers(application)

    # === Include Module Routers ===
    application.include_router(assist_router)
    application.include_router(triage_router)
    application.include_router(admin_router)
    application.include_router(health_router)

    @application.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Support Desk",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/support/health",
            "modules": {
                "assist": {
                    "prefix": "/support",
                    "endpoints": [
                        "POST /support/answer - Answer from the KB",
                        "GET /support/doc/{id} - Fetch a KB article"
                    ]
                },
                "triage": {
                    "prefix": "/support",
                    "endpoints": [
                        "POST /support/ticket - Submit a ticket",
                        "POST /support/telemetry - Record a widget event",
                        "POST /support/triage - Generate a triage report",
                        "GET /support/admin/tickets - List tickets"
                    ]
                }
            }
        }

    return application


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "supportdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
