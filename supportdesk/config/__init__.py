"""
Configuration Module
====================

Service settings loaded from the environment, plus the constant vocabularies
(severities, triage categories, reasons) shared by every module.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every external dependency (database, search index, completion gateway,
    Slack, Redis) is optional at startup; a missing one degrades the
    corresponding feature instead of preventing boot.
    """

    # ========== Application ==========
    app_name: str = Field(default="supportdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/support",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Search Index (Meilisearch) ==========
    meili_host: Optional[str] = Field(
        default=None,
        description="Meilisearch base URL, e.g. http://localhost:7700"
    )
    meili_api_key: Optional[str] = Field(default=None, description="Meilisearch search key")
    meili_index_name: str = Field(default="support_kb", description="Support KB index uid")
    search_timeout_seconds: float = Field(
        default=3.0,
        description="Timeout for a single index request",
        gt=0,
        le=30
    )
    search_result_limit: int = Field(
        default=8,
        description="Hits requested per query",
        ge=1,
        le=50
    )

    # ========== Completion Gateway (OpenAI-compatible) ==========
    llm_enabled: bool = Field(
        default=False,
        description="Synthesize answers through the completion gateway"
    )
    llm_gateway_url: str = Field(
        default="http://localhost:4000/v1",
        description="Base URL of the OpenAI-compatible gateway"
    )
    llm_api_key: Optional[str] = Field(default=None, description="Gateway API key")
    llm_model: str = Field(default="claude-3-haiku", description="Model requested from the gateway")
    llm_max_tokens: int = Field(
        default=300,
        description="Max tokens for synthesized answers",
        ge=1,
        le=4000
    )
    llm_temperature: float = Field(
        default=0.3,
        description="Sampling temperature for synthesized answers",
        ge=0.0,
        le=1.0
    )
    llm_timeout_seconds: float = Field(
        default=8.0,
        description="Timeout for a single gateway call",
        gt=0,
        le=60
    )
    mock_llm: bool = Field(
        default=False,
        description="Use mock LLM responses for testing (no API calls)"
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack incoming webhook for alerts and digests"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )
    slack_max_retries: int = Field(
        default=2,
        description="Delivery attempts per Slack message",
        ge=1,
        le=5
    )

    # ========== Ticket Guards ==========
    rate_limit_enabled: bool = Field(default=True, description="Enforce the ticket rate limit")
    rate_limit_window_seconds: int = Field(default=60, description="Rate limit window", ge=1)
    rate_limit_max_requests: int = Field(
        default=30,
        description="Max ticket submissions per client per window",
        ge=1
    )
    dedupe_ttl_seconds: int = Field(
        default=300,
        description="Window during which an identical ticket is rejected",
        ge=1
    )
    dedupe_prune_threshold: int = Field(
        default=1000,
        description="In-memory dedupe entries before expired ones are evicted",
        ge=10
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL for shared guard state (in-memory when unset)"
    )

    # ========== Telemetry ==========
    telemetry_max_body_size: int = Field(default=10240, description="Max telemetry body in bytes", ge=1)
    telemetry_allowlist: List[str] = Field(
        default_factory=list,
        description="Accepted event types (empty allows all)"
    )
    telemetry_drop_abuse: bool = Field(
        default=False,
        description="Reject abusive events instead of storing them flagged"
    )
    telemetry_rate_limit: int = Field(default=60, description="Events per client session per minute", ge=1)
    telemetry_dedupe_window_seconds: float = Field(
        default=5.0,
        description="Window during which an identical event counts as duplicate",
        gt=0
    )

    # ========== Tokens ==========
    admin_token: Optional[str] = Field(default=None, description="Bearer token for operator endpoints")
    triage_token: Optional[str] = Field(default=None, description="Bearer token for the triage job endpoint")
    health_token: Optional[str] = Field(default=None, description="Bearer token for the health endpoint")
    health_cache_ttl_seconds: int = Field(
        default=600,
        description="Seconds a health result is served from cache",
        ge=0
    )

    # ========== Triage Reports ==========
    triage_schedule_hours: int = Field(
        default=0,
        description="Hours between scheduled triage reports (0 disables the job)",
        ge=0
    )
    triage_lookback_hours: int = Field(
        default=24,
        description="Lookback window for scheduled triage reports",
        ge=1,
        le=24 * 31
    )

    # ========== Classifier Rules ==========
    support_rules_path: Path = Field(
        default=Path("support_rules.yaml"),
        description="YAML file overriding classifier terms and synonym table"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("admin_token", "triage_token", "health_token", "slack_webhook_url", "redis_url")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty or whitespace-only values as unset."""
        if v is None:
            return None
        v = v.strip()
        return v or None


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Severity(str):
    """Ticket severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TriageCategory(str):
    """Triage categories assigned to support requests."""
    USER_ERROR = "user_error"
    VALID_BUG = "valid_bug"
    SYSTEM_FAILURE = "system_failure"
    FEATURE_REQUEST = "feature_request"
    FALSE_BUG = "false_bug"     # reserved, never produced by the classifier
    UNKNOWN = "unknown"         # tickets stored without a triage payload


class TriageAction(str):
    """What the service did with a request."""
    ANSWER_NOW = "answer_now"
    CREATE_TICKET = "create_ticket"


class TriageReason(str):
    """Why a triage decision was made."""
    KB_HIT = "kb_hit"
    SYSTEM_SIGNAL = "system_signal"
    BUG_SIGNAL = "bug_signal"
    FEATURE_SIGNAL = "feature_signal"
    FORCED = "forced"
    NO_KB_MATCH = "no_kb_match"


class GateReason(str):
    """Relevance gate outcomes."""
    NO_HITS = "no_hits"
    WEAK_MATCH = "weak_match"
    PASSED = "passed"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ActionPriority(str):
    """Priority of a suggested triage action."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ActionType(str):
    """Kinds of suggested triage actions."""
    INVESTIGATE = "investigate"
    FIX = "fix"
    REVIEW = "review"
    MONITOR = "monitor"
    KB_UPDATE = "kb_update"


# ========== Lists for validation ==========

VALID_SEVERITIES = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]
ALERT_SEVERITIES = [Severity.HIGH, Severity.CRITICAL]
VALID_CATEGORIES = [
    TriageCategory.USER_ERROR, TriageCategory.VALID_BUG,
    TriageCategory.SYSTEM_FAILURE, TriageCategory.FEATURE_REQUEST,
    TriageCategory.FALSE_BUG
]
VALID_STATUSES = [
    TicketStatus.OPEN, TicketStatus.IN_PROGRESS,
    TicketStatus.RESOLVED, TicketStatus.CLOSED
]
PRIORITY_ORDER = {
    ActionPriority.CRITICAL: 0,
    ActionPriority.HIGH: 1,
    ActionPriority.MEDIUM: 2,
    ActionPriority.LOW: 3,
}

# Relevance gate thresholds (inclusive)
LEXICAL_THRESHOLD = 0.2
RANKING_THRESHOLD = 0.4
