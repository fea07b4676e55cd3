"""
Core Exceptions
================

Application exception hierarchy.

Services raise these; the API layer maps each one to an HTTP status and a
`{"ok": false, ...}` body in `supportdesk.shared.api.middleware`.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain rule violations."""

    status_code = 400


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Malformed or missing request fields."""

    status_code = 400


class AuthorizationException(ApplicationException):
    """Missing or incorrect bearer token."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[dict] = None):
        super().__init__(message, details)


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    status_code = 404

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ContactRequiredException(DomainException):
    """A forced ticket was submitted without any way to follow up."""

    def __init__(
        self,
        message: str = "Please provide your email address so we can follow up on your ticket.",
        details: Optional[dict] = None
    ):
        super().__init__(message, details)


class DuplicateSubmissionException(DomainException):
    """The same ticket was submitted again inside the dedupe window."""

    status_code = 409

    def __init__(
        self,
        message: str = "This ticket appears to be a duplicate. Please wait before submitting again.",
        details: Optional[dict] = None
    ):
        super().__init__(message, details)


class RateLimitedException(DomainException):
    """Too many submissions from one client in the active window."""

    status_code = 429

    def __init__(self, retry_after: int, details: Optional[dict] = None):
        self.retry_after = max(1, int(retry_after))
        super().__init__("rate_limited", details)


class EventDroppedException(DomainException):
    """A telemetry event was flagged as abuse and dropping is enabled."""

    def __init__(self, reason: str, details: Optional[dict] = None):
        self.reason = reason
        super().__init__(reason, details)

    @property
    def status_code(self) -> int:
        if self.reason == "rate_limited":
            return 429
        if self.reason == "duplicate":
            return 409
        return 400


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class ServiceUnavailableException(ApplicationException):
    """A required collaborator was not configured at startup."""

    status_code = 503


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Exception for completion gateway failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Gateway", message, details)


class SearchIndexException(ExternalServiceException):
    """Exception for search index failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Search Index", message, details)


class NotificationException(ExternalServiceException):
    """Exception for Slack delivery failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Slack", message, details)
