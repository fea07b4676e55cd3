"""
Core Module
============

Framework-agnostic building blocks shared by every bounded context.
"""

from supportdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    AuthorizationException,
    ResourceNotFoundException,
    ContactRequiredException,
    DuplicateSubmissionException,
    RateLimitedException,
    EventDroppedException,
    ConfigurationException,
    ServiceUnavailableException,
    ExternalServiceException,
    LLMException,
    SearchIndexException,
    NotificationException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "AuthorizationException",
    "ResourceNotFoundException",
    "ContactRequiredException",
    "DuplicateSubmissionException",
    "RateLimitedException",
    "EventDroppedException",
    "ConfigurationException",
    "ServiceUnavailableException",
    "ExternalServiceException",
    "LLMException",
    "SearchIndexException",
    "NotificationException",
]
