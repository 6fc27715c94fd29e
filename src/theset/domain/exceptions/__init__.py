"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message lives on an attribute so handlers don't have to parse str(exc).
    # Don't raise this directly, pick a subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when input fails validation.

    Missing id or name on a record handed to reconciliation, malformed venue
    data inside a setlist, an unknown entity type on a sync request. Never
    retried.

    HTTP Status: 400
    """

    pass


class DuplicateEntityException(DomainException):
    """Raised when trying to create a duplicate entity.

    HTTP Status: 409
    """

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} already exists")
        self.entity_type = entity_type
        self.entity_id = entity_id


class BusinessRuleViolation(DomainException):
    """A business rule was violated.

    HTTP Status: 422

    Example:
        raise BusinessRuleViolation("Anonymous vote limit reached")
    """

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised when required configuration is missing or invalid.

    HTTP Status: 503 (Service Unavailable)

    Example:
        raise ConfigurationError("Ticketmaster API key not configured")
    """

    pass


class AuthenticationError(DomainException):
    """Caller is not authenticated.

    HTTP Status: 401
    """

    pass


class ExternalServiceError(DomainException):
    """External service (Spotify, Ticketmaster, Setlist.fm) returned an error.

    Covers 5xx responses, timeouts and transport failures. Orchestration loops
    catch it per item and count the item as failed.

    HTTP Status: 502 (Bad Gateway)
    """

    def __init__(
        self, service: str, message: str, status_code: int | None = None
    ) -> None:
        super().__init__(f"{service} API error: {message}")
        self.service = service
        self.status_code = status_code


class RateLimitExceededError(ExternalServiceError):
    """External service rate limit was exceeded (HTTP 429).

    HTTP Status: 429
    """

    def __init__(self, service: str, retry_after: float | None = None) -> None:
        detail = "rate limit exceeded"
        if retry_after is not None:
            detail += f" - retry after {retry_after:g}s"
        super().__init__(service, detail, status_code=429)
        self.retry_after = retry_after


class StorePermissionError(DomainException):
    """The store rejected a write for lack of privileges.

    Reconciliation answers this with one retry through the elevated
    credential.
    """

    pass


__all__ = [
    "AuthenticationError",
    "BusinessRuleViolation",
    "ConfigurationError",
    "DomainException",
    "DuplicateEntityException",
    "EntityNotFoundException",
    "ExternalServiceError",
    "RateLimitExceededError",
    "StorePermissionError",
    "ValidationException",
]
