"""
Unified Exception Hierarchy for Bookmark Enricher

All custom exceptions shared across the enrichment pipeline are defined here.
Import these exceptions from bookmark_enricher.utils.error_handler.

Only ConfigurationError and AuthenticationError are fatal for a whole
scheduler run. Every other APIClientError is retried by the enrichment client
and, once retries are exhausted, degrades to an error status on the affected
records.
"""

from typing import Optional


class EnricherError(Exception):
    """Base exception for all bookmark enricher errors."""

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(EnricherError):
    """Configuration-related errors (missing credential, invalid settings)."""

    pass


# ============================================================================
# Data Errors
# ============================================================================


class ImportFileError(EnricherError):
    """An import file could not be read."""

    pass


class StorageError(EnricherError):
    """Persistence layer read/write failures."""

    pass


class InvalidTransitionError(EnricherError):
    """Raised when a record status change is not in the transition table."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid status transition: {getattr(current, 'value', current)} -> "
            f"{getattr(target, 'value', target)}"
        )


# ============================================================================
# API Errors
# ============================================================================


class APIClientError(EnricherError):
    """Base class for errors raised by the enrichment API client."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIClientError):
    """API key invalid, expired, or not found. Never retried."""

    pass


class RateLimitError(APIClientError):
    """Quota exhausted or HTTP 429 from the API."""

    pass


class ServiceUnavailableError(APIClientError):
    """Server-side or transport failure."""

    pass


class ResponseFormatError(APIClientError):
    """The API answered, but not with a usable JSON array."""

    pass


def is_fatal_error(error: Exception) -> bool:
    """Return True when an error must abort the whole scheduler run."""
    return isinstance(error, (ConfigurationError, AuthenticationError))
