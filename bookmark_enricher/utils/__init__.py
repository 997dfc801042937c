"""
Utility modules for the bookmark enricher.

This package contains the exception hierarchy, logging setup, credential
masking and CLI input validation.
"""

from .error_handler import (
    APIClientError,
    AuthenticationError,
    ConfigurationError,
    EnricherError,
    RateLimitError,
)

__all__ = [
    "EnricherError",
    "ConfigurationError",
    "APIClientError",
    "AuthenticationError",
    "RateLimitError",
]
