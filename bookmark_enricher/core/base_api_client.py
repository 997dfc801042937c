"""
Base API Client for the Enrichment Service

This module provides the shared plumbing for enrichment clients: HTTP client
lifecycle, error classification, key masking, and the bounded retry policy.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, TypeVar

import httpx

from bookmark_enricher.core.data_models import EnrichmentResult
from bookmark_enricher.utils.api_key_validator import APIKeyValidator
from bookmark_enricher.utils.error_handler import (
    APIClientError,
    AuthenticationError,
    ConfigurationError,
    RateLimitError,
    ResponseFormatError,
    ServiceUnavailableError,
)

T = TypeVar("T")

# Substrings that identify a credential problem regardless of status code
AUTH_ERROR_MARKERS = ("API key not valid", "Requested entity was not found")
RATE_LIMIT_MARKERS = ("RESOURCE_EXHAUSTED", "rate limit", "quota")

SleepFunc = Callable[[float], Awaitable[Any]]


class BaseAPIClient(ABC):
    """
    Abstract base class for enrichment API clients.

    Retry policy: authentication errors are raised at once; rate-limit
    errors back off exponentially (``initial_backoff * backoff_factor **
    attempt``); any other APIClientError waits ``transient_delay``. After
    ``max_retries`` retries the last error is raised.
    """

    def __init__(
        self,
        api_key: Optional[str],
        timeout: float = 60.0,
        max_retries: int = 2,
        initial_backoff: float = 1.5,
        backoff_factor: float = 2.0,
        transient_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize the API client.

        Args:
            api_key: API key for authentication (None means unconfigured)
            timeout: Request timeout in seconds
            max_retries: Retries after the first attempt
            initial_backoff: Base delay for rate-limit backoff (seconds)
            backoff_factor: Growth factor for rate-limit backoff
            transient_delay: Fixed delay before retrying other failures
            transport: Optional httpx transport (used by tests)
            sleep: Awaitable sleep used between attempts
        """
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff
        self.backoff_factor = backoff_factor
        self.transient_delay = transient_delay
        self._transport = transport
        self._sleep = sleep

        self.logger = logging.getLogger(self.__class__.__name__)

        # Initialized in __aenter__
        self._client: Optional[httpx.AsyncClient] = None

        # Request statistics
        self.request_count = 0
        self.error_count = 0
        self.retry_count = 0

    async def __aenter__(self) -> "BaseAPIClient":
        """Async context manager entry."""
        await self._initialize_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self._cleanup_client()

    async def _initialize_client(self) -> None:
        """Initialize the HTTP client with appropriate configuration."""
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )

    async def _cleanup_client(self) -> None:
        """Clean up HTTP client resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_common_headers(self) -> Dict[str, str]:
        """Headers sent with every request."""
        return {
            "User-Agent": "BookmarkEnricher/1.0",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _get_auth_headers(self) -> Dict[str, str]:
        """Authentication headers; subclasses override."""
        return {}

    def _sanitize_error_message(self, message: str) -> str:
        """Remove the API key from a message."""
        return APIKeyValidator.mask_in_error_message(message, [self.api_key])

    def _require_api_key(self) -> None:
        if not self.api_key:
            raise ConfigurationError(
                "API key is not set. Configure gemini_api_key or set GEMINI_API_KEY."
            )

    def _classify_http_error(self, response: httpx.Response) -> APIClientError:
        """
        Convert a non-success response into the matching exception type.

        Args:
            response: The failed HTTP response

        Returns:
            An APIClientError subclass instance (not raised)
        """
        status_code = response.status_code
        message = f"HTTP {status_code}"
        try:
            payload = response.json()
            error = payload.get("error") if isinstance(payload, dict) else None
            if isinstance(error, dict):
                parts = [error.get("status"), error.get("message")]
                message = ": ".join(str(p) for p in parts if p) or message
        except ValueError:
            if response.text:
                message = f"{message}: {response.text[:200]}"
        message = self._sanitize_error_message(message)

        if status_code in (401, 403) or any(m in message for m in AUTH_ERROR_MARKERS):
            return AuthenticationError(message, status_code)
        if status_code == 429 or any(
            m.lower() in message.lower() for m in RATE_LIMIT_MARKERS
        ):
            return RateLimitError(message, status_code)
        if status_code >= 500 or status_code in (408, 423):
            return ServiceUnavailableError(message, status_code)
        return APIClientError(message, status_code)

    async def _post_json(self, url: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Make a single POST request and return the decoded JSON body.

        Raises:
            APIClientError: Or a subclass, for every failure mode
        """
        if not self._client:
            raise APIClientError("Client not initialized - use async context manager")

        headers = self._get_common_headers()
        headers.update(self._get_auth_headers())

        self.request_count += 1
        try:
            response = await self._client.post(url, json=dict(data), headers=headers)
        except httpx.HTTPError as e:
            raise ServiceUnavailableError(
                self._sanitize_error_message(f"{type(e).__name__}: {e}")
            ) from e

        if response.status_code >= 400:
            raise self._classify_http_error(response)

        try:
            body = response.json()
        except ValueError as e:
            raise APIClientError(f"Invalid JSON response: {e}") from e
        if not isinstance(body, dict):
            raise ResponseFormatError(
                f"Expected a JSON object from the API, got {type(body).__name__}"
            )
        return body

    def _retry_delay(self, error: APIClientError, attempt: int) -> float:
        """Delay before the next attempt (attempt is 0-based)."""
        if isinstance(error, RateLimitError):
            return self.initial_backoff * (self.backoff_factor**attempt)
        return self.transient_delay

    async def _call_with_retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` under the retry policy.

        Args:
            operation: Zero-argument coroutine function performing one attempt

        Returns:
            The operation's result
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except AuthenticationError as e:
                self.error_count += 1
                self.logger.error(f"Authentication failed: {e}")
                raise
            except APIClientError as e:
                self.error_count += 1
                if attempt >= self.max_retries:
                    self.logger.error(
                        f"Request failed permanently after {attempt + 1} attempts: {e}"
                    )
                    raise

                delay = self._retry_delay(e, attempt)
                self.retry_count += 1
                self.logger.warning(
                    f"Request failed (attempt {attempt + 1}/{self.max_retries + 1}): "
                    f"{e}. Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
                attempt += 1

    def get_statistics(self) -> Dict[str, float]:
        """Get client statistics."""
        return {
            "request_count": self.request_count,
            "error_count": self.error_count,
            "retry_count": self.retry_count,
            "success_rate": (
                (self.request_count - self.error_count)
                / max(self.request_count, 1)
                * 100
            ),
        }

    @abstractmethod
    async def enrich(
        self,
        urls: List[str],
        contexts: Optional[Mapping[str, Optional[str]]] = None,
    ) -> List[EnrichmentResult]:
        """
        Enrich a batch of URLs.

        Returns:
            One result per input URL, in input order
        """
        pass

    async def enrich_one(self, url: str, context: Optional[str] = None) -> EnrichmentResult:
        """Enrich a single URL (a batch of one)."""
        results = await self.enrich([url], {url: context} if context else None)
        return results[0]
