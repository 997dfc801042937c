"""
Gemini API Client Implementation

This module provides a client for the Google Gemini generateContent API with
bookmark-specific functionality: one grounded call per batch of URLs, parsed
into one enrichment result per URL.
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional

import httpx

from bookmark_enricher.core.base_api_client import BaseAPIClient, SleepFunc
from bookmark_enricher.core.data_models import EnrichmentResult
from bookmark_enricher.core.structured_output import (
    create_batch_prompt,
    extract_sources,
    match_results,
    parse_enrichment_items,
)
from bookmark_enricher.utils.error_handler import ResponseFormatError


class GeminiAPIClient(BaseAPIClient):
    """
    Gemini API client for enriching bookmarks.

    Grounding uses either the Google Search tool or the URL context tool,
    selected by ``retrieval_tool``.
    """

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
    DEFAULT_MODEL = "gemini-2.5-flash"
    RETRIEVAL_TOOLS = {
        "google_search": {"google_search": {}},
        "url_context": {"url_context": {}},
    }

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        retrieval_tool: str = "google_search",
        temperature: float = 0.1,
        max_sources: int = 5,
        timeout: float = 60.0,
        max_retries: int = 2,
        initial_backoff: float = 1.5,
        backoff_factor: float = 2.0,
        transient_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize Gemini API client.

        Args:
            api_key: Gemini API key
            model: Model name
            retrieval_tool: "google_search" or "url_context"
            temperature: Sampling temperature
            max_sources: Maximum citation sources attached per batch
        """
        super().__init__(
            api_key,
            timeout=timeout,
            max_retries=max_retries,
            initial_backoff=initial_backoff,
            backoff_factor=backoff_factor,
            transient_delay=transient_delay,
            transport=transport,
            sleep=sleep,
        )
        if retrieval_tool not in self.RETRIEVAL_TOOLS:
            raise ValueError(
                f"Unsupported retrieval tool: {retrieval_tool}. "
                f"Available: {list(self.RETRIEVAL_TOOLS)}"
            )
        self.model = model
        self.retrieval_tool = retrieval_tool
        self.temperature = temperature
        self.max_sources = max_sources

    @classmethod
    def from_config(cls, ai_config, api_key: Optional[str], **kwargs) -> "GeminiAPIClient":
        """Build a client from an AIConfig section."""
        return cls(
            api_key,
            model=ai_config.model,
            retrieval_tool=ai_config.retrieval_tool,
            temperature=ai_config.temperature,
            max_sources=ai_config.max_sources,
            timeout=ai_config.timeout,
            max_retries=ai_config.max_retries,
            initial_backoff=ai_config.initial_backoff,
            backoff_factor=ai_config.backoff_factor,
            transient_delay=ai_config.transient_delay,
            **kwargs,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.BASE_URL}/{self.model}:generateContent"

    def _get_auth_headers(self) -> Dict[str, str]:
        """Get Gemini-specific authentication headers."""
        return {"x-goog-api-key": self.api_key or ""}

    def _build_request(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "tools": [self.RETRIEVAL_TOOLS[self.retrieval_tool]],
            "generationConfig": {"temperature": self.temperature},
        }

    @staticmethod
    def _response_text(response: Mapping[str, Any]) -> str:
        """
        Concatenate the text parts of the first candidate.

        Raises:
            ResponseFormatError: When the response carries no text
        """
        candidates = response.get("candidates") or []
        if not candidates:
            feedback = response.get("promptFeedback") or {}
            if isinstance(feedback, dict) and feedback.get("blockReason"):
                raise ResponseFormatError(
                    f"Prompt blocked: {feedback['blockReason']}"
                )
            raise ResponseFormatError("Empty response received from AI")

        candidate = candidates[0] if isinstance(candidates, list) else None
        if not isinstance(candidate, dict):
            raise ResponseFormatError("Malformed candidate in AI response")
        content = candidate.get("content") or {}
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            parts = []
        text = "".join(
            part["text"] for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        if not text.strip():
            if candidate.get("finishReason") == "SAFETY":
                raise ResponseFormatError("Content blocked by safety filters.")
            raise ResponseFormatError(
                "Empty response received from AI. The site might be blocking bots."
            )
        return text

    async def _enrich_once(
        self,
        urls: List[str],
        contexts: Optional[Mapping[str, Optional[str]]],
    ) -> List[EnrichmentResult]:
        prompt = create_batch_prompt(urls, contexts)
        response = await self._post_json(self.endpoint, self._build_request(prompt))

        text = self._response_text(response)
        items = parse_enrichment_items(text)
        sources = extract_sources(response, limit=self.max_sources)

        results = match_results(urls, items, sources)
        unmatched = [result.url for result in results if not result.matched]
        if unmatched:
            self.logger.warning(
                f"{len(unmatched)} of {len(urls)} URLs missing from AI response: "
                f"{', '.join(unmatched)}"
            )
        return results

    async def enrich(
        self,
        urls: List[str],
        contexts: Optional[Mapping[str, Optional[str]]] = None,
    ) -> List[EnrichmentResult]:
        """
        Enrich a batch of URLs with one grounded generateContent call.

        Args:
            urls: URLs to enrich
            contexts: Optional prefetched context per URL

        Returns:
            One result per input URL, in input order

        Raises:
            ConfigurationError: If no API key is configured
            AuthenticationError: If the key is rejected
            APIClientError: When retries are exhausted
        """
        self._require_api_key()
        urls = list(urls)
        if not urls:
            return []

        self.logger.info(f"Enriching batch of {len(urls)} URL(s) with {self.model}")
        return await self._call_with_retry(lambda: self._enrich_once(urls, contexts))
