"""
Structured Output Models for Enrichment Responses

This module builds the batch prompt sent to the model, validates the JSON it
returns through a lenient Pydantic schema, and maps returned items back onto
the URLs that were requested.
"""

import json
import re
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Sequence
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

from bookmark_enricher.core.data_models import (
    EnrichmentResult,
    Source,
    normalize_keywords,
)
from bookmark_enricher.utils.error_handler import ResponseFormatError

FALLBACK_SUMMARY = "Summary could not be generated."
FALLBACK_TITLE = "Webpage"
MAX_KEYWORDS = 5

JSON_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)
JSON_ARRAY_PATTERN = re.compile(r"\[.*\]", re.DOTALL)


class EnrichmentItem(BaseModel):
    """
    One item of the model's JSON array.

    Every field has a default and malformed values are coerced rather than
    rejected, so a sloppy response still yields a usable item.
    """

    url: str = ""
    title: str = ""
    summary: str = ""
    keywords: List[str] = Field(default_factory=list)
    publication_date: Optional[str] = Field(default=None, alias="publicationDate")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("url", "title", "summary", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        if not isinstance(v, str):
            v = str(v)
        return v.strip()

    @field_validator("keywords", mode="before")
    @classmethod
    def coerce_keywords(cls, v: Any) -> List[str]:
        """Accept a list or a comma-separated string; drop junk entries."""
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, list):
            return []
        return normalize_keywords(str(item) for item in v if item is not None)[:MAX_KEYWORDS]

    @field_validator("publication_date", mode="before")
    @classmethod
    def coerce_date(cls, v: Any) -> Optional[str]:
        return validate_publication_date(v)


def validate_publication_date(value: Any) -> Optional[str]:
    """
    Normalize a publication date to YYYY-MM-DD.

    Only values that parse as a real date after 1970 are accepted; anything
    else (including the string "null") is treated as absent.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None

    parsed: Optional[date] = None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        match = re.match(r"^(\d{4})-(\d{2})-(\d{2})", text)
        if match:
            try:
                parsed = date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            except ValueError:
                parsed = None

    if parsed is None or parsed.year <= 1970:
        return None
    return parsed.isoformat()


def fallback_title(url: str) -> str:
    """Derive a title from the URL's host when the model gave none."""
    try:
        host = urlsplit(url).netloc
    except ValueError:
        host = ""
    if not host:
        host = re.sub(r"^https?://", "", url or "").split("/")[0]
    return host or FALLBACK_TITLE


def create_batch_prompt(
    urls: Sequence[str],
    contexts: Optional[Mapping[str, Optional[str]]] = None,
) -> str:
    """
    Create the enrichment prompt for a batch of URLs.

    Args:
        urls: URLs to enrich
        contexts: Optional prefetched context per URL

    Returns:
        Prompt string
    """
    contexts = contexts or {}
    lines = []
    for i, url in enumerate(urls, start=1):
        lines.append(f"{i}. {url}")
        context = contexts.get(url)
        if context:
            lines.append("   Additional context (fetched directly from the page):")
            for context_line in context.splitlines():
                lines.append(f"   > {context_line}")

    return f"""Analyze each of the following webpages.

{chr(10).join(lines)}

For every URL:
1. Use your tool to find the page's actual content; do not guess from the URL.
2. Write a short, descriptive title.
3. Write a concise 2-sentence summary of the content.
4. Pick 3-5 relevant keywords.
5. Find the publication date as YYYY-MM-DD, or null if it cannot be determined.

Return ONLY a JSON array with one object per URL, in the same order:
[
  {{
    "url": "the URL exactly as given",
    "title": "Page title",
    "summary": "Two sentence summary.",
    "keywords": ["kw1", "kw2", "kw3"],
    "publicationDate": "YYYY-MM-DD or null"
  }}
]"""


def extract_json_array(response_text: str) -> List[Any]:
    """
    Parse the JSON array out of a model response.

    Handles markdown code fences and leading/trailing prose.

    Raises:
        ResponseFormatError: If no JSON array can be parsed
    """
    text = (response_text or "").strip()
    if not text:
        raise ResponseFormatError("Empty response received from AI")

    candidates = []
    fence = JSON_FENCE_PATTERN.search(text)
    if fence:
        candidates.append(fence.group(1))
    candidates.append(text)
    array = JSON_ARRAY_PATTERN.search(text)
    if array:
        candidates.append(array.group(0))

    parsed: Any = None
    last_error: Optional[Exception] = None
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
            break
        except json.JSONDecodeError as e:
            last_error = e
    else:
        raise ResponseFormatError(f"AI response was not valid JSON: {last_error}")

    if not isinstance(parsed, list):
        raise ResponseFormatError(
            f"AI response was {type(parsed).__name__}, expected a JSON array"
        )
    return parsed


def parse_enrichment_items(response_text: str) -> List[EnrichmentItem]:
    """Parse a response into validated items, skipping non-object entries."""
    items = []
    for raw in extract_json_array(response_text):
        if isinstance(raw, dict):
            items.append(EnrichmentItem.model_validate(raw))
    return items


def extract_sources(response: Mapping[str, Any], limit: int = 5) -> List[Source]:
    """
    Collect grounding citations from a generateContent response.

    Sources belong to the whole batch, not to individual URLs.
    """
    if limit <= 0:
        return []
    sources: List[Source] = []
    seen = set()
    candidates = response.get("candidates")
    for candidate in candidates if isinstance(candidates, list) else []:
        if not isinstance(candidate, dict):
            continue
        metadata = candidate.get("groundingMetadata")
        chunks = metadata.get("groundingChunks") if isinstance(metadata, dict) else None
        for chunk in chunks if isinstance(chunks, list) else []:
            web = chunk.get("web") if isinstance(chunk, dict) else None
            if not isinstance(web, dict):
                continue
            uri = web.get("uri")
            if not isinstance(uri, str) or not uri or uri in seen:
                continue
            seen.add(uri)
            title = web.get("title")
            sources.append(Source(uri=uri, title=title if isinstance(title, str) and title else uri))
            if len(sources) >= limit:
                return sources
    return sources


def _normalize_for_match(url: str) -> str:
    return url.strip().lower()


def _assign_items(urls: Sequence[str], items: List[EnrichmentItem]) -> List[Optional[int]]:
    """Pick an item index per URL: exact matches for every URL, then containment."""
    keys = [_normalize_for_match(item.url) if item.url else "" for item in items]
    assigned: List[Optional[int]] = [None] * len(urls)
    used = set()

    for position, url in enumerate(urls):
        target = _normalize_for_match(url)
        for index, key in enumerate(keys):
            if index not in used and key and key == target:
                assigned[position] = index
                used.add(index)
                break

    for position, url in enumerate(urls):
        if assigned[position] is not None:
            continue
        target = _normalize_for_match(url)
        for index, key in enumerate(keys):
            if index not in used and key and (key in target or target in key):
                assigned[position] = index
                used.add(index)
                break

    return assigned


def match_results(
    urls: Sequence[str],
    items: List[EnrichmentItem],
    sources: Optional[List[Source]] = None,
) -> List[EnrichmentResult]:
    """
    Map returned items back to the requested URLs.

    Exact (case-insensitive) matches are settled for every URL before the
    substring-containment pass runs on the leftover items, so a model that
    adds or drops a trailing slash still lines up without stealing another
    URL's exact match. Each item is used at most once. URLs without a
    match get a fallback result, so the output always has one entry per input
    URL in input order.
    """
    sources = list(sources or [])
    results = []

    for url, index in zip(urls, _assign_items(urls, items)):
        if index is None:
            results.append(
                EnrichmentResult(
                    url=url,
                    title=fallback_title(url),
                    summary=FALLBACK_SUMMARY,
                    keywords=[],
                    publication_date=None,
                    sources=list(sources),
                    matched=False,
                )
            )
            continue

        item = items[index]
        results.append(
            EnrichmentResult(
                url=url,
                title=item.title or fallback_title(url),
                summary=item.summary,
                keywords=list(item.keywords),
                publication_date=item.publication_date,
                sources=list(sources),
            )
        )

    return results

