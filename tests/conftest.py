"""
Pytest configuration and shared fixtures for bookmark enricher tests.

This module provides common fixtures, fake collaborators, and response
builders shared across multiple test modules. No test touches the network:
HTTP goes through httpx.MockTransport and sleeps are recorded, not awaited.
"""

import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from bookmark_enricher.core.data_models import (
    BookmarkRecord,
    BookmarkStatus,
    EnrichmentResult,
    ImportEntry,
    Source,
)
from bookmark_enricher.core.record_store import RecordStore
from bookmark_enricher.core.storage import MemoryStore

VALID_GEMINI_KEY = "AIza" + "x" * 35

ENV_VARS = [
    "GEMINI_API_KEY",
    "API_KEY",
    "X_BEARER_TOKEN",
    "CORS_PROXY_URL",
    "NOTION_TOKEN",
    "BOOKMARK_ENRICHER_STORE",
]


# ============================================================================
# Environment
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real credentials out of every test."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


# ============================================================================
# Fakes
# ============================================================================


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class FakeEnrichmentClient:
    """
    Scripted enrichment client.

    Each call to ``enrich`` pops the next scripted outcome: an exception to
    raise, a callable producing results from the URLs, or None to return a
    good result per URL.
    """

    def __init__(self, outcomes: Optional[List[Any]] = None):
        self.outcomes = list(outcomes or [])
        self.calls: List[List[str]] = []
        self.contexts: List[Optional[Dict[str, Optional[str]]]] = []

    async def enrich(self, urls, contexts=None):
        self.calls.append(list(urls))
        self.contexts.append(contexts)
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(urls)
        return [make_result(url) for url in urls]


def make_result(url: str, **overrides) -> EnrichmentResult:
    """Build a good-quality enrichment result for ``url``."""
    data = {
        "url": url,
        "title": f"Title for {url}",
        "summary": "A thorough two sentence summary. It says enough.",
        "keywords": ["python", "testing"],
        "publication_date": None,
        "sources": [Source(uri="https://source.example/a", title="Source A")],
    }
    data.update(overrides)
    return EnrichmentResult(**data)


def gemini_payload(
    items: List[Dict[str, Any]],
    chunks: Optional[List[Dict[str, str]]] = None,
    fenced: bool = True,
) -> Dict[str, Any]:
    """Build a generateContent response body whose text is ``items`` as JSON."""
    text = json.dumps(items)
    if fenced:
        text = f"```json\n{text}\n```"
    candidate: Dict[str, Any] = {
        "content": {"role": "model", "parts": [{"text": text}]},
        "finishReason": "STOP",
    }
    if chunks:
        candidate["groundingMetadata"] = {
            "groundingChunks": [{"web": chunk} for chunk in chunks]
        }
    return {"candidates": [candidate]}


def mock_transport(handler: Callable[[httpx.Request], httpx.Response]):
    """Wrap a handler in an httpx.MockTransport that also records requests."""
    requests: List[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    transport = httpx.MockTransport(recording_handler)
    transport.requests = requests
    return transport


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def record_store(memory_store):
    return RecordStore(memory_store)


@pytest.fixture
def sample_entries():
    return [
        ImportEntry(url="https://example.com/one"),
        ImportEntry(url="https://example.com/two", imported_date="2023-11-14T22:13:20.000Z"),
        ImportEntry(url="https://example.com/three"),
    ]


@pytest.fixture
def sample_records():
    """Finished records covering the common shapes exporters have to handle."""
    return [
        BookmarkRecord(
            id="rec-1",
            url="https://example.com/article",
            title="Async Python <Guide>",
            summary='Covers asyncio, "tasks" & event loops.',
            keywords=["python", "asyncio"],
            status=BookmarkStatus.DONE,
            created_at="2023-11-14T00:00:00.000Z",
            sources=[Source(uri="https://docs.python.org", title="Python docs")],
        ),
        BookmarkRecord(
            id="rec-2",
            url="https://example.org/notes",
            title="Notes, thoughts",
            summary="Short",
            keywords=[],
            status=BookmarkStatus.WARNING,
            created_at="2024-02-01",
        ),
    ]


@pytest.fixture
def tmp_cwd(tmp_path, monkeypatch):
    """Run in a temporary directory so log files land there."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def gemini_key():
    return VALID_GEMINI_KEY
