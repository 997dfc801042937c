"""
Data models for the Bookmark Enricher.

This module defines the records that flow through the enrichment pipeline,
the status state machine that governs them, and their persisted JSON shape.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from bookmark_enricher.utils.error_handler import InvalidTransitionError

PLACEHOLDER_TITLE = "Queued..."
ERROR_TITLE = "Error"
MIN_SUMMARY_LENGTH = 10


class BookmarkStatus(Enum):
    """Lifecycle state of a bookmark record."""

    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    WARNING = "warning"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (BookmarkStatus.DONE, BookmarkStatus.WARNING, BookmarkStatus.ERROR)


ALLOWED_TRANSITIONS = {
    BookmarkStatus.QUEUED: {BookmarkStatus.PROCESSING},
    BookmarkStatus.PROCESSING: {
        BookmarkStatus.DONE,
        BookmarkStatus.WARNING,
        BookmarkStatus.ERROR,
    },
    BookmarkStatus.DONE: {BookmarkStatus.QUEUED},
    BookmarkStatus.WARNING: {BookmarkStatus.QUEUED},
    BookmarkStatus.ERROR: {BookmarkStatus.QUEUED},
}


def can_transition(current: BookmarkStatus, target: BookmarkStatus) -> bool:
    """Return True if the transition is in the table."""
    return target in ALLOWED_TRANSITIONS.get(current, set())


def check_transition(current: BookmarkStatus, target: BookmarkStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


def utc_now_iso() -> str:
    """Current time as ISO-8601 with millisecond precision and a Z suffix."""
    return to_iso(datetime.now(timezone.utc))


def to_iso(moment: datetime) -> str:
    """Format an aware datetime the way the persisted records expect."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO-8601 date or timestamp into an aware datetime."""
    if not value:
        return None
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def normalize_keywords(keywords: Iterable[Any]) -> List[str]:
    """
    Clean a keyword list.

    Strips whitespace, drops empty entries and keeps only the first of any
    case-insensitive duplicates, preserving order.
    """
    cleaned: List[str] = []
    seen = set()
    for keyword in keywords or []:
        if not isinstance(keyword, str):
            continue
        keyword = keyword.strip()
        if not keyword or keyword.lower() in seen:
            continue
        seen.add(keyword.lower())
        cleaned.append(keyword)
    return cleaned


@dataclass(frozen=True)
class ImportEntry:
    """One URL parsed from pasted text or an import file."""

    url: str
    imported_date: Optional[str] = None


@dataclass(frozen=True)
class Source:
    """A citation returned by the grounding tool."""

    uri: str
    title: str

    def to_dict(self) -> Dict[str, str]:
        return {"uri": self.uri, "title": self.title}


@dataclass
class EnrichmentResult:
    """Outcome of enriching a single URL."""

    url: str
    title: str
    summary: str
    keywords: List[str] = field(default_factory=list)
    publication_date: Optional[str] = None
    sources: List[Source] = field(default_factory=list)
    matched: bool = True

    @property
    def is_low_quality(self) -> bool:
        """Empty or uninformative summaries are flagged as warnings."""
        return not self.summary or len(self.summary) < MIN_SUMMARY_LENGTH


@dataclass
class BookmarkRecord:
    """
    A bookmark with its enrichment state.

    Records are treated as values: the store replaces them with modified
    copies (see ``evolve``) rather than mutating them in place.
    """

    url: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: str = PLACEHOLDER_TITLE
    summary: str = ""
    keywords: List[str] = field(default_factory=list)
    status: BookmarkStatus = BookmarkStatus.QUEUED
    created_at: str = field(default_factory=utc_now_iso)
    sources: List[Source] = field(default_factory=list)

    def __post_init__(self):
        self.keywords = normalize_keywords(self.keywords)

    def evolve(self, **changes) -> "BookmarkRecord":
        """Return a copy with the given fields changed."""
        return replace(self, **changes)

    def with_status(self, status: BookmarkStatus, **changes) -> "BookmarkRecord":
        """Return a copy in the new status, enforcing the transition table."""
        check_transition(self.status, status)
        return replace(self, status=status, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the persisted (camelCase) layout."""
        data: Dict[str, Any] = {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "summary": self.summary,
            "keywords": list(self.keywords),
            "status": self.status.value,
            "createdAt": self.created_at,
        }
        if self.sources:
            data["sources"] = [source.to_dict() for source in self.sources]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookmarkRecord":
        """
        Build a record from persisted data, filling legacy gaps.

        Older saves may lack ``id``, ``status`` or ``createdAt``; those get a
        new uuid, ``done`` and the current time respectively.
        """
        try:
            status = BookmarkStatus(data.get("status") or BookmarkStatus.DONE.value)
        except ValueError:
            status = BookmarkStatus.DONE

        keywords = data.get("keywords")
        if not isinstance(keywords, list):
            keywords = []

        sources = []
        for item in data.get("sources") or []:
            if isinstance(item, dict) and item.get("uri"):
                sources.append(Source(uri=item["uri"], title=item.get("title") or item["uri"]))

        return cls(
            id=data.get("id") or str(uuid.uuid4()),
            url=str(data.get("url") or ""),
            title=str(data.get("title") or ""),
            summary=str(data.get("summary") or ""),
            keywords=keywords,
            status=status,
            created_at=data.get("createdAt") or data.get("created_at") or utc_now_iso(),
            sources=sources,
        )
