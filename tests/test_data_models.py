"""
Tests for data models and the status state machine.
"""

from datetime import datetime, timezone

import pytest

from bookmark_enricher.core.data_models import (
    ALLOWED_TRANSITIONS,
    PLACEHOLDER_TITLE,
    BookmarkRecord,
    BookmarkStatus,
    EnrichmentResult,
    Source,
    can_transition,
    normalize_keywords,
    parse_iso_datetime,
    to_iso,
)
from bookmark_enricher.utils.error_handler import InvalidTransitionError

ALLOWED = {
    ("queued", "processing"),
    ("processing", "done"),
    ("processing", "warning"),
    ("processing", "error"),
    ("done", "queued"),
    ("warning", "queued"),
    ("error", "queued"),
}


class TestBookmarkStatus:
    """Test the transition table."""

    @pytest.mark.parametrize("current", list(BookmarkStatus))
    @pytest.mark.parametrize("target", list(BookmarkStatus))
    def test_transition_table(self, current, target):
        expected = (current.value, target.value) in ALLOWED

        assert can_transition(current, target) is expected

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(BookmarkStatus)

    def test_terminal_statuses(self):
        terminal = {status for status in BookmarkStatus if status.is_terminal}

        assert terminal == {
            BookmarkStatus.DONE,
            BookmarkStatus.WARNING,
            BookmarkStatus.ERROR,
        }


class TestBookmarkRecord:
    """Test BookmarkRecord behaviour."""

    def test_defaults(self):
        record = BookmarkRecord(url="https://example.com")

        assert record.title == PLACEHOLDER_TITLE
        assert record.status == BookmarkStatus.QUEUED
        assert record.summary == ""
        assert record.id
        assert record.created_at.endswith("Z")

    def test_ids_are_unique(self):
        ids = {BookmarkRecord(url="https://example.com").id for _ in range(50)}

        assert len(ids) == 50

    def test_keywords_normalized_on_creation(self):
        record = BookmarkRecord(url="https://example.com", keywords=[" AI ", "ai", "", "ML"])

        assert record.keywords == ["AI", "ML"]

    def test_with_status_returns_copy(self):
        record = BookmarkRecord(url="https://example.com")

        processing = record.with_status(BookmarkStatus.PROCESSING)

        assert processing.status == BookmarkStatus.PROCESSING
        assert record.status == BookmarkStatus.QUEUED
        assert processing.id == record.id

    def test_with_status_rejects_invalid_transition(self):
        record = BookmarkRecord(url="https://example.com")

        with pytest.raises(InvalidTransitionError) as exc_info:
            record.with_status(BookmarkStatus.DONE)

        assert "queued -> done" in str(exc_info.value)

    def test_to_dict_uses_persisted_layout(self):
        record = BookmarkRecord(
            id="abc",
            url="https://example.com",
            title="Example",
            summary="Summary",
            keywords=["one"],
            status=BookmarkStatus.DONE,
            created_at="2024-01-01T00:00:00.000Z",
            sources=[Source(uri="https://s.example", title="S")],
        )

        assert record.to_dict() == {
            "id": "abc",
            "url": "https://example.com",
            "title": "Example",
            "summary": "Summary",
            "keywords": ["one"],
            "status": "done",
            "createdAt": "2024-01-01T00:00:00.000Z",
            "sources": [{"uri": "https://s.example", "title": "S"}],
        }

    def test_to_dict_omits_empty_sources(self):
        record = BookmarkRecord(url="https://example.com")

        assert "sources" not in record.to_dict()

    def test_from_dict_migrates_legacy_entry(self):
        record = BookmarkRecord.from_dict(
            {"url": "https://example.com", "title": "Old", "summary": "Saved before ids"}
        )

        assert record.id
        assert record.status == BookmarkStatus.DONE
        assert record.created_at
        assert record.keywords == []

    def test_from_dict_unknown_status_becomes_done(self):
        record = BookmarkRecord.from_dict({"url": "https://example.com", "status": "bogus"})

        assert record.status == BookmarkStatus.DONE

    def test_from_dict_skips_bad_sources(self):
        record = BookmarkRecord.from_dict(
            {
                "url": "https://example.com",
                "status": "warning",
                "sources": [{"uri": "https://a"}, {"title": "no uri"}, "junk"],
            }
        )

        assert record.status == BookmarkStatus.WARNING
        assert record.sources == [Source(uri="https://a", title="https://a")]


class TestEnrichmentResult:
    """Test the quality threshold."""

    @pytest.mark.parametrize(
        "summary,low",
        [("", True), ("Too short", True), ("0123456789", False), ("A full sentence.", False)],
    )
    def test_is_low_quality(self, summary, low):
        result = EnrichmentResult(url="https://example.com", title="T", summary=summary)

        assert result.is_low_quality is low


class TestHelpers:
    """Test module-level helpers."""

    def test_to_iso_millisecond_format(self):
        moment = datetime(2023, 11, 14, 22, 13, 20, 123456, tzinfo=timezone.utc)

        assert to_iso(moment) == "2023-11-14T22:13:20.123Z"

    def test_parse_iso_datetime_with_z(self):
        moment = parse_iso_datetime("2023-11-14T22:13:20.000Z")

        assert moment == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_parse_iso_datetime_plain_date(self):
        moment = parse_iso_datetime("2024-02-01")

        assert moment == datetime(2024, 2, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_parse_iso_datetime_invalid(self, value):
        assert parse_iso_datetime(value) is None

    def test_normalize_keywords_drops_non_strings(self):
        assert normalize_keywords(["a", None, 3, "A", "b "]) == ["a", "b"]
