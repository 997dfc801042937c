"""
Tests for the export formats.
"""

import csv
import io
import json

import pytest

from bookmark_enricher.core.data_models import BookmarkRecord, BookmarkStatus
from bookmark_enricher.core.exporters import (
    CSVExporter,
    ExportError,
    JSONExporter,
    MarkdownExporter,
    NetscapeHTMLExporter,
    StandaloneHTMLExporter,
    get_exporter,
)
from bookmark_enricher.core.exporters.base import escape_html, format_display_date


class TestHelpers:
    """Test shared formatting helpers."""

    def test_escape_html(self):
        assert escape_html("<a href=\"x\">Tom's & Jerry</a>") == (
            "&lt;a href=&quot;x&quot;&gt;Tom&#x27;s &amp; Jerry&lt;/a&gt;"
        )
        assert escape_html(None) == ""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2023-11-14T00:00:00.000Z", "November 14, 2023"),
            ("2024-02-01", "February 1, 2024"),
            ("not a date", ""),
            ("", ""),
        ],
    )
    def test_format_display_date(self, value, expected):
        assert format_display_date(value) == expected


class TestNetscapeHTMLExporter:
    """Test browser-importable output."""

    def test_document_structure(self, sample_records):
        html = NetscapeHTMLExporter().render(sample_records)

        assert html.startswith("<!DOCTYPE NETSCAPE-Bookmark-file-1>\n")
        assert "<TITLE>Bookmarks</TITLE>" in html
        assert html.count("<DT><A ") == 2
        assert html.rstrip().endswith("</DL><p>")

    def test_link_line(self, sample_records):
        html = NetscapeHTMLExporter().render(sample_records)

        assert (
            '    <DT><A HREF="https://example.com/article" ADD_DATE="1699920000" '
            'LAST_MODIFIED="1699920000">Async Python &lt;Guide&gt;</A>'
        ) in html

    def test_description_carries_summary_and_keywords(self, sample_records):
        html = NetscapeHTMLExporter().render(sample_records)

        assert (
            "    <DD>Covers asyncio, &quot;tasks&quot; &amp; event loops. "
            "(Keywords: python, asyncio)"
        ) in html
        assert "    <DD>Short\n" in html

    def test_browser_file_names(self):
        assert NetscapeHTMLExporter("Firefox").default_filename == "firefox_bookmarks.html"
        assert NetscapeHTMLExporter().default_filename == "bookmarks_bookmarks.html"

    def test_unknown_browser(self):
        with pytest.raises(ValueError, match="Unknown browser"):
            NetscapeHTMLExporter("netscape-navigator")


class TestCSVExporter:
    """Test CSV output."""

    def test_rows(self, sample_records):
        text = CSVExporter().render(sample_records)

        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == ["url", "title", "summary", "keywords", "createdAt"]
        assert rows[1] == [
            "https://example.com/article",
            "Async Python <Guide>",
            'Covers asyncio, "tasks" & event loops.',
            "python, asyncio",
            "2023-11-14T00:00:00.000Z",
        ]
        assert rows[2][3] == ""

    def test_minimal_quoting(self, sample_records):
        lines = CSVExporter().render(sample_records).splitlines()

        assert lines[0] == "url,title,summary,keywords,createdAt"
        assert lines[2] == 'https://example.org/notes,"Notes, thoughts",Short,,2024-02-01'


class TestJSONExporter:
    """Test JSON output."""

    def test_persisted_layout(self, sample_records):
        data = json.loads(JSONExporter().render(sample_records))

        assert [item["id"] for item in data] == ["rec-1", "rec-2"]
        assert data[0]["createdAt"] == "2023-11-14T00:00:00.000Z"
        assert data[0]["sources"] == [{"uri": "https://docs.python.org", "title": "Python docs"}]
        assert "sources" not in data[1]

    def test_unicode_kept(self):
        record = BookmarkRecord(url="https://example.com", title="Café", status=BookmarkStatus.DONE)

        assert "Café" in JSONExporter().render([record])


class TestMarkdownExporter:
    """Test Markdown output."""

    def test_document(self, sample_records):
        text = MarkdownExporter().render(sample_records)

        assert text == (
            "# AI Bookmarks\n\n"
            "## [Async Python <Guide>](https://example.com/article)\n"
            "*Published: November 14, 2023*\n\n"
            '**Summary:** Covers asyncio, "tasks" & event loops.\n\n'
            "**Keywords:** `python`, `asyncio`"
            "\n\n---\n\n"
            "## [Notes, thoughts](https://example.org/notes)\n"
            "*Published: February 1, 2024*\n\n"
            "**Summary:** Short\n"
        )

    def test_brackets_escaped_in_title(self):
        record = BookmarkRecord(url="https://example.com", title="[Draft] notes")

        assert "## [\\[Draft\\] notes](https://example.com)" in MarkdownExporter().render([record])

    def test_dates_can_be_omitted(self, sample_records):
        assert "Published" not in MarkdownExporter(include_dates=False).render(sample_records)


class TestStandaloneHTMLExporter:
    """Test the browsable HTML page."""

    def test_articles(self, sample_records):
        html = StandaloneHTMLExporter().render(sample_records)

        assert html.count("<article>") == 2
        assert "<title>AI Bookmarks Export</title>" in html
        assert "Async Python &lt;Guide&gt;" in html
        assert "Published: November 14, 2023" in html
        assert '<span class="keyword">python</span>' in html
        assert "<style>" in html


class TestExportToFile:
    """Test writing exports to disk."""

    def test_export_to_file(self, tmp_path, sample_records):
        path = tmp_path / "out" / "bookmarks.json"

        result = JSONExporter().export(sample_records, path)

        assert result.path == path
        assert result.count == 2
        assert result.additional_info["file_size"] == path.stat().st_size
        assert json.loads(path.read_text(encoding="utf-8"))[1]["id"] == "rec-2"

    def test_directory_target_uses_default_name(self, tmp_path, sample_records):
        result = NetscapeHTMLExporter("chrome").export(sample_records, tmp_path)

        assert result.path == tmp_path / "chrome_bookmarks.html"
        assert result.path.exists()

    def test_markdown_default_name(self, tmp_path, sample_records):
        result = MarkdownExporter().export(sample_records, tmp_path)

        assert result.path.name == "ai_bookmarks.md"

    def test_empty_export_raises(self, tmp_path):
        with pytest.raises(ExportError, match="No bookmarks to export"):
            CSVExporter().export([], tmp_path / "out.csv")

    def test_unfinished_records_produce_warnings(self, tmp_path):
        records = [
            BookmarkRecord(url="https://example.com/a"),
            BookmarkRecord(url="https://example.com/b", status=BookmarkStatus.ERROR),
        ]

        result = CSVExporter().export(records, tmp_path / "out.csv")

        assert "1 bookmark(s) are still being enriched" in result.warnings
        assert "1 bookmark(s) failed enrichment" in result.warnings


class TestExporterRegistry:
    """Test format lookup."""

    @pytest.mark.parametrize(
        "name,cls",
        [
            ("netscape", NetscapeHTMLExporter),
            ("CSV", CSVExporter),
            ("json", JSONExporter),
            ("md", MarkdownExporter),
            ("markdown", MarkdownExporter),
            ("html", StandaloneHTMLExporter),
        ],
    )
    def test_get_exporter(self, name, cls):
        assert get_exporter(name) is cls

    def test_unknown_format(self):
        with pytest.raises(ValueError, match="Unsupported export format"):
            get_exporter("opml")
