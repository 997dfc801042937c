"""
Markdown bookmark exporter.

Exports bookmarks to a single Markdown document with one section per record.
"""

from typing import List

from .base import BookmarkExporter, format_display_date
from ..data_models import BookmarkRecord

SECTION_SEPARATOR = "\n\n---\n\n"


class MarkdownExporter(BookmarkExporter):
    """
    Export bookmarks to Markdown format.

    Each record becomes a ``## [title](url)`` heading followed by its
    publication date, summary and backticked keywords.

    Example:
        >>> exporter = MarkdownExporter()
        >>> result = exporter.export(records, Path("bookmarks.md"))
    """

    def __init__(self, heading: str = "AI Bookmarks", include_dates: bool = True):
        """
        Initialize the Markdown exporter.

        Args:
            heading: Document title
            include_dates: Whether to include publication dates
        """
        super().__init__()
        self.heading = heading
        self.include_dates = include_dates

    @property
    def format_name(self) -> str:
        return "Markdown"

    @property
    def file_extension(self) -> str:
        return "md"

    def _escape_link_text(self, text: str) -> str:
        return text.replace("[", "\\[").replace("]", "\\]")

    def _format_section(self, record: BookmarkRecord) -> str:
        lines = [f"## [{self._escape_link_text(record.title)}]({record.url})"]

        date = format_display_date(record.created_at) if self.include_dates else ""
        if date:
            lines.append(f"*Published: {date}*\n")

        lines.append(f"**Summary:** {record.summary}\n")

        if record.keywords:
            keywords = self.format_tags([f"`{k}`" for k in record.keywords])
            lines.append(f"**Keywords:** {keywords}")

        return "\n".join(lines).rstrip()

    def render(self, records: List[BookmarkRecord]) -> str:
        sections = [self._format_section(record) for record in records]
        return f"# {self.heading}\n\n" + SECTION_SEPARATOR.join(sections) + "\n"
