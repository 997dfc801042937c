"""
CSV bookmark exporter.

Writes one row per record with the columns url, title, summary, keywords and
createdAt. Fields are quoted only when they contain a comma, quote or line
break.
"""

import csv
import io
from typing import List

from .base import BookmarkExporter
from ..data_models import BookmarkRecord

CSV_COLUMNS = ["url", "title", "summary", "keywords", "createdAt"]


class CSVExporter(BookmarkExporter):
    """Export bookmarks to a spreadsheet-friendly CSV file."""

    @property
    def format_name(self) -> str:
        return "CSV"

    @property
    def file_extension(self) -> str:
        return "csv"

    def render(self, records: List[BookmarkRecord]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)
        for record in records:
            writer.writerow(
                [
                    record.url,
                    record.title,
                    record.summary,
                    self.format_tags(record.keywords),
                    record.created_at,
                ]
            )
        return buffer.getvalue()
