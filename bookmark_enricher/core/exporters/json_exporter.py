"""
JSON bookmark exporter.

Exports records in the same layout they are persisted in, so the output can
be used for backup or re-imported by other tools.
"""

import json
from typing import List

from .base import BookmarkExporter
from ..data_models import BookmarkRecord


class JSONExporter(BookmarkExporter):
    """
    Export bookmarks to JSON format.

    Example:
        >>> exporter = JSONExporter(indent=2)
        >>> result = exporter.export(records, Path("bookmarks.json"))
    """

    def __init__(self, indent: int = 2, ensure_ascii: bool = False):
        """
        Initialize the JSON exporter.

        Args:
            indent: Number of spaces for indentation
            ensure_ascii: Whether to escape non-ASCII characters
        """
        super().__init__()
        self.indent = indent
        self.ensure_ascii = ensure_ascii

    @property
    def format_name(self) -> str:
        return "JSON"

    @property
    def file_extension(self) -> str:
        return "json"

    def render(self, records: List[BookmarkRecord]) -> str:
        return json.dumps(
            [record.to_dict() for record in records],
            indent=self.indent,
            ensure_ascii=self.ensure_ascii,
        )
