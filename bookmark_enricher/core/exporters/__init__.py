"""
Multi-format bookmark exporters.

This module provides exporters for browser-importable Netscape HTML, CSV,
JSON, Markdown and a standalone HTML page.
"""

from .base import BookmarkExporter, ExportResult, ExportError
from .csv_exporter import CSVExporter
from .json_exporter import JSONExporter
from .markdown_exporter import MarkdownExporter
from .netscape_html_exporter import NetscapeHTMLExporter
from .standalone_html_exporter import StandaloneHTMLExporter

__all__ = [
    "BookmarkExporter",
    "ExportResult",
    "ExportError",
    "CSVExporter",
    "JSONExporter",
    "MarkdownExporter",
    "NetscapeHTMLExporter",
    "StandaloneHTMLExporter",
    "EXPORTERS",
    "get_exporter",
]


# Format registry for easy access
EXPORTERS = {
    "netscape": NetscapeHTMLExporter,
    "csv": CSVExporter,
    "json": JSONExporter,
    "markdown": MarkdownExporter,
    "md": MarkdownExporter,
    "html": StandaloneHTMLExporter,
}


def get_exporter(format_name: str) -> type:
    """
    Get an exporter class by format name.

    Args:
        format_name: Name of the format (netscape, csv, json, markdown, html)

    Returns:
        Exporter class for the specified format

    Raises:
        ValueError: If format is not supported
    """
    format_lower = format_name.lower()
    if format_lower not in EXPORTERS:
        supported = ", ".join(sorted(set(EXPORTERS.keys()) - {"md"}))
        raise ValueError(
            f"Unsupported export format: {format_name}. "
            f"Supported formats: {supported}"
        )
    return EXPORTERS[format_lower]
