"""
Base classes for bookmark exporters.

Every exporter renders the record list to a single text document; the base
class handles target resolution, writing and the export summary.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..data_models import BookmarkRecord, BookmarkStatus, parse_iso_datetime


@dataclass
class ExportResult:
    """
    Result of an export operation.

    Attributes:
        path: File that was written
        count: Number of bookmarks exported
        format_name: Export format used
        exported_at: When the file was written
        additional_info: Format-specific details (e.g. file size)
        warnings: Non-fatal problems noticed in the exported records
    """

    path: Path
    count: int
    format_name: str
    exported_at: datetime = field(default_factory=datetime.now)
    additional_info: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"ExportResult(format={self.format_name}, count={self.count}, path={self.path})"


class ExportError(Exception):
    """An export could not be produced or written."""

    def __init__(
        self,
        message: str,
        format_name: Optional[str] = None,
        path: Optional[Path] = None,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.format_name = format_name
        self.path = path
        self.original_error = original_error

        parts = [f"[{format_name}]"] if format_name else []
        parts.append(message)
        if path:
            parts.append(f"(path: {path})")
        if original_error:
            parts.append(f"Caused by: {type(original_error).__name__}: {original_error}")
        super().__init__(" ".join(parts))


def escape_html(text: Optional[str]) -> str:
    """Escape the five HTML special characters."""
    if not text:
        return ""
    for char, entity in (
        ("&", "&amp;"),
        ("<", "&lt;"),
        (">", "&gt;"),
        ('"', "&quot;"),
        ("'", "&#x27;"),
    ):
        text = text.replace(char, entity)
    return text


def format_display_date(value: Optional[str]) -> str:
    """Render a stored date as e.g. ``November 14, 2023``; empty if unparseable."""
    moment = parse_iso_datetime(value)
    if moment is None:
        return ""
    return f"{moment:%B} {moment.day}, {moment.year}"


class BookmarkExporter(ABC):
    """
    Abstract base class for bookmark exporters.

    Subclasses implement ``render`` and name their format and extension;
    ``export`` resolves the target file and writes the rendered text.

    Example:
        >>> result = MarkdownExporter().export(store.all(), Path("~/Desktop"))
        >>> print(result.path)  # ~/Desktop/ai_bookmarks.md
    """

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def render(self, records: List[BookmarkRecord]) -> str:
        """Render records, in display order, to the complete file contents."""
        pass

    @property
    @abstractmethod
    def format_name(self) -> str:
        """Human-readable format name."""
        pass

    @property
    @abstractmethod
    def file_extension(self) -> str:
        """Extension without the leading dot."""
        pass

    @property
    def default_filename(self) -> str:
        return f"ai_bookmarks.{self.file_extension}"

    def resolve_target(self, output_path: Union[str, Path]) -> Path:
        """
        Turn the requested output into a file path and create its directory.

        A directory target gets ``default_filename`` appended.

        Raises:
            ExportError: If the directory cannot be created
        """
        path = Path(output_path).expanduser()
        if path.is_dir():
            path = path / self.default_filename
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ExportError(
                "Cannot create export directory",
                format_name=self.format_name,
                path=path,
                original_error=e,
            )
        return path

    def export(
        self,
        records: List[BookmarkRecord],
        output_path: Union[str, Path],
    ) -> ExportResult:
        """
        Export records to a file.

        Args:
            records: Records to export
            output_path: Target file, or a directory for the default file name

        Returns:
            ExportResult describing the written file

        Raises:
            ExportError: If there is nothing to export or the write fails
        """
        if not records:
            raise ExportError("No bookmarks to export", format_name=self.format_name)

        warnings = self.collect_warnings(records)
        path = self.resolve_target(output_path)
        content = self.render(records)

        try:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise ExportError(
                "Failed to write export file",
                format_name=self.format_name,
                path=path,
                original_error=e,
            )

        self.logger.info(f"Exported {len(records)} bookmarks to {path}")
        return ExportResult(
            path=path,
            count=len(records),
            format_name=self.format_name,
            additional_info={"file_size": path.stat().st_size},
            warnings=warnings,
        )

    def collect_warnings(self, records: List[BookmarkRecord]) -> List[str]:
        """Describe records that are exported without finished enrichment."""
        warnings = []
        unfinished = sum(1 for r in records if not r.status.is_terminal)
        if unfinished:
            warnings.append(f"{unfinished} bookmark(s) are still being enriched")
        failed = sum(1 for r in records if r.status == BookmarkStatus.ERROR)
        if failed:
            warnings.append(f"{failed} bookmark(s) failed enrichment")
        return warnings

    def format_tags(self, tags: List[str], separator: str = ", ") -> str:
        return separator.join(tags) if tags else ""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(format={self.format_name})"
