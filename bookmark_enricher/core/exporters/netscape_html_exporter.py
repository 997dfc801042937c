"""
Netscape HTML bookmark exporter.

Generates a Netscape-Bookmark-file-1 document that Chrome, Firefox, Safari
and Edge can import. Summaries and keywords travel in the ``<DD>``
description line under each link.
"""

import time
from typing import List, Optional

from .base import BookmarkExporter, escape_html
from ..data_models import BookmarkRecord, parse_iso_datetime

BROWSERS = ("chrome", "firefox", "safari", "edge")


class NetscapeHTMLExporter(BookmarkExporter):
    """
    Export bookmarks for browser import.

    The document layout is the same for every browser; ``browser`` only
    chooses the default file name.
    """

    def __init__(self, browser: Optional[str] = None, title: str = "Bookmarks"):
        super().__init__()
        if browser and browser.lower() not in BROWSERS:
            raise ValueError(
                f"Unknown browser: {browser}. Choose from {', '.join(BROWSERS)}"
            )
        self.browser = browser.lower() if browser else None
        self.title = title

    @property
    def format_name(self) -> str:
        return "Netscape HTML"

    @property
    def file_extension(self) -> str:
        return "html"

    @property
    def default_filename(self) -> str:
        return f"{self.browser or 'bookmarks'}_bookmarks.html"

    def _timestamp(self, record: BookmarkRecord) -> int:
        moment = parse_iso_datetime(record.created_at)
        if moment is None:
            return int(time.time())
        return int(moment.timestamp())

    def _description(self, record: BookmarkRecord) -> str:
        if record.keywords:
            return f"{record.summary} (Keywords: {self.format_tags(record.keywords)})"
        return record.summary

    def _generate_bookmark_html(self, record: BookmarkRecord) -> List[str]:
        timestamp = self._timestamp(record)
        attrs = " ".join(
            [
                f'HREF="{escape_html(record.url)}"',
                f'ADD_DATE="{timestamp}"',
                f'LAST_MODIFIED="{timestamp}"',
            ]
        )
        title = escape_html(record.title or record.url)
        return [
            f"    <DT><A {attrs}>{title}</A>",
            f"    <DD>{escape_html(self._description(record))}",
        ]

    def render(self, records: List[BookmarkRecord]) -> str:
        html_parts = [
            "<!DOCTYPE NETSCAPE-Bookmark-file-1>",
            "<!-- This is an automatically generated file.",
            "     It will be read and overwritten.",
            "     DO NOT EDIT! -->",
            '<META HTTP-EQUIV="Content-Type" CONTENT="text/html; charset=UTF-8">',
            f"<TITLE>{escape_html(self.title)}</TITLE>",
            f"<H1>{escape_html(self.title)}</H1>",
            "<DL><p>",
        ]

        for record in records:
            html_parts.extend(self._generate_bookmark_html(record))

        html_parts.append("</DL><p>")
        return "\n".join(html_parts) + "\n"
