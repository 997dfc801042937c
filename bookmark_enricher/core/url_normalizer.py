"""
URL normalizer for pasted bookmark input.

Turns free text (plain URLs, numbered or bulleted lists, or lines copied out
of a Netscape bookmark file) into import entries, and strips campaign
tracking parameters from every URL.
"""

import codecs
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import unquote, urlsplit, urlunsplit

from bookmark_enricher.core.data_models import ImportEntry, to_iso
from bookmark_enricher.utils.error_handler import ImportFileError

logger = logging.getLogger(__name__)

TRACKING_PARAM_PREFIX = "utm_"

ANCHOR_WITH_DATE_PATTERN = re.compile(
    r'<a\s+href="([^"]+)"[^>]*add_date="(\d+)"', re.IGNORECASE
)
ANCHOR_PATTERN = re.compile(r'<a\s+href="([^"]+)"', re.IGNORECASE)
ORDINAL_PREFIX_PATTERN = re.compile(r"^\d+\s*[.)-]\s+")
BULLET_PREFIX_PATTERN = re.compile(r"^[-*]\s+")

SUPPORTED_ENCODINGS = ["utf-8-sig", "iso-8859-1"]
UTF16_BOMS = (codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)


def _timestamp_to_iso(seconds: str) -> Optional[str]:
    """Convert a Unix-seconds ADD_DATE value to an ISO-8601 string."""
    try:
        moment = datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        logger.warning(f"Ignoring invalid ADD_DATE value: {seconds}")
        return None
    return to_iso(moment)


def parse_line(line: str) -> Optional[ImportEntry]:
    """
    Parse one line of pasted input.

    Rules are applied in order and the first match wins:

    1. anchor tag with ``add_date``: URL plus imported date
    2. anchor tag with only ``href``: URL
    3. any other markup (line starts with ``<``): discarded
    4. plain text with an ordinal or bullet prefix stripped: URL
    5. empty: discarded

    Args:
        line: A single line of input

    Returns:
        ImportEntry or None when the line carries no URL
    """
    trimmed = line.strip()

    match = ANCHOR_WITH_DATE_PATTERN.search(trimmed)
    if match:
        return ImportEntry(url=match.group(1), imported_date=_timestamp_to_iso(match.group(2)))

    match = ANCHOR_PATTERN.search(trimmed)
    if match:
        return ImportEntry(url=match.group(1))

    if trimmed.startswith("<"):
        return None

    cleaned = ORDINAL_PREFIX_PATTERN.sub("", trimmed, count=1)
    cleaned = BULLET_PREFIX_PATTERN.sub("", cleaned, count=1)
    if cleaned:
        return ImportEntry(url=cleaned)

    return None


def strip_tracking_params(url: str) -> str:
    """
    Remove ``utm_*`` query parameters from a URL.

    Every other part of the URL, including the order and encoding of the
    remaining parameters, is preserved. Strings that do not parse as an
    absolute URL are returned unchanged.

    Args:
        url: URL to clean

    Returns:
        URL without tracking parameters
    """
    if not url or TRACKING_PARAM_PREFIX not in url:
        return url

    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    if not parts.scheme or not parts.netloc:
        return url

    kept = []
    for pair in parts.query.split("&"):
        if not pair:
            continue
        key = unquote(pair.split("=", 1)[0].replace("+", " "))
        if key.startswith(TRACKING_PARAM_PREFIX):
            continue
        kept.append(pair)

    path = parts.path or "/"
    return urlunsplit((parts.scheme, parts.netloc, path, "&".join(kept), parts.fragment))


def parse_import_text(text: str) -> List[ImportEntry]:
    """
    Parse pasted text into import entries with tracking parameters removed.

    Args:
        text: Raw multi-line input

    Returns:
        Entries in input order (duplicates are left for the store to reject)
    """
    entries = []
    for line in (text or "").splitlines():
        entry = parse_line(line)
        if entry is None:
            continue
        entries.append(
            ImportEntry(url=strip_tracking_params(entry.url), imported_date=entry.imported_date)
        )

    logger.debug(f"Parsed {len(entries)} import entries")
    return entries


def read_import_file(file_path: Union[str, Path]) -> str:
    """
    Read an import file (URL list or bookmarks HTML export) as text.

    UTF-16 is only considered when the file starts with a byte order mark;
    otherwise UTF-8 is tried before falling back to ISO-8859-1.

    Args:
        file_path: Path to the file

    Returns:
        File contents

    Raises:
        ImportFileError: If the file is missing or cannot be decoded
    """
    file_path = Path(file_path)

    try:
        raw = file_path.read_bytes()
    except OSError as e:
        raise ImportFileError(f"Error reading file {file_path}: {e}") from e

    encodings = list(SUPPORTED_ENCODINGS)
    if raw.startswith(UTF16_BOMS):
        encodings.insert(0, "utf-16")

    for encoding in encodings:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue

    raise ImportFileError(f"Unable to read {file_path} with supported encodings")
