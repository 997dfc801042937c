"""
Storage Module

Key-value persistence for the record collection. The production store keeps
the whole key space in a single JSON document on disk and replaces it
atomically on every write; an in-memory store backs the tests.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from bookmark_enricher.core.data_models import BookmarkRecord
from bookmark_enricher.utils.error_handler import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Minimal string-keyed persistence interface."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; missing keys are ignored."""
        pass


class MemoryStore(KeyValueStore):
    """Dictionary-backed store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JSONFileStore(KeyValueStore):
    """
    Store the key space as one JSON object in a file.

    Writes go to a temporary file next to the target which then replaces it,
    so a crash mid-write leaves the previous document intact.
    """

    def __init__(self, file_path: Union[str, Path]):
        self.file_path = Path(file_path).expanduser()
        self.lock = threading.Lock()

    def _read_document(self) -> Dict[str, str]:
        if not self.file_path.exists():
            return {}
        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Store file {self.file_path} is corrupt, starting empty: {e}")
            return {}
        except OSError as e:
            raise StorageError(f"Failed to read store {self.file_path}: {e}") from e

        if not isinstance(document, dict):
            logger.error(f"Store file {self.file_path} is not a JSON object, ignoring it")
            return {}
        return document

    def _write_document(self, document: Dict[str, str]) -> None:
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            temp_file = self.file_path.with_suffix(".tmp")
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(document, f)
            temp_file.replace(self.file_path)
        except OSError as e:
            raise StorageError(f"Failed to write store {self.file_path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self.lock:
            value = self._read_document().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self.lock:
            document = self._read_document()
            document[key] = value
            self._write_document(document)

    def delete(self, key: str) -> None:
        with self.lock:
            document = self._read_document()
            if key in document:
                del document[key]
                self._write_document(document)


def load_records(store: KeyValueStore, key: str) -> List[BookmarkRecord]:
    """
    Load the persisted record list.

    Legacy entries are migrated by ``BookmarkRecord.from_dict``. A value that
    is not a JSON array is logged, removed from the store and treated as an
    empty collection.

    Args:
        store: Backing key-value store
        key: Key holding the serialized list

    Returns:
        Records in persisted order
    """
    raw = store.get(key)
    if not raw:
        return []

    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse bookmarks from storage: {e}")
        store.delete(key)
        return []

    if not isinstance(data, list):
        logger.error("Stored bookmarks are not a list, discarding them")
        store.delete(key)
        return []

    records = []
    skipped = 0
    for item in data:
        if not isinstance(item, dict) or not item.get("url"):
            skipped += 1
            continue
        records.append(BookmarkRecord.from_dict(item))

    if skipped:
        logger.warning(f"Skipped {skipped} unreadable stored entries")
    logger.debug(f"Loaded {len(records)} records from storage")
    return records


def save_records(store: KeyValueStore, key: str, records: List[BookmarkRecord]) -> None:
    """Persist the full record list under ``key``."""
    store.set(key, json.dumps([record.to_dict() for record in records]))
