"""
Record Store Module

Owns the canonical bookmark collection. Every mutation builds a new list,
swaps it in, and persists the full collection, so a failure while applying
one record's result cannot corrupt any other record.
"""

import logging
from typing import Dict, Iterable, List, Optional

from bookmark_enricher.config.pydantic_config import DEFAULT_STORAGE_KEY
from bookmark_enricher.core.data_models import (
    ERROR_TITLE,
    PLACEHOLDER_TITLE,
    BookmarkRecord,
    BookmarkStatus,
    EnrichmentResult,
    ImportEntry,
    normalize_keywords,
    utc_now_iso,
)
from bookmark_enricher.core.storage import KeyValueStore, load_records, save_records
from bookmark_enricher.core.url_normalizer import strip_tracking_params


def _url_key(url: str) -> str:
    return url.strip().lower()


class RecordStore:
    """
    Bookmark collection with status-aware mutations.

    Records are kept in insertion order, so the oldest queued records are
    always first in line.
    """

    def __init__(self, storage: KeyValueStore, key: str = DEFAULT_STORAGE_KEY):
        """
        Initialize the store and load persisted records.

        Args:
            storage: Backing key-value store
            key: Key the serialized collection lives under
        """
        self.storage = storage
        self.key = key
        self.logger = logging.getLogger(__name__)
        self._records: List[BookmarkRecord] = load_records(storage, key)
        self._recover_interrupted()

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"RecordStore(records={len(self._records)}, key={self.key!r})"

    def _commit(self, records: List[BookmarkRecord]) -> None:
        save_records(self.storage, self.key, records)
        self._records = records

    def _recover_interrupted(self) -> None:
        """
        Re-queue records persisted as processing.

        Nothing is in flight when a store is opened, so such records belong to
        a run that was interrupted or crashed and would otherwise never leave
        the processing state.
        """
        stranded = self.by_status(BookmarkStatus.PROCESSING)
        if not stranded:
            return
        self.logger.warning(
            f"Re-queueing {len(stranded)} bookmark(s) left in processing by an interrupted run"
        )
        self._commit(
            [
                r.evolve(status=BookmarkStatus.QUEUED, title=PLACEHOLDER_TITLE, summary="")
                if r.status == BookmarkStatus.PROCESSING
                else r
                for r in self._records
            ]
        )

    def _replace(self, updated: BookmarkRecord) -> None:
        self._commit([updated if r.id == updated.id else r for r in self._records])

    # ============ Read Methods ============

    def get(self, record_id: str) -> Optional[BookmarkRecord]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def all(self) -> List[BookmarkRecord]:
        return list(self._records)

    def by_status(self, status: BookmarkStatus) -> List[BookmarkRecord]:
        return [r for r in self._records if r.status == status]

    def next_queued(self, limit: int) -> List[BookmarkRecord]:
        """Return up to ``limit`` queued records, oldest first."""
        if limit <= 0:
            return []
        return self.by_status(BookmarkStatus.QUEUED)[:limit]

    def get_statistics(self) -> Dict[str, int]:
        """Count records per status."""
        stats = {status.value: 0 for status in BookmarkStatus}
        for record in self._records:
            stats[record.status.value] += 1
        stats["total"] = len(self._records)
        return stats

    # ============ Admission ============

    def admit(self, entries: Iterable[ImportEntry]) -> List[BookmarkRecord]:
        """
        Create queued records for new URLs.

        A URL is rejected when a non-error record already holds it, or when it
        appeared earlier in the same batch. Comparison ignores case.

        Args:
            entries: Parsed import entries

        Returns:
            The newly created records, in input order
        """
        seen = {
            _url_key(r.url) for r in self._records if r.status != BookmarkStatus.ERROR
        }
        admitted: List[BookmarkRecord] = []
        rejected = 0

        for entry in entries:
            url = strip_tracking_params(entry.url.strip())
            if not url:
                continue
            key = _url_key(url)
            if key in seen:
                rejected += 1
                continue
            seen.add(key)
            admitted.append(
                BookmarkRecord(
                    url=url,
                    title=PLACEHOLDER_TITLE,
                    summary="",
                    created_at=entry.imported_date or utc_now_iso(),
                )
            )

        if rejected:
            self.logger.info(f"Skipped {rejected} duplicate URL(s)")
        if admitted:
            self._commit(self._records + admitted)
            self.logger.info(f"Queued {len(admitted)} new bookmark(s)")
        return admitted

    # ============ State Management Methods ============

    def mark_processing(self, record_ids: Iterable[str]) -> List[BookmarkRecord]:
        """
        Move queued records to processing.

        Unknown ids are skipped; a record in any other status raises
        InvalidTransitionError.
        """
        wanted = set(record_ids)
        changed: List[BookmarkRecord] = []
        records = []
        for record in self._records:
            if record.id in wanted:
                record = record.with_status(BookmarkStatus.PROCESSING)
                changed.append(record)
            records.append(record)

        if changed:
            self._commit(records)
        return changed

    def apply_success(
        self, record_id: str, result: EnrichmentResult
    ) -> Optional[BookmarkRecord]:
        """
        Merge an enrichment result onto a processing record.

        The record ends ``warning`` when the summary is missing or too short to
        be useful, otherwise ``done``. The creation date is replaced only when
        a publication date was found.

        Returns:
            The updated record, or None when the record was deleted or is no
            longer processing
        """
        current = self.get(record_id)
        if current is None:
            self.logger.debug(f"Dropping result for deleted record {record_id}")
            return None
        if current.status != BookmarkStatus.PROCESSING:
            self.logger.debug(
                f"Dropping result for record {record_id} in status {current.status.value}"
            )
            return None

        status = BookmarkStatus.WARNING if result.is_low_quality else BookmarkStatus.DONE
        updated = current.with_status(
            status,
            title=result.title,
            summary=result.summary,
            keywords=normalize_keywords(result.keywords),
            sources=list(result.sources),
            created_at=result.publication_date or current.created_at,
        )
        self._replace(updated)
        return updated

    def apply_failure(self, record_id: str, message: str) -> Optional[BookmarkRecord]:
        """
        Put a processing record into the error state with ``message`` as its
        summary.

        Returns:
            The updated record, or None when the record is gone or not
            processing
        """
        current = self.get(record_id)
        if current is None or current.status != BookmarkStatus.PROCESSING:
            return None

        updated = current.with_status(
            BookmarkStatus.ERROR, title=ERROR_TITLE, summary=message
        )
        self._replace(updated)
        return updated

    def retry(self, record_id: str) -> Optional[BookmarkRecord]:
        """
        Re-queue a finished record.

        Raises:
            InvalidTransitionError: If the record is queued or processing
        """
        current = self.get(record_id)
        if current is None:
            return None

        updated = current.with_status(
            BookmarkStatus.QUEUED, title=PLACEHOLDER_TITLE, summary=""
        )
        self._replace(updated)
        self.logger.info(f"Re-queued {updated.url}")
        return updated

    # ============ User Edits ============

    def update(self, record: BookmarkRecord) -> Optional[BookmarkRecord]:
        """
        Overwrite a record's editable fields.

        Status is kept from the stored record; it only changes through the
        transition methods.
        """
        current = self.get(record.id)
        if current is None:
            return None

        updated = record.evolve(
            status=current.status, keywords=normalize_keywords(record.keywords)
        )
        self._replace(updated)
        return updated

    def add_keyword(self, record_ids: Iterable[str], keyword: str) -> int:
        """
        Add a keyword to several records.

        Returns:
            Number of records that changed
        """
        keyword = keyword.strip()
        if not keyword:
            return 0

        wanted = set(record_ids)
        changed = 0
        records = []
        for record in self._records:
            if record.id in wanted and keyword.lower() not in (
                k.lower() for k in record.keywords
            ):
                record = record.evolve(keywords=record.keywords + [keyword])
                changed += 1
            records.append(record)

        if changed:
            self._commit(records)
        return changed

    def remove_keyword(self, record_id: str, keyword: str) -> Optional[BookmarkRecord]:
        """Remove a keyword (case-insensitive) from one record."""
        current = self.get(record_id)
        if current is None:
            return None

        target = keyword.strip().lower()
        keywords = [k for k in current.keywords if k.lower() != target]
        if len(keywords) == len(current.keywords):
            return current

        updated = current.evolve(keywords=keywords)
        self._replace(updated)
        return updated

    def delete(self, record_id: str) -> bool:
        """Delete a record. Returns False when it did not exist."""
        records = [r for r in self._records if r.id != record_id]
        if len(records) == len(self._records):
            return False
        self._commit(records)
        return True

    def clear(self) -> None:
        """Delete every record."""
        self._commit([])
