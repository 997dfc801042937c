"""
Queue Scheduler Module

Drains queued records through the enrichment client one chunk at a time.
Only one enrichment call is ever in flight; prefetches for the URLs of a
chunk run concurrently before that call. Chunks are paced by a fixed delay,
lengthened after rate-limit or other failures, and a configuration or
authentication failure stops the run.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from bookmark_enricher.config.pydantic_config import SchedulerConfig
from bookmark_enricher.core.base_api_client import BaseAPIClient
from bookmark_enricher.core.context_prefetcher import ContextPrefetcher
from bookmark_enricher.core.data_models import BookmarkRecord, BookmarkStatus
from bookmark_enricher.core.record_store import RecordStore
from bookmark_enricher.utils.error_handler import (
    APIClientError,
    EnricherError,
    RateLimitError,
    is_fatal_error,
)

ProgressCallback = Callable[[int, int], None]
SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class RunReport:
    """Outcome of one scheduler run."""

    processed: int = 0
    succeeded: int = 0
    warnings: int = 0
    failed: int = 0
    chunks: int = 0
    global_error: Optional[str] = None

    @property
    def aborted(self) -> bool:
        return self.global_error is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "warnings": self.warnings,
            "failed": self.failed,
            "chunks": self.chunks,
            "global_error": self.global_error,
        }


class QueueScheduler:
    """
    Chunked-batch scheduler over a RecordStore.

    The caller owns the client and prefetcher lifecycles: both must already be
    entered as async context managers when ``run`` is awaited.
    """

    def __init__(
        self,
        store: RecordStore,
        client: BaseAPIClient,
        prefetcher: Optional[ContextPrefetcher] = None,
        config: Optional[SchedulerConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize the scheduler.

        Args:
            store: Record store to drain
            client: Enrichment client
            prefetcher: Optional context prefetcher
            config: Pacing settings (defaults apply when omitted)
            progress_callback: Called with (finished, total) after each chunk
            sleep: Awaitable sleep used for pacing
        """
        self.store = store
        self.client = client
        self.prefetcher = prefetcher
        self.config = config or SchedulerConfig()
        self.progress_callback = progress_callback
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.logger = logging.getLogger(__name__)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> RunReport:
        """
        Process queued records until none remain or the run is aborted.

        Raises:
            RuntimeError: If a run is already in progress
        """
        if self._lock.locked():
            raise RuntimeError("A scheduler run is already in progress")

        async with self._lock:
            return await self._run()

    async def retry(self, record_id: str) -> RunReport:
        """Re-queue one record and run the queue."""
        if self.store.retry(record_id) is None:
            self.logger.warning(f"Cannot retry unknown record {record_id}")
            return RunReport()
        return await self.run()

    async def _run(self) -> RunReport:
        report = RunReport()
        total = len(self.store.by_status(BookmarkStatus.QUEUED))
        if not total:
            return report

        self.logger.info(
            f"Processing {total} queued bookmark(s) in chunks of {self.config.batch_size}"
        )
        finished = 0

        while True:
            chunk = self.store.next_queued(self.config.batch_size)
            if not chunk:
                break

            report.chunks += 1
            error = await self._process_chunk(chunk, report)
            finished += len(chunk)
            if self.progress_callback:
                self.progress_callback(finished, max(total, finished))

            if error is not None and is_fatal_error(error):
                report.global_error = str(error)
                self.logger.error(f"Run aborted: {error}")
                break

            if not self.store.next_queued(1):
                break

            delay = self._pause_after(error)
            self.logger.debug(f"Waiting {delay:.1f}s before the next chunk")
            await self._sleep(delay)

        self.logger.info(
            f"Run finished: {report.succeeded} done, {report.warnings} warning(s), "
            f"{report.failed} failed"
        )
        return report

    def _pause_after(self, error: Optional[Exception]) -> float:
        if error is None:
            return self.config.batch_delay
        if isinstance(error, RateLimitError):
            return self.config.rate_limit_cooldown
        return self.config.error_cooldown

    async def _prefetch(self, urls: List[str]) -> Optional[Dict[str, Optional[str]]]:
        if self.prefetcher is None:
            return None
        contexts = await self.prefetcher.fetch_contexts(urls)
        found = sum(1 for context in contexts.values() if context)
        if found:
            self.logger.debug(f"Prefetched context for {found} of {len(urls)} URL(s)")
        return contexts

    async def _process_chunk(
        self, chunk: List[BookmarkRecord], report: RunReport
    ) -> Optional[Exception]:
        """
        Enrich one chunk and reconcile the outcome onto its records.

        Returns:
            The error that failed the whole chunk, or None
        """
        records = self.store.mark_processing([r.id for r in chunk])
        urls = [r.url for r in records]

        try:
            contexts = await self._prefetch(urls)
            results = await self.client.enrich(urls, contexts)
        except EnricherError as e:
            message = str(e) or type(e).__name__
            if not isinstance(e, APIClientError) or is_fatal_error(e):
                self.logger.error(f"Chunk failed: {message}")
            else:
                self.logger.warning(f"Chunk of {len(records)} failed: {message}")
            self._fail_records(records, message, report)
            return e
        except Exception as e:
            # Records must not stay in processing, whatever the client raised
            self.logger.exception(f"Unexpected error while enriching a chunk: {e}")
            self._fail_records(records, f"Unexpected error: {type(e).__name__}: {e}", report)
            return e

        for record, result in zip(records, results):
            report.processed += 1
            updated = self.store.apply_success(record.id, result)
            if updated is None:
                continue
            if updated.status == BookmarkStatus.WARNING:
                report.warnings += 1
            else:
                report.succeeded += 1

        # A client that returned fewer results than URLs leaves records behind
        self._fail_records(records[len(results):], "No result returned for this URL", report)
        return None

    def _fail_records(
        self, records: List[BookmarkRecord], message: str, report: RunReport
    ) -> None:
        for record in records:
            report.processed += 1
            if self.store.apply_failure(record.id, message) is not None:
                report.failed += 1
