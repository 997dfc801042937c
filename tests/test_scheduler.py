"""
Tests for the chunked queue scheduler.
"""

import asyncio

import pytest

from bookmark_enricher.config.pydantic_config import SchedulerConfig
from bookmark_enricher.core.data_models import BookmarkStatus, ImportEntry
from bookmark_enricher.core.scheduler import QueueScheduler, RunReport
from bookmark_enricher.utils.error_handler import (
    AuthenticationError,
    ConfigurationError,
    RateLimitError,
    ServiceUnavailableError,
)
from tests.conftest import FakeEnrichmentClient, make_result


def queue_urls(store, count):
    return store.admit(
        [ImportEntry(url=f"https://example.com/{i}") for i in range(count)]
    )


def make_scheduler(store, client, sleep, **kwargs):
    return QueueScheduler(store, client, sleep=sleep, **kwargs)


class TestQueueDraining:
    """Test chunking and pacing of a normal run."""

    @pytest.mark.asyncio
    async def test_drains_queue_in_chunks(self, record_store, sleep_recorder):
        queue_urls(record_store, 7)
        client = FakeEnrichmentClient()

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert [len(call) for call in client.calls] == [5, 2]
        assert sleep_recorder.calls == [5.0]
        assert report.processed == 7
        assert report.succeeded == 7
        assert report.chunks == 2
        assert not report.aborted
        assert all(r.status == BookmarkStatus.DONE for r in record_store.all())

    @pytest.mark.asyncio
    async def test_chunks_follow_insertion_order(self, record_store, sleep_recorder):
        admitted = queue_urls(record_store, 6)
        client = FakeEnrichmentClient()

        await make_scheduler(record_store, client, sleep_recorder).run()

        assert client.calls[0] == [r.url for r in admitted[:5]]
        assert client.calls[1] == [admitted[5].url]

    @pytest.mark.asyncio
    async def test_empty_queue(self, record_store, sleep_recorder):
        client = FakeEnrichmentClient()

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert report.to_dict() == RunReport().to_dict()
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_custom_batch_size_and_delay(self, record_store, sleep_recorder):
        queue_urls(record_store, 5)
        client = FakeEnrichmentClient()
        config = SchedulerConfig(batch_size=2, batch_delay=1.0)

        await make_scheduler(record_store, client, sleep_recorder, config=config).run()

        assert [len(call) for call in client.calls] == [2, 2, 1]
        assert sleep_recorder.calls == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_progress_callback(self, record_store, sleep_recorder):
        queue_urls(record_store, 7)
        progress = []

        await make_scheduler(
            record_store,
            FakeEnrichmentClient(),
            sleep_recorder,
            progress_callback=lambda done, total: progress.append((done, total)),
        ).run()

        assert progress == [(5, 7), (7, 7)]

    @pytest.mark.asyncio
    async def test_low_quality_results_are_warnings(self, record_store, sleep_recorder):
        queue_urls(record_store, 2)
        client = FakeEnrichmentClient(
            [lambda urls: [make_result(urls[0], summary=""), make_result(urls[1])]]
        )

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert report.warnings == 1
        assert report.succeeded == 1
        statuses = [r.status for r in record_store.all()]
        assert statuses == [BookmarkStatus.WARNING, BookmarkStatus.DONE]

    @pytest.mark.asyncio
    async def test_missing_results_are_failed(self, record_store, sleep_recorder):
        queue_urls(record_store, 3)
        client = FakeEnrichmentClient([lambda urls: [make_result(urls[0])]])

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert report.succeeded == 1
        assert report.failed == 2
        failed = record_store.by_status(BookmarkStatus.ERROR)
        assert [r.summary for r in failed] == ["No result returned for this URL"] * 2


class TestChunkFailures:
    """Test cooldowns and aborts after chunk-level failures."""

    @pytest.mark.asyncio
    async def test_rate_limit_uses_long_cooldown(self, record_store, sleep_recorder):
        queue_urls(record_store, 7)
        client = FakeEnrichmentClient([RateLimitError("Rate limit exceeded", 429)])

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert sleep_recorder.calls == [30.0]
        assert report.failed == 5
        assert report.succeeded == 2
        errors = record_store.by_status(BookmarkStatus.ERROR)
        assert len(errors) == 5
        assert all(r.summary == "Rate limit exceeded" for r in errors)

    @pytest.mark.asyncio
    async def test_other_failure_uses_error_cooldown(self, record_store, sleep_recorder):
        queue_urls(record_store, 7)
        client = FakeEnrichmentClient([ServiceUnavailableError("HTTP 503", 503)])

        await make_scheduler(record_store, client, sleep_recorder).run()

        assert sleep_recorder.calls == [10.0]
        assert len(client.calls) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            AuthenticationError("API key not valid", 400),
            ConfigurationError("API key is not set"),
        ],
    )
    async def test_fatal_error_aborts_run(self, record_store, sleep_recorder, error):
        queue_urls(record_store, 7)
        client = FakeEnrichmentClient([error])

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert len(client.calls) == 1
        assert sleep_recorder.calls == []
        assert report.aborted
        assert report.global_error == str(error)
        assert len(record_store.by_status(BookmarkStatus.ERROR)) == 5
        assert len(record_store.by_status(BookmarkStatus.QUEUED)) == 2

    @pytest.mark.asyncio
    async def test_unexpected_exception_fails_chunk(self, record_store, sleep_recorder):
        queue_urls(record_store, 7)
        client = FakeEnrichmentClient([AttributeError("'list' object has no attribute 'get'")])

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert report.failed == 5
        assert report.succeeded == 2
        assert not report.aborted
        assert sleep_recorder.calls == [10.0]
        assert record_store.by_status(BookmarkStatus.PROCESSING) == []
        failed = record_store.by_status(BookmarkStatus.ERROR)
        assert "AttributeError" in failed[0].summary


class TestConcurrency:
    """Test run exclusivity and interleaved user actions."""

    @pytest.mark.asyncio
    async def test_overlapping_run_is_rejected(self, record_store, sleep_recorder):
        queue_urls(record_store, 1)
        release = asyncio.Event()

        class BlockingClient(FakeEnrichmentClient):
            async def enrich(self, urls, contexts=None):
                await release.wait()
                return await super().enrich(urls, contexts)

        scheduler = make_scheduler(record_store, BlockingClient(), sleep_recorder)
        task = asyncio.create_task(scheduler.run())
        for _ in range(3):
            await asyncio.sleep(0)

        assert scheduler.is_running
        with pytest.raises(RuntimeError):
            await scheduler.run()

        release.set()
        report = await task
        assert report.succeeded == 1
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_record_deleted_mid_flight(self, record_store, sleep_recorder):
        admitted = queue_urls(record_store, 2)

        def delete_first(urls):
            record_store.delete(admitted[0].id)
            return [make_result(url) for url in urls]

        client = FakeEnrichmentClient([delete_first])

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert report.succeeded == 1
        assert [r.id for r in record_store.all()] == [admitted[1].id]
        assert record_store.get(admitted[1].id).status == BookmarkStatus.DONE

    @pytest.mark.asyncio
    async def test_records_added_during_run_are_processed(self, record_store, sleep_recorder):
        queue_urls(record_store, 1)

        def add_more(urls):
            record_store.admit([ImportEntry(url="https://example.com/late")])
            return [make_result(url) for url in urls]

        client = FakeEnrichmentClient([add_more])

        report = await make_scheduler(record_store, client, sleep_recorder).run()

        assert client.calls == [["https://example.com/0"], ["https://example.com/late"]]
        assert report.succeeded == 2


class TestPrefetchAndRetry:
    """Test prefetcher wiring and single-record retry."""

    @pytest.mark.asyncio
    async def test_prefetched_contexts_are_passed_to_client(self, record_store, sleep_recorder):
        queue_urls(record_store, 2)

        class FakePrefetcher:
            async def fetch_contexts(self, urls):
                return {url: f"context for {url}" for url in urls}

        client = FakeEnrichmentClient()

        await make_scheduler(
            record_store, client, sleep_recorder, prefetcher=FakePrefetcher()
        ).run()

        assert client.contexts[0] == {
            "https://example.com/0": "context for https://example.com/0",
            "https://example.com/1": "context for https://example.com/1",
        }

    @pytest.mark.asyncio
    async def test_retry_reprocesses_record(self, record_store, sleep_recorder):
        admitted = queue_urls(record_store, 1)
        client = FakeEnrichmentClient([RateLimitError("Rate limit exceeded", 429)])
        scheduler = make_scheduler(record_store, client, sleep_recorder)
        await scheduler.run()
        assert record_store.get(admitted[0].id).status == BookmarkStatus.ERROR

        report = await scheduler.retry(admitted[0].id)

        assert report.succeeded == 1
        assert record_store.get(admitted[0].id).status == BookmarkStatus.DONE

    @pytest.mark.asyncio
    async def test_retry_unknown_record(self, record_store, sleep_recorder):
        client = FakeEnrichmentClient()

        report = await make_scheduler(record_store, client, sleep_recorder).retry("missing")

        assert report.processed == 0
        assert client.calls == []
