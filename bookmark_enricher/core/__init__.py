"""
Core bookmark enrichment modules.

This package contains the enrichment pipeline: URL normalization, context
prefetching, the Gemini client, the record store and the queue scheduler,
plus exporters and Notion sync.
"""

from .data_models import BookmarkRecord, BookmarkStatus, EnrichmentResult, ImportEntry
from .record_store import RecordStore
from .scheduler import QueueScheduler, RunReport

__all__ = [
    'BookmarkRecord',
    'BookmarkStatus',
    'EnrichmentResult',
    'ImportEntry',
    'RecordStore',
    'QueueScheduler',
    'RunReport',
]
