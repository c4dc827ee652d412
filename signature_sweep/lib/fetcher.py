"""Incremental synchronization of the identifier cache.

First run (no cursor): every record between ``epoch_start`` and
``cutoff`` is fetched. Later runs resume from the stored watermark and
append only what was created since. The merged list and the new
watermark are persisted before ``sync`` returns.

A failed query raises :class:`FetchError` out of ``sync`` and leaves the
cache untouched; records fetched before the failure are discarded and
fetched again on the next run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from signature_sweep.lib.cache import CacheStore
from signature_sweep.lib.config import BATCH_SIZE, CUTOFF, EPOCH_START
from signature_sweep.lib.observability import SweepMetrics
from signature_sweep.lib.pagination import CreatedAtPaginationState, PaginationConfig
from signature_sweep.lib.remote import RemoteSource
from signature_sweep.lib.time_utils import format_timestamp

logger = logging.getLogger(__name__)

__all__ = ["IncrementalFetcher", "SyncResult"]


@dataclass
class SyncResult:
    """Outcome of one synchronization."""

    identifiers: List[str]
    watermark: datetime
    new_count: int
    pages: int
    incremental: bool


class IncrementalFetcher:
    """Keeps the identifier cache in step with the remote source.

    Example:
        fetcher = IncrementalFetcher(source, CacheStore("/cache"))
        identifiers = fetcher.sync()
    """

    def __init__(
        self,
        source: RemoteSource,
        store: CacheStore,
        *,
        epoch_start: datetime = EPOCH_START,
        cutoff: datetime = CUTOFF,
        page_size: int = BATCH_SIZE,
        metrics: Optional[SweepMetrics] = None,
    ):
        self.source = source
        self.store = store
        self.epoch_start = epoch_start
        self.pagination = PaginationConfig(cutoff=cutoff, page_size=page_size)
        self.metrics = metrics

    def sync(self) -> List[str]:
        """Fetch what is new, persist the merged cache and return it."""
        return self.synchronize().identifiers

    def synchronize(self) -> SyncResult:
        snapshot = self.store.load()
        if snapshot is None:
            old: List[str] = []
            prior = self.epoch_start
            logger.info(
                "No cursor found, backfilling from %s", format_timestamp(prior)
            )
        else:
            old = snapshot.identifiers
            prior = snapshot.watermark
            logger.info(
                "Resuming after %s with %d cached identifiers",
                format_timestamp(prior),
                len(old),
            )

        state = CreatedAtPaginationState(self.pagination, prior)
        new: List[str] = []
        while state.should_fetch_more():
            records = self.source.query_page(state.build_request())
            if self.metrics is not None:
                self.metrics.incr("pages")
            if records:
                new.extend(record.identifier for record in records)
                logger.info(
                    "Fetched %d records %s (new so far: %d)",
                    len(records),
                    state.describe(),
                    len(new),
                )
            if not state.on_response(records):
                break

        watermark = max(prior, state.watermark) if state.watermark else prior
        identifiers = old + new
        self.store.save(identifiers, watermark)
        if self.metrics is not None:
            self.metrics.incr("fetched", len(new))

        logger.info(
            "Sync complete: %d new, %d total, watermark %s (%d pages)",
            len(new),
            len(identifiers),
            format_timestamp(watermark),
            state.pages_fetched,
        )
        return SyncResult(
            identifiers=identifiers,
            watermark=watermark,
            new_count=len(new),
            pages=state.pages_fetched,
            incremental=snapshot is not None,
        )
