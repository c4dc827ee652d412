"""Keyset pagination over creation time.

The remote store is append-only and queried in ascending creation order,
so the cursor is simply the ``created_at`` of the last record seen. Each
page asks for records strictly after that value and strictly before the
cutoff.

Typical exchange:
    page 1: created > 2019-10-02, LIMIT 100 -> last created 2020-01-07
    page 2: created > 2020-01-07, LIMIT 100 -> 37 records, source exhausted
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from signature_sweep.lib.remote import PageRequest, RemoteRecord
from signature_sweep.lib.time_utils import format_timestamp

logger = logging.getLogger(__name__)

__all__ = ["PaginationConfig", "CreatedAtPaginationState"]


@dataclass(frozen=True)
class PaginationConfig:
    """Configuration for creation-time pagination.

    Example:
        config = PaginationConfig(cutoff=CUTOFF, page_size=100)
    """

    cutoff: datetime
    page_size: int = 100

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError(f"page_size must be positive, got {self.page_size}")


class CreatedAtPaginationState:
    """Tracks progress through creation-time ordered pages.

    The lower bound only moves forward: a record older than the current
    bound (a misbehaving source) never pulls it back.
    """

    def __init__(self, config: PaginationConfig, start: datetime):
        self.config = config
        self.start = start
        self.pages_fetched = 0
        self.records_seen = 0
        self._exhausted = start >= config.cutoff
        self._advanced = False

    def should_fetch_more(self) -> bool:
        return not self._exhausted

    def build_request(self) -> PageRequest:
        return PageRequest(
            lower_bound_exclusive=self.start,
            upper_bound_exclusive=self.config.cutoff,
            page_size=self.config.page_size,
        )

    def on_response(self, records: List[RemoteRecord]) -> bool:
        """Process one page and update state.

        Returns:
            True if another page should be requested
        """
        self.pages_fetched += 1
        if not records:
            self._exhausted = True
            return False

        self.records_seen += len(records)
        last_created = records[-1].created_at
        if last_created > self.start:
            self.start = last_created
            self._advanced = True
        else:
            # Re-querying from an unchanged cursor would return the same page.
            logger.warning(
                "Page ended at %s, not after the current cursor %s; stopping",
                format_timestamp(last_created),
                format_timestamp(self.start),
            )
            self._exhausted = True

        if len(records) < self.config.page_size:
            self._exhausted = True
        return not self._exhausted

    @property
    def watermark(self) -> Optional[datetime]:
        """Cursor after the last non-empty page, or None if nothing advanced it."""
        return self.start if self._advanced else None

    def describe(self) -> str:
        return f"after {format_timestamp(self.start)} (page {self.pages_fetched + 1})"
