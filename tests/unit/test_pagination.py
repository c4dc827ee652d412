"""Unit tests for creation-time keyset pagination.

Tests cover:
- Request bounds built from the cursor and cutoff
- Cursor advancement and monotonicity
- Termination on empty and short pages
"""

import pytest

from signature_sweep.lib.pagination import CreatedAtPaginationState, PaginationConfig
from tests.fakes import make_records, ts


class TestPaginationConfig:
    """Tests for PaginationConfig."""

    def test_default_page_size(self):
        """Default page size should be 100."""
        assert PaginationConfig(cutoff=ts(100)).page_size == 100

    def test_rejects_non_positive_page_size(self):
        """A zero page size would never terminate."""
        with pytest.raises(ValueError):
            PaginationConfig(cutoff=ts(100), page_size=0)


class TestCreatedAtPaginationState:
    """Tests for CreatedAtPaginationState."""

    def test_first_request_bounds(self):
        """The first request should start at the given cursor."""
        state = CreatedAtPaginationState(PaginationConfig(cutoff=ts(100), page_size=2), ts(0))
        request = state.build_request()
        assert request.lower_bound_exclusive == ts(0)
        assert request.upper_bound_exclusive == ts(100)
        assert request.page_size == 2

    def test_full_page_advances_cursor(self):
        """A full page should move the cursor to its last record."""
        state = CreatedAtPaginationState(PaginationConfig(cutoff=ts(100), page_size=2), ts(0))
        assert state.on_response(make_records(("a", 1), ("b", 5))) is True
        assert state.should_fetch_more()
        assert state.build_request().lower_bound_exclusive == ts(5)
        assert state.watermark == ts(5)

    def test_short_page_stops(self):
        """A page shorter than the page size means the source is exhausted."""
        state = CreatedAtPaginationState(PaginationConfig(cutoff=ts(100), page_size=3), ts(0))
        assert state.on_response(make_records(("a", 1), ("b", 2))) is False
        assert not state.should_fetch_more()
        assert state.watermark == ts(2)

    def test_empty_page_stops_without_watermark(self):
        """An empty first page should leave the watermark unset."""
        state = CreatedAtPaginationState(PaginationConfig(cutoff=ts(100)), ts(0))
        assert state.on_response([]) is False
        assert state.watermark is None
        assert state.pages_fetched == 1

    def test_cursor_never_moves_backwards(self):
        """A page ending before the cursor should not lower it, and should stop."""
        state = CreatedAtPaginationState(PaginationConfig(cutoff=ts(100), page_size=1), ts(10))
        assert state.on_response(make_records(("old", 3))) is False
        assert state.build_request().lower_bound_exclusive == ts(10)
        assert state.watermark is None

    def test_start_at_cutoff_fetches_nothing(self):
        """A cursor already at the cutoff should not request a page."""
        state = CreatedAtPaginationState(PaginationConfig(cutoff=ts(10)), ts(10))
        assert not state.should_fetch_more()

    def test_describe(self):
        """describe should name the cursor and the next page number."""
        state = CreatedAtPaginationState(PaginationConfig(cutoff=ts(100)), ts(0))
        assert state.describe() == "after 2020-01-01T00:00:00Z (page 1)"
