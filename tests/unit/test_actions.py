"""Tests for administrative actions and chunking."""

import pandas as pd
import pytest

from signature_sweep.lib.actions import (
    export_signed_csv,
    lookup_piece_url,
    reprocess_signed,
    strip_piece,
)
from signature_sweep.lib.chunking import chunkify
from signature_sweep.lib.classifier import Outcome
from signature_sweep.lib.outputs import ResumableOutputStore
from tests.fakes import FakeRemoteSource

PIECES = {
    "share://a.pdf": ("http://themis/pieces/a", "https://k/document/a"),
    "share://b.pdf": ("http://themis/pieces/b", "https://k/document/b"),
    "share://c.pdf": ("http://themis/pieces/c", "https://k/document/c"),
}


@pytest.fixture
def source():
    return FakeRemoteSource(pieces=PIECES)


@pytest.fixture
def signed_store(cache_dir):
    store = ResumableOutputStore(cache_dir)
    store.write(Outcome.SIGNED, ["share://a.pdf", "share://orphan.pdf", "share://b.pdf"])
    return store


class TestChunkify:
    """Tests for chunkify."""

    def test_even_and_remainder(self):
        """The last chunk should hold the remainder."""
        assert list(chunkify([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        """No items means no chunks."""
        assert list(chunkify([], 3)) == []

    def test_rejects_non_positive_size(self):
        """A zero chunk size is an error."""
        with pytest.raises(ValueError):
            list(chunkify([1], 0))


class TestLookups:
    """Tests for single-piece actions."""

    def test_lookup_piece_url(self, source):
        """A known file should map to its piece URL."""
        assert lookup_piece_url(source, "share://a.pdf") == "https://k/document/a"

    def test_lookup_unknown(self, source):
        """An unknown file should give None."""
        assert lookup_piece_url(source, "share://nope.pdf") is None

    def test_strip_piece(self, source):
        """Stripping should reinsert the owning piece."""
        assert strip_piece(source, "share://b.pdf") is True
        assert source.reinserted == ["http://themis/pieces/b"]

    def test_strip_unknown(self, source):
        """Stripping an unknown file should write nothing."""
        assert strip_piece(source, "share://nope.pdf") is False
        assert source.reinserted == []


class TestExportSignedCsv:
    """Tests for export_signed_csv."""

    def test_export(self, source, signed_store, tmp_path):
        """Each signed document should get a row with its piece URL."""
        target = tmp_path / "out" / "signed.csv"
        assert export_signed_csv(signed_store, source, target) == 3

        frame = pd.read_csv(target)
        assert list(frame.columns) == ["identifier", "piece_url"]
        assert frame["identifier"].tolist() == [
            "share://a.pdf",
            "share://orphan.pdf",
            "share://b.pdf",
        ]
        assert frame.loc[0, "piece_url"] == "https://k/document/a"
        assert pd.isna(frame.loc[1, "piece_url"])

    def test_export_empty(self, source, cache_dir, tmp_path):
        """An empty signed set should still produce a header."""
        store = ResumableOutputStore(cache_dir)
        store.write(Outcome.SIGNED, [])
        target = tmp_path / "signed.csv"
        assert export_signed_csv(store, source, target) == 0
        assert target.read_text().strip() == "identifier,piece_url"


class TestReprocessSigned:
    """Tests for reprocess_signed."""

    def test_strips_in_chunks_with_pauses(self, source, signed_store, recording_sleep):
        """Pieces should be stripped chunk by chunk, pausing between chunks only."""
        report = reprocess_signed(
            signed_store, source, chunk_size=2, pause_seconds=0.5, sleep=recording_sleep
        )
        assert report.total == 3
        assert report.stripped == 2
        assert report.missing == ["share://orphan.pdf"]
        assert report.ok
        assert source.reinserted == ["http://themis/pieces/a", "http://themis/pieces/b"]
        assert recording_sleep.calls == [0.5]

    def test_failures_are_counted_not_fatal(self, source, signed_store, recording_sleep):
        """A failing lookup should be reported while the rest continue."""
        source.fail_on.add("share://a.pdf")
        report = reprocess_signed(signed_store, source, chunk_size=10, sleep=recording_sleep)
        assert report.failed == ["share://a.pdf"]
        assert report.stripped == 1
        assert not report.ok
        assert recording_sleep.calls == []
