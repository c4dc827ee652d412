"""Tests for sweep metrics and JSON log formatting."""

import json
import logging

from signature_sweep.lib.observability import JSONFormatter, SweepMetrics


class TestSweepMetrics:
    """Tests for SweepMetrics."""

    def test_counters(self):
        """incr should accumulate per name."""
        metrics = SweepMetrics()
        metrics.incr("signed")
        metrics.incr("signed", 2)
        assert metrics.count("signed") == 3
        assert metrics.count("unknown") == 0

    def test_phases_in_log_dict(self):
        """Timed phases and counters should be flattened."""
        metrics = SweepMetrics("test")
        with metrics.time_phase("fetch"):
            pass
        metrics.incr("pages", 4)
        metrics.finish()

        data = metrics.to_log_dict()
        assert data["sweep"] == "test"
        assert data["phase_fetch_seconds"] >= 0
        assert data["count_pages"] == 4
        assert data["total_duration_seconds"] >= 0

    def test_phase_stops_on_error(self):
        """A phase should record its duration even when it raises."""
        metrics = SweepMetrics()
        try:
            with metrics.time_phase("classify") as timer:
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert not timer.running


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_renders_extra_fields(self):
        """Extra attributes should land under 'extra'."""
        record = logging.LogRecord("signature_sweep", logging.INFO, __file__, 1, "done %d", (3,), None)
        record.metrics = {"count_signed": 1}
        payload = json.loads(JSONFormatter().format(record))
        assert payload["message"] == "done 3"
        assert payload["level"] == "INFO"
        assert payload["extra"]["metrics"] == {"count_signed": 1}
