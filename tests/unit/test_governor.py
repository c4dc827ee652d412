"""Tests for memory backpressure."""

import pytest

from signature_sweep.lib import governor as governor_module
from signature_sweep.lib.governor import (
    BackpressureGovernor,
    MemoryPressurePolicy,
    cgroup_memory_limit,
    total_memory_bytes,
)

MB = 1024 * 1024


class TestMemoryPressurePolicy:
    """Tests for MemoryPressurePolicy."""

    def test_defaults(self):
        """Default policy should be 70% with a 5 second delay."""
        policy = MemoryPressurePolicy()
        assert policy.threshold == 0.70
        assert policy.delay_seconds == 5.0

    def test_strictly_above_threshold(self):
        """Exactly at the threshold is not pressure."""
        policy = MemoryPressurePolicy(threshold=0.5)
        assert not policy.is_under_pressure(50, 100)
        assert policy.is_under_pressure(51, 100)

    @pytest.mark.parametrize(
        "kwargs",
        [{"threshold": 0}, {"threshold": 1.2}, {"delay_seconds": -1}, {"ceiling_bytes": 0}],
    )
    def test_rejects_invalid_values(self, kwargs):
        """Out-of-range values should be rejected at construction."""
        with pytest.raises(ValueError):
            MemoryPressurePolicy(**kwargs)


class TestBackpressureGovernor:
    """Tests for BackpressureGovernor.after_item."""

    def test_no_pause_below_threshold(self, recording_sleep):
        """Low usage should return at once."""
        governor = BackpressureGovernor(
            usage_fn=lambda: 10 * MB, ceiling_fn=lambda: 100 * MB, sleep=recording_sleep
        )
        assert governor.after_item() is False
        assert recording_sleep.calls == []
        assert governor.pauses == 0

    def test_pauses_above_threshold(self, recording_sleep, caplog):
        """High usage should sleep for the configured delay and log it."""
        governor = BackpressureGovernor(
            MemoryPressurePolicy(threshold=0.7, delay_seconds=5.0),
            usage_fn=lambda: 80 * MB,
            ceiling_fn=lambda: 100 * MB,
            sleep=recording_sleep,
        )
        with caplog.at_level("WARNING"):
            assert governor.after_item() is True
        assert recording_sleep.calls == [5.0]
        assert governor.pauses == 1
        assert "pausing 5.0s" in caplog.text

    def test_configured_ceiling_wins(self, recording_sleep):
        """An explicit ceiling should replace the machine total."""
        governor = BackpressureGovernor(
            MemoryPressurePolicy(ceiling_bytes=50 * MB),
            usage_fn=lambda: 40 * MB,
            ceiling_fn=lambda: 1000 * MB,
            sleep=recording_sleep,
        )
        assert governor.ceiling_bytes == 50 * MB
        assert governor.after_item() is True

    def test_default_readers_use_psutil(self, recording_sleep):
        """The default memory readers should report real, positive numbers."""
        governor = BackpressureGovernor(MemoryPressurePolicy(threshold=1.0), sleep=recording_sleep)
        assert governor.ceiling_bytes > 0
        assert governor.after_item() is False


class TestMemoryCeiling:
    """Tests for the default memory ceiling."""

    def test_cgroup_v2_limit(self, tmp_path):
        """A numeric memory.max should be read as the limit."""
        limit_file = tmp_path / "memory.max"
        limit_file.write_text("536870912\n")
        assert cgroup_memory_limit([limit_file]) == 512 * MB

    def test_cgroup_v2_unlimited(self, tmp_path):
        """'max' means no container limit."""
        limit_file = tmp_path / "memory.max"
        limit_file.write_text("max\n")
        assert cgroup_memory_limit([limit_file]) is None

    def test_falls_back_to_v1(self, tmp_path):
        """A missing v2 file should fall through to the v1 file."""
        v1 = tmp_path / "memory.limit_in_bytes"
        v1.write_text("1073741824")
        assert cgroup_memory_limit([tmp_path / "absent", v1]) == 1024 * MB

    def test_no_cgroup_files(self, tmp_path):
        """Outside a container there is no limit."""
        assert cgroup_memory_limit([tmp_path / "absent"]) is None

    def test_container_limit_caps_machine_total(self, monkeypatch):
        """A container limit below the host's RAM should become the ceiling."""
        monkeypatch.setattr(governor_module, "cgroup_memory_limit", lambda: 256 * MB)
        monkeypatch.setattr(
            governor_module.psutil,
            "virtual_memory",
            lambda: type("VirtualMemory", (), {"total": 64 * 1024 * MB})(),
        )
        assert total_memory_bytes() == 256 * MB

    def test_unlimited_v1_value_is_ignored(self, monkeypatch):
        """A limit above the machine total should leave the total in place."""
        monkeypatch.setattr(governor_module, "cgroup_memory_limit", lambda: 2**63 - 4096)
        monkeypatch.setattr(
            governor_module.psutil,
            "virtual_memory",
            lambda: type("VirtualMemory", (), {"total": 8 * 1024 * MB})(),
        )
        assert total_memory_bytes() == 8 * 1024 * MB

    def test_container_limit_trips_threshold(self, monkeypatch, recording_sleep):
        """Usage near the container limit should pause even on a large host."""
        monkeypatch.setattr(governor_module, "cgroup_memory_limit", lambda: 100 * MB)
        governor = BackpressureGovernor(usage_fn=lambda: 80 * MB, sleep=recording_sleep)
        assert governor.after_item() is True
