"""Memory backpressure for the classification loop.

After every classified document the governor compares the process's
memory use with a ceiling. Above the threshold it pauses for a fixed
delay so the interpreter and the OS can reclaim memory before the next
(possibly large) document is loaded. It never frees anything itself.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

import psutil

logger = logging.getLogger(__name__)

__all__ = [
    "MemoryPressurePolicy",
    "BackpressureGovernor",
    "process_rss_bytes",
    "total_memory_bytes",
    "cgroup_memory_limit",
]

# cgroup v2, then v1. v1 reports "unlimited" as a huge page-aligned number.
CGROUP_LIMIT_FILES = (
    Path("/sys/fs/cgroup/memory.max"),
    Path("/sys/fs/cgroup/memory/memory.limit_in_bytes"),
)


def process_rss_bytes() -> int:
    """Resident set size of the current process."""
    return psutil.Process().memory_info().rss


def cgroup_memory_limit(paths: Iterable[Path] = CGROUP_LIMIT_FILES) -> Optional[int]:
    """Memory limit imposed on this container, or None when there is none."""
    for path in paths:
        try:
            text = path.read_text().strip()
        except OSError:
            continue
        if text == "max":
            return None
        try:
            return int(text)
        except ValueError:
            logger.debug("Ignoring unreadable cgroup limit %r in %s", text, path)
    return None


def total_memory_bytes() -> int:
    """Machine memory, capped by the cgroup limit when running in a container."""
    total = psutil.virtual_memory().total
    limit = cgroup_memory_limit()
    if limit is not None and 0 < limit < total:
        return limit
    return total


@dataclass(frozen=True)
class MemoryPressurePolicy:
    """When and for how long to back off."""

    threshold: float = 0.70
    delay_seconds: float = 5.0
    ceiling_bytes: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0 < self.threshold <= 1:
            raise ValueError(f"threshold must be in (0, 1], got {self.threshold}")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        if self.ceiling_bytes is not None and self.ceiling_bytes <= 0:
            raise ValueError("ceiling_bytes must be positive")

    def is_under_pressure(self, used_bytes: int, ceiling_bytes: int) -> bool:
        """True when used/ceiling is strictly above the threshold."""
        return used_bytes / ceiling_bytes > self.threshold


class BackpressureGovernor:
    """Applies a :class:`MemoryPressurePolicy` between classification steps.

    Example:
        governor = BackpressureGovernor(MemoryPressurePolicy(threshold=0.7))
        for identifier in identifiers:
            classify(identifier)
            governor.after_item()
    """

    def __init__(
        self,
        policy: Optional[MemoryPressurePolicy] = None,
        *,
        usage_fn: Callable[[], int] = process_rss_bytes,
        ceiling_fn: Callable[[], int] = total_memory_bytes,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy or MemoryPressurePolicy()
        self._usage_fn = usage_fn
        self._ceiling_fn = ceiling_fn
        self._sleep = sleep
        self.pauses = 0

    @property
    def ceiling_bytes(self) -> int:
        if self.policy.ceiling_bytes is not None:
            return self.policy.ceiling_bytes
        return self._ceiling_fn()

    def after_item(self) -> bool:
        """Pause if memory is above the threshold; returns whether it paused."""
        used = self._usage_fn()
        ceiling = self.ceiling_bytes
        if not self.policy.is_under_pressure(used, ceiling):
            return False

        logger.warning(
            "Memory usage at %.1f%% of %d MB (limit %.0f%%), pausing %.1fs",
            used / ceiling * 100,
            ceiling // (1024 * 1024),
            self.policy.threshold * 100,
            self.policy.delay_seconds,
        )
        self.pauses += 1
        self._sleep(self.policy.delay_seconds)
        return True
