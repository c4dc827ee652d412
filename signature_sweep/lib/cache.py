"""Identifier cache and resumption cursor.

The cache holds every identifier fetched so far plus the watermark: the
creation time of the last identifier incorporated. Both live in one JSON
snapshot (``snapshot.json``) that is replaced atomically, so a crash
during ``save`` leaves either the previous or the new snapshot on disk.

Older deployments kept two files, ``pieces`` (one identifier per line)
and ``last_created`` (an ISO timestamp). They are still read when no
snapshot exists; the next ``save`` migrates to the snapshot.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Union

from signature_sweep.lib._path_utils import atomic_write_text, read_lines
from signature_sweep.lib.errors import CacheCorruptError
from signature_sweep.lib.time_utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

__all__ = ["CacheSnapshot", "CacheStore", "SNAPSHOT_NAME"]

SNAPSHOT_NAME = "snapshot.json"
LEGACY_IDENTIFIERS_NAME = "pieces"
LEGACY_WATERMARK_NAME = "last_created"


@dataclass
class CacheSnapshot:
    """Identifiers fetched so far, in discovery order, and the cursor."""

    identifiers: List[str]
    watermark: datetime
    updated_at: Optional[datetime] = field(default=None, compare=False)

    def age_hours(self, now: Optional[datetime] = None) -> Optional[float]:
        """Hours since the snapshot was written, if known."""
        if self.updated_at is None:
            return None
        now = now or datetime.now(timezone.utc)
        return (now - self.updated_at).total_seconds() / 3600


class CacheStore:
    """Reads and writes the cache snapshot in ``cache_dir``."""

    def __init__(self, cache_dir: Union[str, Path]):
        self.cache_dir = Path(cache_dir)

    @property
    def snapshot_path(self) -> Path:
        return self.cache_dir / SNAPSHOT_NAME

    def load(self) -> Optional[CacheSnapshot]:
        """Return the stored snapshot, or None if never synchronized.

        Raises:
            CacheCorruptError: if a cache file exists but cannot be parsed
        """
        if self.snapshot_path.exists():
            return self._load_snapshot(self.snapshot_path)
        return self._load_legacy()

    def load_cursor(self) -> Optional[datetime]:
        snapshot = self.load()
        return snapshot.watermark if snapshot is not None else None

    def save(self, identifiers: Iterable[str], watermark: datetime) -> CacheSnapshot:
        """Replace the snapshot with ``identifiers`` and ``watermark``.

        Raises:
            CachePersistenceError: if the snapshot cannot be written
        """
        snapshot = CacheSnapshot(
            identifiers=list(identifiers),
            watermark=watermark,
            updated_at=datetime.now(timezone.utc),
        )
        payload = {
            "identifiers": snapshot.identifiers,
            "watermark": format_timestamp(snapshot.watermark),
            "updated_at": format_timestamp(snapshot.updated_at),
        }
        atomic_write_text(self.snapshot_path, json.dumps(payload, indent=2))
        logger.info(
            "Saved %d identifiers with watermark %s to %s",
            len(snapshot.identifiers),
            payload["watermark"],
            self.snapshot_path,
        )
        return snapshot

    def _load_snapshot(self, path: Path) -> CacheSnapshot:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            identifiers = data["identifiers"]
            if not isinstance(identifiers, list) or not all(
                isinstance(item, str) for item in identifiers
            ):
                raise TypeError("identifiers must be a list of strings")
            updated_at = data.get("updated_at")
            snapshot = CacheSnapshot(
                identifiers=identifiers,
                watermark=parse_timestamp(data["watermark"]),
                updated_at=parse_timestamp(updated_at) if updated_at else None,
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise CacheCorruptError(f"Unreadable cache snapshot: {exc}", path=path) from exc

        logger.debug(
            "Loaded %d identifiers (watermark %s) from %s",
            len(snapshot.identifiers),
            format_timestamp(snapshot.watermark),
            path,
        )
        return snapshot

    def _load_legacy(self) -> Optional[CacheSnapshot]:
        watermark_path = self.cache_dir / LEGACY_WATERMARK_NAME
        if not watermark_path.exists():
            logger.debug("No cache found in %s", self.cache_dir)
            return None

        try:
            watermark = parse_timestamp(watermark_path.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise CacheCorruptError(
                f"Unreadable watermark: {exc}", path=watermark_path
            ) from exc

        identifiers_path = self.cache_dir / LEGACY_IDENTIFIERS_NAME
        identifiers = read_lines(identifiers_path) if identifiers_path.exists() else []
        logger.info(
            "Loaded legacy cache from %s (%d identifiers); it will be migrated on save",
            self.cache_dir,
            len(identifiers),
        )
        return CacheSnapshot(identifiers=identifiers, watermark=watermark)
