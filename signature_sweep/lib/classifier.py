"""Per-identifier classification: too large, signed, unsigned or error.

Each identifier names a physical file on the shared volume
(``share://<name>`` maps to ``<share_root>/<name>``). Files larger than
the size threshold are never opened; the rest are handed to the
document inspector.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol, Union

from signature_sweep.lib.inspector import DocumentInspector
from signature_sweep.lib.observability import SweepMetrics

logger = logging.getLogger(__name__)

__all__ = [
    "Outcome",
    "FileAccess",
    "ShareFileAccess",
    "Classifier",
    "share_uri_to_path",
    "path_to_share_uri",
]

SHARE_SCHEME = "share://"


class Outcome(str, Enum):
    """Classification outcome for one document."""

    TOO_LARGE = "too_large"
    SIGNED = "signed"
    UNSIGNED = "unsigned"
    ERROR = "error"

    @property
    def persisted(self) -> bool:
        """Whether the outcome has its own output artifact."""
        return self in (Outcome.SIGNED, Outcome.TOO_LARGE)


def share_uri_to_path(uri: str, share_root: Union[str, Path] = "/share") -> Path:
    """Map ``share://a/b.pdf`` onto ``<share_root>/a/b.pdf``."""
    if not uri.startswith(SHARE_SCHEME):
        raise ValueError(f"Not a share URI: {uri!r}")
    relative = uri[len(SHARE_SCHEME):].lstrip("/")
    root = Path(share_root)
    path = (root / relative).resolve()
    if root.resolve() not in path.parents:
        raise ValueError(f"Share URI escapes the share root: {uri!r}")
    return path


def path_to_share_uri(path: Union[str, Path], share_root: Union[str, Path] = "/share") -> str:
    """Inverse of :func:`share_uri_to_path`."""
    relative = Path(path).resolve().relative_to(Path(share_root).resolve())
    return f"{SHARE_SCHEME}{relative.as_posix()}"


class FileAccess(Protocol):
    def size(self, identifier: str) -> int:
        ...

    def read_bytes(self, identifier: str) -> bytes:
        ...


class ShareFileAccess:
    """Reads physical files from the shared volume."""

    def __init__(self, share_root: Union[str, Path] = "/share"):
        self.share_root = Path(share_root)

    def size(self, identifier: str) -> int:
        return share_uri_to_path(identifier, self.share_root).stat().st_size

    def read_bytes(self, identifier: str) -> bytes:
        return share_uri_to_path(identifier, self.share_root).read_bytes()


class Classifier:
    """Buckets identifiers into outcomes, one at a time.

    Failures while probing or inspecting are isolated to the item: they
    are logged and reported as ``Outcome.ERROR``, never raised.
    """

    def __init__(
        self,
        files: FileAccess,
        inspector: DocumentInspector,
        max_file_size_bytes: int,
        metrics: Optional[SweepMetrics] = None,
    ):
        self.files = files
        self.inspector = inspector
        self.max_file_size_bytes = max_file_size_bytes
        self.metrics = metrics

    def classify(self, identifier: str) -> Outcome:
        try:
            outcome = self._classify(identifier)
        except Exception:
            logger.exception("Could not classify %s, skipping it", identifier)
            outcome = Outcome.ERROR

        if self.metrics is not None:
            self.metrics.incr(outcome.value)
        return outcome

    def _classify(self, identifier: str) -> Outcome:
        size = self.files.size(identifier)
        if size > self.max_file_size_bytes:
            logger.info(
                "%s is too large to inspect (%d > %d bytes)",
                identifier,
                size,
                self.max_file_size_bytes,
            )
            return Outcome.TOO_LARGE

        result = self.inspector.inspect(self.files.read_bytes(identifier))
        if result.has_signature_field:
            logger.debug(
                "%s has %d signature field(s)", identifier, result.signature_field_count
            )
            return Outcome.SIGNED
        return Outcome.UNSIGNED
