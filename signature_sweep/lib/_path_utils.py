"""Internal helpers for reading and atomically replacing small state files.

Shared by the cache store and the output store so that every artifact is
written the same way: temp file in the target directory, fsync, then
``os.replace`` over the old file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List

from signature_sweep.lib.errors import CachePersistenceError

logger = logging.getLogger(__name__)

__all__ = ["atomic_write_text", "read_lines", "write_lines"]


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` so readers see the old or new content.

    Raises:
        CachePersistenceError: if the directory, temp file or rename fails
    """
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise CachePersistenceError(
            f"Could not write {path.name}", path=path, cause=exc
        ) from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.warning("Could not remove temp file %s", tmp_name)


def write_lines(path: Path, lines: Iterable[str]) -> int:
    """Write one value per line; returns the number of lines written."""
    values = list(lines)
    atomic_write_text(path, "".join(f"{value}\n" for value in values))
    return len(values)


def read_lines(path: Path) -> List[str]:
    """Read one value per line, skipping blank lines."""
    with open(path, "r", encoding="utf-8") as handle:
        return [line.strip() for line in handle if line.strip()]
