"""Administrative actions on individual pieces and on the signed set.

These operate on the results of a finished sweep:

- look up the display URL of the piece owning a physical file
- strip a piece: re-insert its type triple so downstream consumers
  (the signature remover) pick it up again
- export the signed set with piece URLs to CSV
- strip every piece in the signed set, in small groups with a pause in
  between so the triplestore is not flooded
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Union

import pandas as pd

from signature_sweep.lib.chunking import chunkify
from signature_sweep.lib.classifier import Outcome
from signature_sweep.lib.outputs import ResumableOutputStore
from signature_sweep.lib.remote import RemoteSource

logger = logging.getLogger(__name__)

__all__ = [
    "ReprocessReport",
    "lookup_piece_url",
    "strip_piece",
    "export_signed_csv",
    "reprocess_signed",
]

CSV_COLUMNS = ["identifier", "piece_url"]


def lookup_piece_url(source: RemoteSource, identifier: str) -> Optional[str]:
    """Display URL of the piece owning ``identifier``, or None if unknown."""
    url = source.get_piece_url(identifier)
    if url is None:
        logger.info("No piece found for %s", identifier)
    return url


def strip_piece(source: RemoteSource, identifier: str) -> bool:
    """Mark the piece owning ``identifier`` for reprocessing.

    Returns:
        False when no piece owns the identifier
    """
    piece_uri = source.get_piece_uri(identifier)
    if piece_uri is None:
        logger.info("No piece found for %s, nothing to strip", identifier)
        return False
    source.reinsert_piece(piece_uri)
    return True


def export_signed_csv(
    store: ResumableOutputStore,
    source: RemoteSource,
    path: Union[str, Path],
) -> int:
    """Write the signed set with piece URLs to ``path``; returns the row count.

    Identifiers without a piece get an empty ``piece_url``.
    """
    identifiers = store.read(Outcome.SIGNED)
    rows = [
        {"identifier": identifier, "piece_url": source.get_piece_url(identifier)}
        for identifier in identifiers
    ]
    frame = pd.DataFrame(rows, columns=CSV_COLUMNS)

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(target, index=False)
    logger.info("Exported %d signed documents to %s", len(frame), target)
    return len(frame)


@dataclass
class ReprocessReport:
    total: int = 0
    stripped: int = 0
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def reprocess_signed(
    store: ResumableOutputStore,
    source: RemoteSource,
    *,
    chunk_size: int = 10,
    pause_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> ReprocessReport:
    """Strip every piece in the signed set, ``chunk_size`` at a time.

    A failure on one identifier is logged and counted; the rest continue.
    """
    identifiers = store.read(Outcome.SIGNED)
    report = ReprocessReport(total=len(identifiers))
    chunks = list(chunkify(identifiers, chunk_size))

    for number, chunk in enumerate(chunks, start=1):
        for identifier in chunk:
            try:
                if strip_piece(source, identifier):
                    report.stripped += 1
                else:
                    report.missing.append(identifier)
            except Exception:
                logger.exception("Could not strip the piece of %s", identifier)
                report.failed.append(identifier)

        logger.info(
            "Reprocessed chunk %d/%d (%d stripped so far)",
            number,
            len(chunks),
            report.stripped,
        )
        if number < len(chunks) and pause_seconds > 0:
            sleep(pause_seconds)

    logger.info(
        "Reprocessing done: %d stripped, %d without piece, %d failed",
        report.stripped,
        len(report.missing),
        len(report.failed),
    )
    return report
