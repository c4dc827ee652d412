"""Resumable per-category output artifacts.

One newline-separated artifact per persisted outcome:

- ``signed-uris``: documents with at least one signature field
- ``too-large-uris``: documents over the size threshold (never opened)

Resumption is governed by :class:`ResumeMode`. The default,
``SIGNED_ARTIFACT_EXISTS``, treats the mere presence of ``signed-uris``
as proof that the whole corpus up to the cutoff has been classified. It
does not notice identifiers that appeared after the artifact was written;
delete the artifact (or switch to ``PER_IDENTIFIER``) to pick them up.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Union

from signature_sweep.lib._path_utils import atomic_write_text, read_lines, write_lines
from signature_sweep.lib.classifier import Outcome
from signature_sweep.lib.errors import CacheCorruptError

logger = logging.getLogger(__name__)

__all__ = ["ResumeMode", "ResumableOutputStore", "OutcomeLedger", "ARTIFACT_NAMES"]

ARTIFACT_NAMES: Dict[Outcome, str] = {
    Outcome.SIGNED: "signed-uris",
    Outcome.TOO_LARGE: "too-large-uris",
}

LEDGER_NAME = "outcomes.json"


_RESUME_MODE_DESCRIPTIONS = {
    "signed_artifact_exists": (
        "Skip fetch and classification entirely when the signed artifact exists"
    ),
    "per_identifier": (
        "Always sync; classify only identifiers missing from the outcome ledger"
    ),
}


class ResumeMode(str, Enum):
    """How a sweep decides which work is already done."""

    SIGNED_ARTIFACT_EXISTS = "signed_artifact_exists"
    PER_IDENTIFIER = "per_identifier"

    @classmethod
    def choices(cls) -> List[str]:
        return [member.value for member in cls]

    @classmethod
    def normalize(cls, raw: Union[str, "ResumeMode", None]) -> "ResumeMode":
        if isinstance(raw, cls):
            return raw
        if raw is None:
            return cls.SIGNED_ARTIFACT_EXISTS

        candidate = str(raw).strip().lower().replace("-", "_")
        for member in cls:
            if member.value == candidate:
                return member

        raise ValueError(
            f"Invalid ResumeMode '{raw}'. Valid options: {', '.join(cls.choices())}"
        )

    def describe(self) -> str:
        return _RESUME_MODE_DESCRIPTIONS[self.value]


def dedupe(identifiers: Iterable[str]) -> List[str]:
    """Drop repeated identifiers, keeping first-seen order."""
    return list(dict.fromkeys(identifiers))


class ResumableOutputStore:
    """Owns the per-category output artifacts in ``output_dir``."""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def path_for(self, category: Outcome) -> Path:
        try:
            return self.output_dir / ARTIFACT_NAMES[category]
        except KeyError:
            raise ValueError(f"No output artifact for outcome {category.value!r}") from None

    def has(self, category: Outcome) -> bool:
        return self.path_for(category).exists()

    def read(self, category: Outcome) -> List[str]:
        """Artifact contents in stored order; empty when the artifact is absent."""
        path = self.path_for(category)
        if not path.exists():
            return []
        return read_lines(path)

    def write(self, category: Outcome, identifiers: Iterable[str]) -> Path:
        """Rewrite the artifact wholesale, one identifier per line."""
        path = self.path_for(category)
        count = write_lines(path, dedupe(identifiers))
        logger.info("Stored %d %s identifiers in %s", count, category.value, path)
        return path


class OutcomeLedger:
    """Persisted identifier -> outcome map for per-identifier resumption.

    ``ERROR`` outcomes are never recorded so failed items are retried on
    the next sweep.
    """

    def __init__(self, output_dir: Union[str, Path]):
        self.path = Path(output_dir) / LEDGER_NAME
        self._outcomes: Optional[Dict[str, Outcome]] = None

    def _load(self) -> Dict[str, Outcome]:
        if self._outcomes is not None:
            return self._outcomes

        outcomes: Dict[str, Outcome] = {}
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                for identifier, value in data["outcomes"].items():
                    outcomes[identifier] = Outcome(value)
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                raise CacheCorruptError(
                    f"Unreadable outcome ledger: {exc}", path=self.path
                ) from exc
        self._outcomes = outcomes
        return outcomes

    def get(self, identifier: str) -> Optional[Outcome]:
        return self._load().get(identifier)

    def record(self, identifier: str, outcome: Outcome) -> None:
        if outcome is Outcome.ERROR:
            return
        self._load()[identifier] = outcome

    def outcomes(self) -> Mapping[str, Outcome]:
        return dict(self._load())

    def __len__(self) -> int:
        return len(self._load())

    def save(self) -> None:
        payload = {
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "outcomes": {k: v.value for k, v in self._load().items()},
        }
        atomic_write_text(self.path, json.dumps(payload, indent=2))
        logger.debug("Saved %d outcomes to %s", len(self), self.path)
