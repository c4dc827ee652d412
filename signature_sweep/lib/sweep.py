"""The signature sweep pipeline: sync, classify, persist.

States:
    IDLE -> DONE_FROM_CACHE                          (signed artifact present)
    IDLE -> FETCHING -> CLASSIFYING -> PERSISTING -> DONE

Classification is strictly sequential and the governor is consulted after
every document. The too-large artifact is written before the signed one,
since the latter doubles as the completion marker in the default resume
mode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from signature_sweep.lib.cache import CacheStore
from signature_sweep.lib.classifier import Classifier, Outcome, ShareFileAccess
from signature_sweep.lib.config import SweepSettings
from signature_sweep.lib.fetcher import IncrementalFetcher
from signature_sweep.lib.governor import BackpressureGovernor, MemoryPressurePolicy
from signature_sweep.lib.inspector import PdfSignatureInspector
from signature_sweep.lib.observability import SweepMetrics
from signature_sweep.lib.outputs import OutcomeLedger, ResumableOutputStore, ResumeMode, dedupe
from signature_sweep.lib.remote import RemoteSource, SparqlClient, SparqlPieceSource
from signature_sweep.lib.resilience import RetryConfig

logger = logging.getLogger(__name__)

__all__ = [
    "SweepState",
    "ResumeMode",
    "SweepResult",
    "SignatureSweep",
    "build_source",
    "build_sweep",
]


class SweepState(str, Enum):
    IDLE = "idle"
    DONE_FROM_CACHE = "done_from_cache"
    FETCHING = "fetching"
    CLASSIFYING = "classifying"
    PERSISTING = "persisting"
    DONE = "done"


@dataclass
class SweepResult:
    """What a sweep produced."""

    signed: List[str]
    too_large: List[str] = field(default_factory=list)
    from_cache: bool = False
    classified: int = 0
    unsigned: int = 0
    errors: int = 0
    reused: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_cache": self.from_cache,
            "signed": len(self.signed),
            "too_large": len(self.too_large),
            "unsigned": self.unsigned,
            "errors": self.errors,
            "classified": self.classified,
            "reused": self.reused,
        }


class SignatureSweep:
    """Runs one sweep over everything created before the cutoff.

    Example:
        with build_source(settings) as source:
            result = build_sweep(settings, source).run()
    """

    def __init__(
        self,
        fetcher: IncrementalFetcher,
        classifier: Classifier,
        governor: BackpressureGovernor,
        outputs: ResumableOutputStore,
        *,
        resume_mode: ResumeMode = ResumeMode.SIGNED_ARTIFACT_EXISTS,
        ledger: Optional[OutcomeLedger] = None,
        metrics: Optional[SweepMetrics] = None,
        checkpoint_every: int = 100,
    ):
        self.fetcher = fetcher
        self.classifier = classifier
        self.governor = governor
        self.outputs = outputs
        self.resume_mode = ResumeMode.normalize(resume_mode)
        if self.resume_mode is ResumeMode.PER_IDENTIFIER and ledger is None:
            ledger = OutcomeLedger(outputs.output_dir)
        self.ledger = ledger
        self.metrics = metrics or SweepMetrics()
        self.checkpoint_every = checkpoint_every
        self.state = SweepState.IDLE

    def run(self) -> SweepResult:
        if self.resume_mode is ResumeMode.SIGNED_ARTIFACT_EXISTS and self.outputs.has(
            Outcome.SIGNED
        ):
            return self._from_cache()

        self.state = SweepState.FETCHING
        with self.metrics.time_phase("fetch"):
            identifiers = dedupe(self.fetcher.sync())

        self.state = SweepState.CLASSIFYING
        with self.metrics.time_phase("classify"):
            result = self._classify_all(identifiers)

        self.state = SweepState.PERSISTING
        with self.metrics.time_phase("persist"):
            if self.ledger is not None:
                self.ledger.save()
            self.outputs.write(Outcome.TOO_LARGE, result.too_large)
            self._write_signed(result)

        self.state = SweepState.DONE
        self.metrics.finish()
        logger.info(
            "Sweep complete: %d signed, %d too large, %d unsigned, %d errors",
            len(result.signed),
            len(result.too_large),
            result.unsigned,
            result.errors,
            extra={"metrics": self.metrics.to_log_dict()},
        )
        return result

    def _write_signed(self, result: SweepResult) -> None:
        # The signed artifact marks the batch as done in the default mode,
        # so an empty signed set must not be memoized.
        if self.resume_mode is ResumeMode.SIGNED_ARTIFACT_EXISTS and not result.signed:
            logger.warning(
                "No signed documents found (%d errors); not writing %s so the "
                "next sweep classifies again",
                result.errors,
                self.outputs.path_for(Outcome.SIGNED),
            )
            return
        self.outputs.write(Outcome.SIGNED, result.signed)

    def _from_cache(self) -> SweepResult:
        logger.info(
            "Signed artifact %s exists, returning it without fetching or "
            "classifying; documents created since it was written are not seen",
            self.outputs.path_for(Outcome.SIGNED),
        )
        self.state = SweepState.DONE_FROM_CACHE
        self.metrics.finish()
        return SweepResult(
            signed=self.outputs.read(Outcome.SIGNED),
            too_large=self.outputs.read(Outcome.TOO_LARGE),
            from_cache=True,
        )

    def _classify_all(self, identifiers: List[str]) -> SweepResult:
        result = SweepResult(signed=[])
        total = len(identifiers)
        logger.info("Classifying %d documents", total)

        for index, identifier in enumerate(identifiers, start=1):
            outcome = self.ledger.get(identifier) if self.ledger is not None else None
            if outcome is not None:
                result.reused += 1
            else:
                outcome = self.classifier.classify(identifier)
                result.classified += 1
                self.governor.after_item()
                if self.ledger is not None:
                    self.ledger.record(identifier, outcome)
                    if result.classified % self.checkpoint_every == 0:
                        self.ledger.save()

            if outcome is Outcome.SIGNED:
                result.signed.append(identifier)
            elif outcome is Outcome.TOO_LARGE:
                result.too_large.append(identifier)
            elif outcome is Outcome.UNSIGNED:
                result.unsigned += 1
            else:
                result.errors += 1

            if index % 100 == 0:
                logger.info("Classified %d/%d documents", index, total)

        return result


def build_source(settings: SweepSettings) -> SparqlPieceSource:
    """SPARQL-backed remote source; use it as a context manager to close it."""
    client = SparqlClient(
        settings.sparql_endpoint,
        timeout=settings.request_timeout,
        retry=RetryConfig(
            max_attempts=settings.max_retries,
            backoff_seconds=settings.retry_backoff_seconds,
        ),
    )
    return SparqlPieceSource(
        client, graph=settings.graph, piece_base_url=settings.piece_base_url
    )


def build_sweep(
    settings: SweepSettings,
    source: RemoteSource,
    *,
    metrics: Optional[SweepMetrics] = None,
) -> SignatureSweep:
    """Wire a sweep and its collaborators from settings."""
    metrics = metrics or SweepMetrics()
    fetcher = IncrementalFetcher(
        source,
        CacheStore(settings.cache_path),
        epoch_start=settings.epoch_start,
        cutoff=settings.cutoff,
        page_size=settings.batch_size,
        metrics=metrics,
    )
    classifier = Classifier(
        ShareFileAccess(settings.share_root),
        PdfSignatureInspector(),
        settings.max_file_size_bytes,
        metrics=metrics,
    )
    governor = BackpressureGovernor(
        MemoryPressurePolicy(
            threshold=settings.memory_threshold,
            delay_seconds=settings.pressure_delay_seconds,
            ceiling_bytes=settings.memory_ceiling_bytes,
        )
    )
    return SignatureSweep(
        fetcher,
        classifier,
        governor,
        ResumableOutputStore(settings.cache_path),
        resume_mode=settings.resume_mode,
        metrics=metrics,
    )
