"""Signature sweep library modules.

This package contains the building blocks of a sweep: the remote source
client, the identifier cache and its incremental fetcher, the document
classifier, the backpressure governor and the output artifacts.
"""

from signature_sweep.lib.actions import (
    ReprocessReport,
    export_signed_csv,
    lookup_piece_url,
    reprocess_signed,
    strip_piece,
)
from signature_sweep.lib.cache import CacheSnapshot, CacheStore
from signature_sweep.lib.chunking import chunkify
from signature_sweep.lib.classifier import (
    Classifier,
    FileAccess,
    Outcome,
    ShareFileAccess,
    path_to_share_uri,
    share_uri_to_path,
)
from signature_sweep.lib.config import (
    BATCH_SIZE,
    CUTOFF,
    EPOCH_START,
    MAX_FILE_SIZE_BYTES,
    SweepSettings,
    load_settings,
)
from signature_sweep.lib.errors import (
    CacheCorruptError,
    CachePersistenceError,
    ConfigurationError,
    FetchError,
    InspectionError,
    SweepError,
)
from signature_sweep.lib.fetcher import IncrementalFetcher, SyncResult
from signature_sweep.lib.governor import BackpressureGovernor, MemoryPressurePolicy
from signature_sweep.lib.inspector import (
    DocumentInspector,
    InspectionResult,
    PdfSignatureInspector,
)
from signature_sweep.lib.observability import SweepMetrics, setup_logging
from signature_sweep.lib.outputs import OutcomeLedger, ResumableOutputStore, ResumeMode
from signature_sweep.lib.pagination import CreatedAtPaginationState, PaginationConfig
from signature_sweep.lib.remote import (
    PageRequest,
    RemoteRecord,
    RemoteSource,
    SparqlClient,
    SparqlPieceSource,
)
from signature_sweep.lib.resilience import RetryConfig, retry_operation
from signature_sweep.lib.sweep import (
    SignatureSweep,
    SweepResult,
    SweepState,
    build_source,
    build_sweep,
)

__all__ = [
    # Remote source
    "PageRequest",
    "RemoteRecord",
    "RemoteSource",
    "SparqlClient",
    "SparqlPieceSource",
    # Cache and fetch
    "CacheSnapshot",
    "CacheStore",
    "CreatedAtPaginationState",
    "IncrementalFetcher",
    "PaginationConfig",
    "SyncResult",
    # Classification
    "Classifier",
    "DocumentInspector",
    "FileAccess",
    "InspectionResult",
    "Outcome",
    "PdfSignatureInspector",
    "ShareFileAccess",
    "path_to_share_uri",
    "share_uri_to_path",
    # Backpressure
    "BackpressureGovernor",
    "MemoryPressurePolicy",
    # Outputs
    "OutcomeLedger",
    "ResumableOutputStore",
    "ResumeMode",
    # Pipeline
    "SignatureSweep",
    "SweepResult",
    "SweepState",
    "build_source",
    "build_sweep",
    # Actions
    "ReprocessReport",
    "chunkify",
    "export_signed_csv",
    "lookup_piece_url",
    "reprocess_signed",
    "strip_piece",
    # Configuration
    "BATCH_SIZE",
    "CUTOFF",
    "EPOCH_START",
    "MAX_FILE_SIZE_BYTES",
    "SweepSettings",
    "load_settings",
    # Errors
    "CacheCorruptError",
    "CachePersistenceError",
    "ConfigurationError",
    "FetchError",
    "InspectionError",
    "SweepError",
    # Infrastructure
    "RetryConfig",
    "SweepMetrics",
    "retry_operation",
    "setup_logging",
]
