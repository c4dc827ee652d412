"""Find digitally signed documents among the pieces of a remote graph store.

The sweep keeps a local cache of every document identifier created before
a fixed cutoff, synchronizes it incrementally from a SPARQL endpoint, and
classifies each document as signed, unsigned or too large to inspect.

Usage:
    python -m signature_sweep sweep
    python -m signature_sweep status
"""

from signature_sweep.lib.config import SweepSettings, load_settings
from signature_sweep.lib.sweep import SignatureSweep, SweepResult, build_source, build_sweep

__version__ = "1.0.0"

__all__ = [
    "SweepSettings",
    "load_settings",
    "SignatureSweep",
    "SweepResult",
    "build_source",
    "build_sweep",
]
