"""CLI entry point for signature sweeps.

Usage:
    python -m signature_sweep sweep
    python -m signature_sweep status
    python -m signature_sweep piece-url share://abc.pdf
    python -m signature_sweep strip-piece share://abc.pdf
    python -m signature_sweep export-csv --output signed.csv
    python -m signature_sweep reprocess

Exit codes:
    0  success
    1  failure (details in the log)
    2  nothing found for the given identifier
    130  interrupted
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from signature_sweep.lib.actions import (
    export_signed_csv,
    lookup_piece_url,
    reprocess_signed,
    strip_piece,
)
from signature_sweep.lib.cache import CacheStore
from signature_sweep.lib.classifier import Outcome
from signature_sweep.lib.config import SweepSettings, load_settings
from signature_sweep.lib.errors import ConfigurationError, SweepError
from signature_sweep.lib.observability import SweepMetrics, setup_logging
from signature_sweep.lib.outputs import ResumableOutputStore, ResumeMode
from signature_sweep.lib.sweep import build_source, build_sweep
from signature_sweep.lib.time_utils import format_timestamp

logger = logging.getLogger("signature_sweep")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NOT_FOUND = 2
EXIT_INTERRUPTED = 130


def cmd_sweep(settings: SweepSettings, args: argparse.Namespace) -> int:
    if args.resume_mode:
        settings.resume_mode = ResumeMode.normalize(args.resume_mode)

    metrics = SweepMetrics()
    with build_source(settings) as source:
        result = build_sweep(settings, source, metrics=metrics).run()

    summary = result.to_dict()
    summary.update(metrics.to_log_dict())
    print(json.dumps(summary, indent=2))
    return EXIT_OK


def cmd_status(settings: SweepSettings, args: argparse.Namespace) -> int:
    snapshot = CacheStore(settings.cache_path).load()
    outputs = ResumableOutputStore(settings.cache_path)

    status = {
        "cache_dir": str(settings.cache_path),
        "resume_mode": settings.resume_mode.value,
        "synchronized": snapshot is not None,
        "identifiers": len(snapshot.identifiers) if snapshot else 0,
        "watermark": format_timestamp(snapshot.watermark) if snapshot else None,
        "cutoff": format_timestamp(settings.cutoff),
    }
    if snapshot is not None:
        age = snapshot.age_hours()
        status["age_hours"] = round(age, 2) if age is not None else None
    for outcome in (Outcome.SIGNED, Outcome.TOO_LARGE):
        status[outcome.value] = (
            len(outputs.read(outcome)) if outputs.has(outcome) else None
        )

    print(json.dumps(status, indent=2))
    return EXIT_OK


def cmd_piece_url(settings: SweepSettings, args: argparse.Namespace) -> int:
    with build_source(settings) as source:
        url = lookup_piece_url(source, args.identifier)

    if url is None:
        print(
            "No URL could be found for the given physical URI, "
            "check if the URI is correct",
            file=sys.stderr,
        )
        return EXIT_NOT_FOUND
    print(url)
    return EXIT_OK


def cmd_strip_piece(settings: SweepSettings, args: argparse.Namespace) -> int:
    with build_source(settings) as source:
        stripped = strip_piece(source, args.identifier)

    if not stripped:
        print(f"No piece found for {args.identifier}", file=sys.stderr)
        return EXIT_NOT_FOUND
    print(f"Stripped the piece of {args.identifier}")
    return EXIT_OK


def cmd_export_csv(settings: SweepSettings, args: argparse.Namespace) -> int:
    outputs = ResumableOutputStore(settings.cache_path)
    if not outputs.has(Outcome.SIGNED):
        print("No signed documents recorded yet, run a sweep first", file=sys.stderr)
        return EXIT_NOT_FOUND

    with build_source(settings) as source:
        rows = export_signed_csv(outputs, source, args.output)
    print(f"Wrote {rows} rows to {args.output}")
    return EXIT_OK


def cmd_reprocess(settings: SweepSettings, args: argparse.Namespace) -> int:
    outputs = ResumableOutputStore(settings.cache_path)
    if not outputs.has(Outcome.SIGNED):
        print("No signed documents recorded yet, run a sweep first", file=sys.stderr)
        return EXIT_NOT_FOUND

    with build_source(settings) as source:
        report = reprocess_signed(
            outputs,
            source,
            chunk_size=args.chunk_size or settings.reprocess_chunk_size,
            pause_seconds=settings.reprocess_pause_seconds,
        )

    print(
        f"Stripped {report.stripped}/{report.total} pieces "
        f"({len(report.missing)} without piece, {len(report.failed)} failed)"
    )
    return EXIT_OK if report.ok else EXIT_FAILURE


COMMANDS = {
    "sweep": cmd_sweep,
    "status": cmd_status,
    "piece-url": cmd_piece_url,
    "strip-piece": cmd_strip_piece,
    "export-csv": cmd_export_csv,
    "reprocess": cmd_reprocess,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="signature-sweep",
        description="Find signed documents among the pieces of the remote store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Classify everything created before the cutoff
    python -m signature_sweep sweep

    # Always sync and classify only documents not seen before
    python -m signature_sweep sweep --resume-mode per-identifier

    # Show the cache and artifact state without touching the remote store
    python -m signature_sweep status

    # Look up the display URL for a signed document
    python -m signature_sweep piece-url share://3f2c-example.pdf
        """,
    )
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("--env-file", help=".env file to load before reading SWEEP_* variables")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to console",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    sweep = subparsers.add_parser("sweep", help="Sync the cache and classify documents")
    sweep.add_argument(
        "--resume-mode",
        choices=[choice.replace("_", "-") for choice in ResumeMode.choices()],
        help="Override the configured resume mode",
    )

    subparsers.add_parser("status", help="Show cache and artifact state")

    piece_url = subparsers.add_parser("piece-url", help="Print the piece URL of a physical file")
    piece_url.add_argument("identifier", help="Physical file URI (share://...)")

    strip = subparsers.add_parser("strip-piece", help="Mark the piece of a physical file for reprocessing")
    strip.add_argument("identifier", help="Physical file URI (share://...)")

    export = subparsers.add_parser("export-csv", help="Export signed documents with piece URLs")
    export.add_argument("--output", required=True, help="CSV file to write")

    reprocess = subparsers.add_parser("reprocess", help="Strip every signed piece in chunks")
    reprocess.add_argument(
        "--chunk-size",
        type=int,
        help="Pieces per chunk (default: reprocess_chunk_size setting)",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(
        verbose=args.verbose,
        json_format=args.json_log,
        log_file=args.log_file,
    )

    try:
        settings = load_settings(args.config, env_file=args.env_file)
        logger.debug("Running %s with settings %s", args.command, settings.to_dict())
        return COMMANDS[args.command](settings, args)

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return EXIT_INTERRUPTED

    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        print(f"\nError: {e.message}")
        return EXIT_FAILURE

    except Exception as e:
        logger.exception("Command %s failed: %s", args.command, e)
        message = e.message if isinstance(e, SweepError) else str(e)
        print(f"\nError: {message}")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
