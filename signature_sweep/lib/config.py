"""Sweep settings: defaults, YAML file, .env file and environment overrides.

Precedence (lowest to highest):
    1. Defaults on :class:`SweepSettings`
    2. YAML file (``--config``), either flat or nested under ``sweep:``
    3. ``SWEEP_*`` environment variables (``.env`` is loaded first)

Example YAML (sweep.yaml):
    sweep:
      sparql_endpoint: "${SPARQL_ENDPOINT}"
      cache_dir: ./cache
      cutoff: "2024-04-12T00:00:00Z"
      max_file_size_bytes: 52428800

Usage:
    from signature_sweep.lib.config import load_settings
    settings = load_settings("sweep.yaml")
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import yaml
from dotenv import load_dotenv

from signature_sweep.lib.errors import ConfigurationError
from signature_sweep.lib.outputs import ResumeMode
from signature_sweep.lib.time_utils import parse_timestamp

logger = logging.getLogger(__name__)

__all__ = [
    "EPOCH_START",
    "CUTOFF",
    "BATCH_SIZE",
    "MAX_FILE_SIZE_BYTES",
    "SweepSettings",
    "load_settings",
]

# First piece ever recorded in the store.
EPOCH_START = datetime(2019, 10, 2, tzinfo=timezone.utc)
# Pieces created from this moment on are handled by the signature remover.
CUTOFF = datetime(2024, 4, 12, tzinfo=timezone.utc)
BATCH_SIZE = 100
MAX_FILE_SIZE_BYTES = 50 * 1024 * 1024

ENV_PREFIX = "SWEEP_"
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


_COERCERS: Dict[str, Callable[[Any], Any]] = {
    "epoch_start": parse_timestamp,
    "cutoff": parse_timestamp,
    "batch_size": int,
    "max_file_size_bytes": int,
    "memory_threshold": float,
    "pressure_delay_seconds": float,
    "memory_ceiling_bytes": _optional_int,
    "reprocess_chunk_size": int,
    "reprocess_pause_seconds": float,
    "request_timeout": float,
    "max_retries": int,
    "retry_backoff_seconds": float,
    "resume_mode": ResumeMode.normalize,
}


@dataclass
class SweepSettings:
    """Everything a sweep needs to know about its environment."""

    # Remote store
    sparql_endpoint: str = "http://database:8890/sparql"
    graph: str = "http://mu.semte.ch/graphs/organizations/kanselarij"
    piece_base_url: str = "https://kaleidos-test.vlaanderen.be/document/"
    request_timeout: float = 60.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0

    # Local state
    cache_dir: str = "/cache"
    share_root: str = "/share"

    # Fetch window
    epoch_start: datetime = EPOCH_START
    cutoff: datetime = CUTOFF
    batch_size: int = BATCH_SIZE

    # Classification
    max_file_size_bytes: int = MAX_FILE_SIZE_BYTES
    memory_threshold: float = 0.70
    pressure_delay_seconds: float = 5.0
    memory_ceiling_bytes: Optional[int] = None
    resume_mode: ResumeMode = ResumeMode.SIGNED_ARTIFACT_EXISTS

    # Bulk reprocessing
    reprocess_chunk_size: int = 10
    reprocess_pause_seconds: float = 1.0

    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir)

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the settings are usable."""
        issues: List[str] = []

        if not self.sparql_endpoint:
            issues.append("sparql_endpoint is required")
        if not self.cache_dir:
            issues.append("cache_dir is required")
        if self.cutoff <= self.epoch_start:
            issues.append(
                f"cutoff ({self.cutoff.isoformat()}) must be after "
                f"epoch_start ({self.epoch_start.isoformat()})"
            )
        if self.batch_size <= 0:
            issues.append(f"batch_size must be positive, got {self.batch_size}")
        if self.max_file_size_bytes <= 0:
            issues.append(
                f"max_file_size_bytes must be positive, got {self.max_file_size_bytes}"
            )
        if not 0 < self.memory_threshold <= 1:
            issues.append(
                f"memory_threshold must be in (0, 1], got {self.memory_threshold}"
            )
        if self.pressure_delay_seconds < 0:
            issues.append("pressure_delay_seconds must not be negative")
        if self.memory_ceiling_bytes is not None and self.memory_ceiling_bytes <= 0:
            issues.append("memory_ceiling_bytes must be positive when set")
        if self.reprocess_chunk_size <= 0:
            issues.append("reprocess_chunk_size must be positive")
        if self.reprocess_pause_seconds < 0:
            issues.append("reprocess_pause_seconds must not be negative")

        return issues

    def validate_and_raise(self) -> "SweepSettings":
        issues = self.validate()
        if issues:
            raise ConfigurationError("Invalid sweep settings", issues=issues)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view, used by ``status`` output."""
        data = asdict(self)
        data["epoch_start"] = self.epoch_start.isoformat()
        data["cutoff"] = self.cutoff.isoformat()
        data["resume_mode"] = self.resume_mode.value
        return data


def _expand_env_vars(value: str) -> str:
    """Expand ``${VAR}`` references, leaving unknown variables untouched."""

    def replacer(match: "re.Match[str]") -> str:
        env_value = os.environ.get(match.group(1))
        return match.group(0) if env_value is None else env_value

    return ENV_VAR_PATTERN.sub(replacer, value)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(
            f"Config file not found: {path}",
            field="config",
            value=str(path),
        )

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    section = raw.get("sweep", raw)
    if not isinstance(section, dict):
        raise ConfigurationError(f"'sweep' section in {path} must be a mapping")
    return section


def _coerce(name: str, value: Any) -> Any:
    if isinstance(value, str):
        value = _expand_env_vars(value)
    coercer = _COERCERS.get(name)
    if coercer is None:
        return value
    try:
        return coercer(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Invalid value for {name}: {exc}",
            field=name,
            value=value,
        ) from exc


def load_settings(
    path: Optional[Union[str, Path]] = None,
    *,
    env_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> SweepSettings:
    """Build validated settings from defaults, YAML and environment.

    Args:
        path: Optional YAML config file
        env_file: Optional ``.env`` file; when omitted python-dotenv
            searches the working directory and its parents
        environ: Environment mapping (defaults to ``os.environ``)

    Raises:
        ConfigurationError: if the file is unreadable or the result is invalid
    """
    if environ is None:
        load_dotenv(dotenv_path=env_file, override=False)
        environ = os.environ

    known = {f.name for f in fields(SweepSettings)} - {"extra"}
    values: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}

    if path is not None:
        for key, value in _read_yaml(Path(path)).items():
            if key in known:
                values[key] = _coerce(key, value)
            else:
                extra[key] = value
        logger.debug("Loaded sweep settings from %s", path)

    for name in known:
        env_key = f"{ENV_PREFIX}{name.upper()}"
        if env_key in environ:
            values[name] = _coerce(name, environ[env_key])
            logger.debug("Setting %s overridden by %s", name, env_key)

    if extra:
        logger.warning("Ignoring unknown sweep settings: %s", ", ".join(sorted(extra)))

    settings = SweepSettings(**values, extra=extra)
    return settings.validate_and_raise()
