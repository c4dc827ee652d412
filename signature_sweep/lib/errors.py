"""Structured exception hierarchy for signature sweeps.

Provides specific exception types for the failure modes of a sweep,
with rich context for debugging and troubleshooting.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

__all__ = [
    "SweepError",
    "FetchError",
    "CachePersistenceError",
    "CacheCorruptError",
    "InspectionError",
    "ConfigurationError",
]


class SweepError(Exception):
    """Base exception for all sweep errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        identifier: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.identifier = identifier
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if identifier:
            parts.insert(0, f"[{identifier}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "identifier": self.identifier,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class FetchError(SweepError):
    """Error querying the remote store.

    Raised when a paginated query fails or returns a malformed response.
    Never caught by the fetcher: a failed fetch aborts the whole sync.
    """

    def __init__(
        self,
        message: str,
        *,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        self.cause = cause

        details = kwargs.pop("details", {})
        if endpoint:
            details["endpoint"] = endpoint
        if status_code is not None:
            details["status_code"] = status_code
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check that the SPARQL endpoint is reachable. "
                "The cache was not modified; re-run the sweep once it is."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class CachePersistenceError(SweepError):
    """Error writing a cache or output artifact to disk.

    Fatal for the invocation; there is no partial-success signaling.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[Union[str, Path]] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.path = str(path) if path is not None else None
        self.cause = cause

        details = kwargs.pop("details", {})
        if path is not None:
            details["path"] = str(path)
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Check free disk space and permissions on the cache directory."

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class CacheCorruptError(SweepError):
    """A cache artifact exists but cannot be parsed.

    Raised instead of silently discarding the cursor, which would
    otherwise trigger a full backfill.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Optional[Union[str, Path]] = None,
        **kwargs: Any,
    ) -> None:
        self.path = str(path) if path is not None else None

        details = kwargs.pop("details", {})
        if path is not None:
            details["path"] = str(path)

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Inspect or remove the damaged file. Removing the watermark "
                "forces a full backfill on the next sweep."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class InspectionError(SweepError):
    """A document could not be opened or parsed.

    Per-item failure: the classifier catches it and drops the identifier.
    """

    def __init__(
        self,
        message: str,
        *,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.cause = cause

        details = kwargs.pop("details", {})
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class ConfigurationError(SweepError):
    """Error in sweep configuration.

    Raised when settings are invalid or incomplete.
    """

    def __init__(
        self,
        message: str,
        *,
        issues: Optional[List[str]] = None,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.issues = issues or []
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        if issues:
            details["issue_count"] = len(issues)
            issue_lines = "\n".join(f"  - {issue}" for issue in issues)
            message = f"{message}\n\nIssues found:\n{issue_lines}"

        super().__init__(message, details=details, **kwargs)
