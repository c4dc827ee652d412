"""Retry utilities for calls to the remote store.

Transient failures (dropped connections, 429/5xx answers) are retried
with exponential backoff before they surface as a fetch failure.

Implementation: Uses tenacity library internally for battle-tested retry logic.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

import tenacity
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

__all__ = ["RetryConfig", "retry_operation"]


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        exponential: bool = True,
        jitter: bool = True,
        max_backoff_seconds: float = 30.0,
    ):
        self.max_attempts = max(max_attempts, 1)
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter
        self.max_backoff_seconds = max_backoff_seconds

    @classmethod
    def none(cls) -> "RetryConfig":
        """No retry - fail immediately."""
        return cls(max_attempts=1)

    @classmethod
    def default(cls) -> "RetryConfig":
        """Default retry: 3 attempts with exponential backoff."""
        return cls()

    def wait_strategy(self) -> wait_base:
        """Build the tenacity wait strategy for this configuration."""
        wait_strategy: wait_base
        if self.exponential:
            wait_strategy = tenacity.wait_exponential(
                multiplier=self.backoff_seconds,
                min=self.backoff_seconds,
                max=self.max_backoff_seconds,
            )
        else:
            wait_strategy = tenacity.wait_fixed(self.backoff_seconds)

        if self.jitter:
            wait_strategy = wait_strategy + tenacity.wait_random(0, self.backoff_seconds * 0.5)
        return wait_strategy

    def __repr__(self) -> str:
        return (
            f"RetryConfig(max_attempts={self.max_attempts}, "
            f"backoff_seconds={self.backoff_seconds}, exponential={self.exponential})"
        )


def retry_operation(
    operation: Callable[[], Any],
    config: RetryConfig,
    operation_name: str = "operation",
    *,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Execute an operation with retry logic.

    Args:
        operation: Callable to execute
        config: Retry configuration
        operation_name: Name for logging
        retry_if: Predicate deciding whether an exception is transient
            (default: every ``Exception``)
        sleep: Sleep function, injectable for tests

    Returns:
        Result of the operation

    Example:
        result = retry_operation(
            lambda: client.post(url, data=body),
            RetryConfig.default(),
            "sparql query",
            retry_if=is_transient,
        )
    """
    if retry_if is None:
        retry_condition = tenacity.retry_if_exception_type(Exception)
    else:
        retry_condition = tenacity.retry_if_exception(retry_if)

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
            operation_name,
            retry_state.attempt_number,
            config.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    retryer = tenacity.Retrying(
        stop=tenacity.stop_after_attempt(config.max_attempts),
        wait=config.wait_strategy(),
        retry=retry_condition,
        before_sleep=before_sleep_handler,
        sleep=sleep,
        reraise=True,
    )

    try:
        return retryer(operation)
    except Exception:
        logger.error(
            "%s failed after at most %d attempts",
            operation_name,
            config.max_attempts,
        )
        raise
