"""Retry execution for remote calls."""

from __future__ import annotations

from dappbot_engine.executor.retry import (
    DEFAULT_MAX_RETRIES,
    FAN_OUT_MAX_RETRIES,
    RetryConfig,
    RetryingExecutor,
    async_retry_with_backoff,
    compute_delay,
)

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "FAN_OUT_MAX_RETRIES",
    "RetryConfig",
    "RetryingExecutor",
    "async_retry_with_backoff",
    "compute_delay",
]
