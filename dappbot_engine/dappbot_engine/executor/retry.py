"""Bounded retry with exponential backoff for remote calls.

Every call the engine makes to DynamoDB, Cognito, CloudFront, SQS, S3,
CodePipeline or an HTTP collaborator goes through :class:`RetryingExecutor`.
Call sites only choose how many retries they need; the backoff policy and
the retryability predicate live here.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, Field

from dappbot_engine.errors import is_transient_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 5

# Per-distribution calls during bulk CDN cleanup fan out widely and hit
# CloudFront's request rate limits far more often.
FAN_OUT_MAX_RETRIES = 20


class RetryConfig(BaseModel):
    """Tuneable parameters for retry behaviour."""

    max_retries: int = Field(
        default=DEFAULT_MAX_RETRIES,
        ge=0,
        description="Maximum number of retry attempts before re-raising.",
    )
    base_delay: float = Field(
        default=0.5,
        gt=0.0,
        description="Base delay in seconds for exponential backoff.",
    )
    max_delay: float = Field(
        default=20.0,
        gt=0.0,
        description="Upper bound on delay in seconds.",
    )
    jitter: bool = Field(
        default=True,
        description="When enabled, randomise the delay within [0.5x, 1.5x].",
    )


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """Return the backoff delay for *attempt* given *config*."""
    delay: float = min(config.base_delay * (2**attempt), config.max_delay)
    if config.jitter:
        delay *= random.uniform(0.5, 1.5)  # noqa: S311
    return delay


async def async_retry_with_backoff(
    fn: Callable[[], T | Awaitable[T]],
    config: RetryConfig,
    retry_if: Callable[[BaseException], bool] = is_transient_error,
) -> T:
    """Execute *fn* with asynchronous retry and exponential backoff.

    Parameters
    ----------
    fn:
        A zero-argument callable.  If it returns an awaitable, the awaitable
        is awaited.  On each retry the callable is invoked from scratch, so
        it must be safe to call repeatedly.
    config:
        Retry parameters (see :class:`RetryConfig`).
    retry_if:
        Predicate deciding whether an exception is worth retrying.  Anything
        it rejects propagates immediately.

    Returns
    -------
    T
        The return value of *fn* on the first successful call.

    Raises
    ------
    Exception
        The last exception raised by *fn* once ``max_retries + 1`` attempts
        have failed, or the first non-retryable exception.
    """
    last_exception: Exception | None = None

    for attempt in range(config.max_retries + 1):
        try:
            result = fn()
            if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
                result = await result
            return result  # type: ignore[return-value]
        except Exception as exc:
            if not retry_if(exc):
                raise
            last_exception = exc
            if attempt >= config.max_retries:
                break
            delay = compute_delay(attempt, config)
            logger.warning(
                "Retry %d/%d after %.2fs: %s",
                attempt + 1,
                config.max_retries,
                delay,
                exc,
            )
            await asyncio.sleep(delay)

    assert last_exception is not None  # noqa: S101
    raise last_exception


class RetryingExecutor:
    """Reusable retry wrapper shared by every gateway.

    Parameters
    ----------
    config:
        Base retry parameters.  ``max_retries`` is the default retry budget;
        call sites may override it per call.
    retry_if:
        Retryability predicate, :func:`~dappbot_engine.errors.is_transient_error`
        by default.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        retry_if: Callable[[BaseException], bool] = is_transient_error,
    ) -> None:
        self._config = config or RetryConfig()
        self._retry_if = retry_if

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _config_for(self, max_retries: int | None) -> RetryConfig:
        if max_retries is None or max_retries == self._config.max_retries:
            return self._config
        return self._config.model_copy(update={"max_retries": max_retries})

    async def run(
        self,
        fn: Callable[[], T | Awaitable[T]],
        *,
        max_retries: int | None = None,
    ) -> T:
        """Run *fn* under the retry policy with an optional retry budget."""
        return await async_retry_with_backoff(fn, self._config_for(max_retries), self._retry_if)

    async def run_in_thread(
        self,
        fn: Callable[[], T],
        *,
        max_retries: int | None = None,
    ) -> T:
        """Run a blocking SDK call in a worker thread on every attempt."""
        return await self.run(lambda: asyncio.to_thread(fn), max_retries=max_retries)
