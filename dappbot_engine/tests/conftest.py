"""Shared fixtures for the lifecycle engine tests."""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock, patch

import pytest
from botocore.exceptions import ClientError

from dappbot_engine.executor.retry import RetryConfig, RetryingExecutor


@pytest.fixture
def executor() -> RetryingExecutor:
    """Executor with a tiny, deterministic backoff."""
    return RetryingExecutor(RetryConfig(base_delay=0.001, max_delay=0.01, jitter=False))


@pytest.fixture
def no_sleep():
    """Patch out backoff sleeps so exhausted-retry paths run instantly."""
    with patch("dappbot_engine.executor.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def client_error() -> Callable[..., ClientError]:
    """Factory for real botocore ``ClientError`` instances."""

    def _make(code: str, operation: str = "Operation", status: int = 400, message: str = "boom") -> ClientError:
        return ClientError(
            {
                "Error": {"Code": code, "Message": message},
                "ResponseMetadata": {"HTTPStatusCode": status},
            },
            operation,
        )

    return _make
