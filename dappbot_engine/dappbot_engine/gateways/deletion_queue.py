"""SQS producer for per-resource deletion messages."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from dappbot_engine.executor.retry import RetryingExecutor
from dappbot_engine.models.messages import DeletionMessage

logger = logging.getLogger(__name__)


class DeletionQueue:
    """Enqueues ``{"method": "delete", "resourceName": ...}`` messages.

    The consumer treats deletion of an already-deleted resource as a no-op,
    so re-sending a message after a partial failure is safe.
    """

    def __init__(self, client: Any, executor: RetryingExecutor, *, queue_url: str) -> None:
        self._client = client
        self._executor = executor
        self._queue_url = queue_url

    async def dispatch_deletion(self, resource_name: str) -> None:
        params = {
            "QueueUrl": self._queue_url,
            "MessageBody": DeletionMessage(resource_name=resource_name).to_body(),
        }
        await self._executor.run_in_thread(lambda: self._client.send_message(**params))
        logger.info("Dispatched deletion", extra={"context": {"resource": resource_name}})

    async def dispatch_deletions(self, resource_names: Iterable[str]) -> None:
        """Send one message per resource concurrently.

        Every send is allowed to settle; the first failure is raised
        afterwards so the caller can keep its own state for a retry.
        """
        names = sorted(set(resource_names))
        results = await asyncio.gather(
            *(self.dispatch_deletion(name) for name in names),
            return_exceptions=True,
        )
        errors = [(name, res) for name, res in zip(names, results) if isinstance(res, BaseException)]
        for name, err in errors:
            logger.error(
                "Failed to dispatch deletion: %s",
                err,
                extra={"context": {"resource": name}},
            )
        if errors:
            raise errors[0][1]
