"""Subscription lifecycle analytics sent to Segment's HTTP tracking API.

INVARIANT: tracking is best-effort.  Failures are logged but never
propagate to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from dappbot_engine.executor.retry import RetryingExecutor

logger = logging.getLogger(__name__)

SEGMENT_TRACK_URL = "https://api.segment.io/v1/track"


class SegmentAnalytics:
    """Tracks subscription events for an owner.

    Parameters
    ----------
    write_key:
        Segment source write key.  When empty, every call is a no-op.
    http_client:
        Shared ``httpx.AsyncClient``.
    executor:
        Retry executor wrapping each request.
    api_url:
        Public API URL of this deployment, attached to every event.
    """

    def __init__(
        self,
        write_key: str | None,
        http_client: httpx.AsyncClient,
        executor: RetryingExecutor,
        *,
        api_url: str = "",
    ) -> None:
        self._write_key = write_key or ""
        self._client = http_client
        self._executor = executor
        self._api_url = api_url

    @property
    def enabled(self) -> bool:
        return bool(self._write_key)

    async def track(self, event: str, email: str, properties: dict[str, Any] | None = None) -> None:
        if not self.enabled:
            return
        payload = {
            "event": event,
            "userId": email,
            "properties": {"apiUrl": self._api_url, "email": email, **(properties or {})},
        }

        async def _send() -> None:
            response = await self._client.post(SEGMENT_TRACK_URL, json=payload, auth=(self._write_key, ""))
            response.raise_for_status()

        try:
            await self._executor.run(_send)
        except Exception as exc:
            logger.warning(
                "Failed to track %r: %s",
                event,
                exc,
                extra={"context": {"owner": email}},
            )

    async def track_subscription_lapsed(self, email: str) -> None:
        await self.track("Subscription Lapsed", email)

    async def track_subscription_cancelled(self, email: str) -> None:
        await self.track("Subscription Cancelled", email)

    async def track_subscription_restored(self, email: str) -> None:
        await self.track("Subscription Restored", email)
