"""CloudFront distribution calls."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from dappbot_engine.errors import DataAnomalyError
from dappbot_engine.executor.retry import DEFAULT_MAX_RETRIES, FAN_OUT_MAX_RETRIES, RetryingExecutor
from dappbot_engine.models.distribution import ResourceTag

logger = logging.getLogger(__name__)


class CdnDistributions:
    """Retrying wrapper over the CloudFront API.

    Per-distribution calls (config, delete, tags) use the larger fan-out
    retry budget because cleanup issues many of them at once.
    """

    def __init__(self, client: Any, executor: RetryingExecutor) -> None:
        self._client = client
        self._executor = executor

    async def list_distributions(self, marker: str | None = None) -> dict[str, Any]:
        """Return one page of the distribution list (``DistributionList``)."""
        params = {"Marker": marker} if marker else {}
        response = await self._executor.run_in_thread(
            lambda: self._client.list_distributions(**params),
            max_retries=DEFAULT_MAX_RETRIES,
        )
        return response.get("DistributionList") or {}

    async def get_distribution_config(self, distribution_id: str) -> dict[str, Any]:
        return await self._executor.run_in_thread(
            lambda: self._client.get_distribution_config(Id=distribution_id),
            max_retries=FAN_OUT_MAX_RETRIES,
        )

    async def delete_distribution(self, distribution_id: str, etag: str) -> None:
        await self._executor.run_in_thread(
            lambda: self._client.delete_distribution(Id=distribution_id, IfMatch=etag),
            max_retries=FAN_OUT_MAX_RETRIES,
        )

    async def delete_distribution_no_etag(self, distribution_id: str) -> None:
        """Fetch the current ETag and delete *distribution_id* with it.

        Raises
        ------
        DataAnomalyError
            If the config response carries no ETag.
        """
        config = await self.get_distribution_config(distribution_id)
        etag = config.get("ETag")
        if not etag:
            raise DataAnomalyError(f"ETag for {distribution_id} not found")
        await self.delete_distribution(distribution_id, etag)

    async def list_tags(self, arn: str) -> list[ResourceTag]:
        response = await self._executor.run_in_thread(
            lambda: self._client.list_tags_for_resource(Resource=arn),
            max_retries=FAN_OUT_MAX_RETRIES,
        )
        items = (response.get("Tags") or {}).get("Items") or []
        return [ResourceTag.model_validate(item) for item in items]

    async def create_invalidation(self, distribution_id: str, path_prefix: str = "/") -> dict[str, Any]:
        """Invalidate everything under *path_prefix*."""
        batch = {
            "CallerReference": str(uuid.uuid4()),
            "Paths": {"Quantity": 1, "Items": [f"{path_prefix}*"]},
        }
        response = await self._executor.run_in_thread(
            lambda: self._client.create_invalidation(DistributionId=distribution_id, InvalidationBatch=batch)
        )
        logger.info(
            "Created invalidation for %s*",
            path_prefix,
            extra={"context": {"distribution": distribution_id}},
        )
        return response
