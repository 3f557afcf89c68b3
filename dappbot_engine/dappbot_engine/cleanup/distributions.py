"""Garbage collection of disabled CloudFront distributions.

The CloudFront namespace is shared with infrastructure DappBot does not
own, so a disabled distribution is only deleted when it carries exactly one
``Application=DappBot`` tag and exactly one ``ManagedBy=DappBot`` tag.
Distributions still transitioning (status other than ``Deployed``) are
left for a later run.

One distribution's failure never stops another's deletion: failures are
collected into the :class:`CleanupReport` and logged.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel, Field

from dappbot_engine.gateways.cdn import CdnDistributions
from dappbot_engine.models.distribution import DistributionIdentifier, ResourceTag

logger = logging.getLogger(__name__)

OWNERSHIP_TAGS: tuple[tuple[str, str], ...] = (
    ("Application", "DappBot"),
    ("ManagedBy", "DappBot"),
)


class CleanupReport(BaseModel):
    """Outcome of one garbage collection pass."""

    disabled: list[str] = Field(default_factory=list)
    eligible: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)


def is_eligible_for_cleanup(identifier: DistributionIdentifier) -> bool:
    """Return ``True`` when the distribution carries DappBot's ownership tags.

    Each required tag must appear exactly once; unrelated tags are ignored.
    A distribution whose tags could not be fetched is never eligible.
    """
    if identifier.tags is None:
        return False
    for key, value in OWNERSHIP_TAGS:
        matches = [tag for tag in identifier.tags if tag.key == key and tag.value == value]
        if len(matches) != 1:
            return False
    return True


class DistributionGarbageCollector:
    """Finds and deletes orphaned DappBot distributions.

    Parameters
    ----------
    cdn:
        CloudFront gateway.
    max_concurrency:
        Upper bound on in-flight per-distribution calls.
    """

    def __init__(self, cdn: CdnDistributions, *, max_concurrency: int = 10) -> None:
        self._cdn = cdn
        self._max_concurrency = max_concurrency

    async def get_disabled_distributions(self) -> list[DistributionIdentifier]:
        """Page through every distribution, keeping disabled and deployed ones."""
        disabled: list[DistributionIdentifier] = []
        marker: str | None = None
        while True:
            page = await self._cdn.list_distributions(marker)
            items = page.get("Items")
            if not items:
                break
            for item in items:
                if item.get("Enabled") is False and item.get("Status") == "Deployed":
                    disabled.append(DistributionIdentifier(id=item["Id"], arn=item["ARN"]))
            if not page.get("IsTruncated"):
                break
            marker = page.get("NextMarker")
            if not marker:
                break
        return disabled

    async def _fetch_tags(
        self,
        identifier: DistributionIdentifier,
        semaphore: asyncio.Semaphore,
    ) -> list[ResourceTag] | None:
        try:
            async with semaphore:
                return await self._cdn.list_tags(identifier.arn)
        except Exception as exc:
            logger.warning(
                "Could not fetch tags; treating as untagged: %s",
                exc,
                extra={"context": {"distribution": identifier.id}},
            )
            return None

    async def find_cleanup_candidates(self) -> tuple[list[DistributionIdentifier], list[DistributionIdentifier]]:
        """Return ``(disabled, eligible)`` distributions."""
        disabled = await self.get_disabled_distributions()
        logger.info("Found %d CloudFront distributions disabled", len(disabled))
        semaphore = asyncio.Semaphore(self._max_concurrency)
        tags = await asyncio.gather(*(self._fetch_tags(identifier, semaphore) for identifier in disabled))
        tagged = [identifier.model_copy(update={"tags": t}) for identifier, t in zip(disabled, tags)]
        eligible = [identifier for identifier in tagged if is_eligible_for_cleanup(identifier)]
        return tagged, eligible

    async def _delete(self, identifier: DistributionIdentifier, semaphore: asyncio.Semaphore) -> None:
        async with semaphore:
            await self._cdn.delete_distribution_no_etag(identifier.id)

    async def collect(self) -> CleanupReport:
        """Delete every eligible distribution and report the outcome."""
        logger.info("Cleaning up disabled CloudFront distributions")
        disabled, eligible = await self.find_cleanup_candidates()
        report = CleanupReport(
            disabled=[identifier.id for identifier in disabled],
            eligible=[identifier.id for identifier in eligible],
        )
        logger.info("Found %d CloudFront distributions for cleanup", len(eligible))

        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = await asyncio.gather(
            *(self._delete(identifier, semaphore) for identifier in eligible),
            return_exceptions=True,
        )
        for identifier, result in zip(eligible, results):
            if isinstance(result, BaseException):
                report.failed[identifier.id] = str(result) or type(result).__name__
                logger.error(
                    "Error deleting distribution: %s",
                    result,
                    extra={"context": {"distribution": identifier.id}},
                )
            else:
                report.deleted.append(identifier.id)

        if report.failed:
            logger.warning(
                "Deleted %d of %d distributions",
                len(report.deleted),
                len(eligible),
                extra={"context": {"failed": sorted(report.failed)}},
            )
        else:
            logger.info("All %d distributions cleaned up successfully", len(report.deleted))
        return report
