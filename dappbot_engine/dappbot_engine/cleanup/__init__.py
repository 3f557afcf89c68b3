"""Periodic cleanup of orphaned CDN distributions."""

from __future__ import annotations

from dappbot_engine.cleanup.distributions import (
    CleanupReport,
    DistributionGarbageCollector,
    is_eligible_for_cleanup,
)

__all__ = ["CleanupReport", "DistributionGarbageCollector", "is_eligible_for_cleanup"]
