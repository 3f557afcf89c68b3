"""Reconciling the lapsed-user ledger against the identity directory.

The ledger is a work queue of owners whose payment lapsed; the directory's
payment status is the system of record.  Each tick takes the ledger rows
older than the grace period and classifies the owner by directory status:

* ``LAPSED``, ``FAILED`` or ``CANCELLED``: confirmed failed.  Every owned
  resource is dispatched for deletion, quotas are zeroed, and the ledger row
  is removed last, so a crash part-way leaves the row for the next tick.
* ``ACTIVE``: recovered.  Only the ledger row is removed.
* anything else: skipped and logged.

Billing notifications apply the same transitions synchronously through
:meth:`LapsedUserReconciler.apply_payment_status`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime

from pydantic import BaseModel, Field

from dappbot_engine.gateways.deletion_queue import DeletionQueue
from dappbot_engine.gateways.identity_directory import IdentityDirectory
from dappbot_engine.gateways.resource_table import ResourceTable
from dappbot_engine.models.billing import FAILED_STATUSES, LapsedUserRecord, PaymentStatus
from dappbot_engine.notifications.analytics import SegmentAnalytics

logger = logging.getLogger(__name__)


class ReconciliationReport(BaseModel):
    """Owners handled by one reconciliation tick, by outcome."""

    failed: list[str] = Field(default_factory=list)
    recovered: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errored: dict[str, str] = Field(default_factory=dict)


class PaymentTransitionResult(BaseModel):
    """Outcome of one synchronous billing transition."""

    email: str
    status: PaymentStatus
    directory_updated: bool = False
    side_effects_applied: bool = False
    errors: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.directory_updated and self.side_effects_applied


class LapsedUserReconciler:
    """Drives owners through the payment-failure state machine.

    Parameters
    ----------
    table:
        Resource table and lapsed-user ledger.
    directory:
        Identity directory holding payment status and quotas.
    queue:
        Deletion queue producer.
    analytics:
        Optional subscription event tracker.
    concurrency:
        Owners processed at once during a tick.  ``1`` processes them one
        at a time.
    """

    def __init__(
        self,
        table: ResourceTable,
        directory: IdentityDirectory,
        queue: DeletionQueue,
        analytics: SegmentAnalytics | None = None,
        *,
        concurrency: int = 1,
    ) -> None:
        self._table = table
        self._directory = directory
        self._queue = queue
        self._analytics = analytics
        self._concurrency = max(1, concurrency)

    # -- Periodic tick ---------------------------------------------------

    async def reconcile(self, now: datetime | None = None) -> ReconciliationReport:
        """Run one reconciliation tick over every ledger row past the grace period."""
        candidates = await self._table.get_potential_failed_users(now)
        logger.info(
            "Found %d lapsed users past the %.1fh grace period",
            len(candidates),
            self._table.grace_period_hours,
        )

        report = ReconciliationReport()
        semaphore = asyncio.Semaphore(self._concurrency)

        async def _guarded(record: LapsedUserRecord) -> None:
            async with semaphore:
                await self._reconcile_owner(record, report)

        await asyncio.gather(*(_guarded(record) for record in candidates))

        logger.info(
            "Reconciliation complete: %d failed, %d recovered, %d skipped, %d errored",
            len(report.failed),
            len(report.recovered),
            len(report.skipped),
            len(report.errored),
        )
        return report

    async def _reconcile_owner(self, record: LapsedUserRecord, report: ReconciliationReport) -> None:
        email = record.email
        try:
            status = await self._directory.get_payment_status(email)
            if status in FAILED_STATUSES:
                await self.fail_owner(email, status)
                await self._table.delete_lapsed_user(email)
                report.failed.append(email)
            elif status == PaymentStatus.ACTIVE:
                await self._table.delete_lapsed_user(email)
                logger.info("Owner recovered; removed from lapsed ledger", extra={"context": {"owner": email}})
                report.recovered.append(email)
            else:
                logger.warning(
                    "Unrecognized payment status %r; skipping",
                    status,
                    extra={"context": {"owner": email}},
                )
                report.skipped.append(email)
        except Exception as exc:
            logger.error(
                "Reconciliation failed for owner: %s",
                exc,
                exc_info=True,
                extra={"context": {"owner": email}},
            )
            report.errored[email] = str(exc) or type(exc).__name__

    async def fail_owner(self, email: str, current: PaymentStatus | None) -> None:
        """Dispatch deletions for every owned resource, then zero quotas.

        The ledger row is left to the caller.
        """
        resources = await self._table.query_by_owner(email)
        await self._queue.dispatch_deletions(resources)
        target = PaymentStatus.CANCELLED if current == PaymentStatus.CANCELLED else PaymentStatus.FAILED
        await self._directory.zero_limits_and_set_status(email, target)
        logger.info(
            "Failed out owner with %d resources",
            len(resources),
            extra={"context": {"owner": email, "status": target.value}},
        )

    # -- Synchronous billing transitions ---------------------------------

    async def apply_payment_status(self, email: str, status: PaymentStatus) -> PaymentTransitionResult:
        """Apply a billing notification for *email*.

        The directory write and the ledger/queue side effects run
        concurrently; either may land without the other.  Failures are
        logged and reported, never raised; the next tick converges.
        """
        result = PaymentTransitionResult(email=email, status=status)

        if status == PaymentStatus.LAPSED:
            directory_write: Awaitable[None] = self._directory.mark_lapsed(email)
            side_effects: Awaitable[object] = self._table.put_lapsed_user(email)
        elif status == PaymentStatus.ACTIVE:
            directory_write = self._directory.mark_active(email)
            side_effects = self._table.delete_lapsed_user(email)
        elif status == PaymentStatus.CANCELLED:
            directory_write = self._directory.mark_cancelled(email)
            side_effects = self._dispatch_and_clear(email)
        else:
            directory_write = self._directory.mark_failed(email)
            side_effects = self._dispatch_and_clear(email)

        directory_outcome, side_effect_outcome = await asyncio.gather(
            directory_write,
            side_effects,
            return_exceptions=True,
        )
        for label, outcome in (("directory", directory_outcome), ("ledger", side_effect_outcome)):
            if isinstance(outcome, BaseException):
                result.errors.append(f"{label}: {outcome}")
                logger.error(
                    "Payment status %s: %s update failed: %s",
                    status.value,
                    label,
                    outcome,
                    extra={"context": {"owner": email}},
                )
        result.directory_updated = not isinstance(directory_outcome, BaseException)
        result.side_effects_applied = not isinstance(side_effect_outcome, BaseException)

        if result.directory_updated:
            await self._track(email, status)
        return result

    async def _dispatch_and_clear(self, email: str) -> None:
        resources = await self._table.query_by_owner(email)
        await self._queue.dispatch_deletions(resources)
        await self._table.delete_lapsed_user(email)

    async def _track(self, email: str, status: PaymentStatus) -> None:
        if self._analytics is None:
            return
        if status == PaymentStatus.LAPSED:
            await self._analytics.track_subscription_lapsed(email)
        elif status == PaymentStatus.CANCELLED:
            await self._analytics.track_subscription_cancelled(email)
        elif status == PaymentStatus.ACTIVE:
            await self._analytics.track_subscription_restored(email)
