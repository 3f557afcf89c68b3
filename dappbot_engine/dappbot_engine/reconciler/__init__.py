"""Lapsed-user reconciliation and synchronous billing transitions."""

from __future__ import annotations

from dappbot_engine.reconciler.lapsed_users import (
    LapsedUserReconciler,
    PaymentTransitionResult,
    ReconciliationReport,
)

__all__ = ["LapsedUserReconciler", "PaymentTransitionResult", "ReconciliationReport"]
