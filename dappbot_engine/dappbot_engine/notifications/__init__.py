"""Outbound email and analytics collaborators."""

from __future__ import annotations

from dappbot_engine.notifications.analytics import SegmentAnalytics
from dappbot_engine.notifications.email import SendGridEmailSender

__all__ = ["SegmentAnalytics", "SendGridEmailSender"]
