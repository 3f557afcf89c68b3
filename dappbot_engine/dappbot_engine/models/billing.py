"""Payment status and lapsed-user ledger models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentStatus(str, Enum):
    """Billing state stored on the owner's directory record."""

    ACTIVE = "ACTIVE"
    LAPSED = "LAPSED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Statuses under which an owner past the grace period is treated as failed.
FAILED_STATUSES: frozenset[PaymentStatus] = frozenset(
    {PaymentStatus.LAPSED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
)


class LapsedUserRecord(BaseModel):
    """One ledger row: an owner inside the payment-lapsed grace period."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., min_length=1, alias="UserEmail")
    lapsed_at: datetime = Field(..., alias="LapsedAt")

    @field_validator("lapsed_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def age_hours(self, now: datetime | None = None) -> float:
        """Hours elapsed since the owner's payment lapsed."""
        now = now or datetime.now(UTC)
        return (now - self.lapsed_at).total_seconds() / 3600.0

    def to_item(self) -> dict[str, str]:
        """Plain attribute mapping as written to the ledger table."""
        return {
            "UserEmail": self.email,
            "LapsedAt": self.lapsed_at.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }
