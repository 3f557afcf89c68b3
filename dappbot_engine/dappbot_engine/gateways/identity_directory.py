"""Cognito user-pool access for payment status and dapp quota attributes.

The directory is the system of record for billing state.  Owners are
identified by their email, which is also their Cognito username.
"""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import ClientError

from dappbot_engine.errors import client_error_code
from dappbot_engine.executor.retry import RetryingExecutor
from dappbot_engine.models.billing import PaymentStatus

logger = logging.getLogger(__name__)

PAYMENT_STATUS_ATTR = "custom:payment_status"
QUOTA_ATTRS: tuple[str, ...] = (
    "custom:num_dapps",
    "custom:standard_limit",
    "custom:professional_limit",
    "custom:enterprise_limit",
)


class IdentityDirectory:
    """Reads and writes owner attributes in a Cognito user pool.

    Parameters
    ----------
    client:
        A boto3 ``cognito-idp`` client.
    executor:
        Retry executor wrapping every call.
    user_pool_id:
        The pool holding owner identities.
    """

    def __init__(self, client: Any, executor: RetryingExecutor, *, user_pool_id: str) -> None:
        self._client = client
        self._executor = executor
        self._user_pool_id = user_pool_id

    async def get_user(self, owner: str) -> list[dict[str, str]]:
        """Return the owner's attributes as ``{"Name": ..., "Value": ...}`` pairs."""
        params = {"UserPoolId": self._user_pool_id, "Username": owner}
        response = await self._executor.run_in_thread(lambda: self._client.admin_get_user(**params))
        return list(response.get("UserAttributes") or [])

    async def get_payment_status(self, owner: str) -> PaymentStatus | None:
        """Return the owner's payment status, or ``None`` when it cannot be read.

        A missing user, a missing or duplicated status attribute, and an
        unrecognized status value are all logged and reported as ``None``.
        """
        try:
            attributes = await self.get_user(owner)
        except ClientError as exc:
            if client_error_code(exc) != "UserNotFoundException":
                raise
            logger.warning("Owner not found in directory", extra={"context": {"owner": owner}})
            return None

        matches = [attr for attr in attributes if attr.get("Name") == PAYMENT_STATUS_ATTR]
        if not matches:
            logger.warning("No payment status attribute for owner", extra={"context": {"owner": owner}})
            return None
        if len(matches) > 1:
            logger.warning(
                "Multiple payment status attributes for owner",
                extra={"context": {"owner": owner, "attributes": matches}},
            )
            return None

        value = matches[0].get("Value")
        try:
            return PaymentStatus(value)
        except ValueError:
            logger.warning(
                "Unrecognized payment status %r",
                value,
                extra={"context": {"owner": owner}},
            )
            return None

    async def update_attributes(self, owner: str, attributes: dict[str, str]) -> None:
        """Write *attributes* to the owner's record in one batched update."""
        params = {
            "UserPoolId": self._user_pool_id,
            "Username": owner,
            "UserAttributes": [{"Name": name, "Value": value} for name, value in attributes.items()],
        }
        await self._executor.run_in_thread(lambda: self._client.admin_update_user_attributes(**params))

    async def set_payment_status(self, owner: str, status: PaymentStatus) -> None:
        await self.update_attributes(owner, {PAYMENT_STATUS_ATTR: status.value})
        logger.info("Marked owner %s", status.value, extra={"context": {"owner": owner}})

    async def zero_limits_and_set_status(self, owner: str, status: PaymentStatus) -> None:
        """Zero every quota attribute and set *status* in the same update."""
        attributes = {name: "0" for name in QUOTA_ATTRS}
        attributes[PAYMENT_STATUS_ATTR] = status.value
        await self.update_attributes(owner, attributes)
        logger.info(
            "Marked owner %s and set dapp limits to 0",
            status.value,
            extra={"context": {"owner": owner}},
        )

    async def mark_active(self, owner: str) -> None:
        await self.set_payment_status(owner, PaymentStatus.ACTIVE)

    async def mark_lapsed(self, owner: str) -> None:
        await self.set_payment_status(owner, PaymentStatus.LAPSED)

    async def mark_failed(self, owner: str) -> None:
        await self.zero_limits_and_set_status(owner, PaymentStatus.FAILED)

    async def mark_cancelled(self, owner: str) -> None:
        await self.zero_limits_and_set_status(owner, PaymentStatus.CANCELLED)
