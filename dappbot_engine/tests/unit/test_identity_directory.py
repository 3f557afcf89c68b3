"""Unit tests for dappbot_engine.gateways.identity_directory."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from dappbot_engine.gateways.identity_directory import (
    PAYMENT_STATUS_ATTR,
    QUOTA_ATTRS,
    IdentityDirectory,
)
from dappbot_engine.models.billing import PaymentStatus


def _directory(client: MagicMock, executor) -> IdentityDirectory:
    return IdentityDirectory(client, executor, user_pool_id="us-east-1_pool")


def _user(*attributes: tuple[str, str]) -> dict:
    return {"Username": "a@x.com", "UserAttributes": [{"Name": n, "Value": v} for n, v in attributes]}


def _written(client: MagicMock) -> dict[str, str]:
    kwargs = client.admin_update_user_attributes.call_args.kwargs
    return {attr["Name"]: attr["Value"] for attr in kwargs["UserAttributes"]}


# ---------------------------------------------------------------------------
# Reading payment status
# ---------------------------------------------------------------------------


class TestGetPaymentStatus:
    @pytest.mark.asyncio
    async def test_reads_status(self, executor):
        client = MagicMock()
        client.admin_get_user.return_value = _user(("email", "a@x.com"), (PAYMENT_STATUS_ATTR, "LAPSED"))

        status = await _directory(client, executor).get_payment_status("a@x.com")

        assert status is PaymentStatus.LAPSED
        client.admin_get_user.assert_called_once_with(UserPoolId="us-east-1_pool", Username="a@x.com")

    @pytest.mark.asyncio
    async def test_missing_attribute_is_none(self, executor):
        client = MagicMock()
        client.admin_get_user.return_value = _user(("email", "a@x.com"))
        assert await _directory(client, executor).get_payment_status("a@x.com") is None

    @pytest.mark.asyncio
    async def test_duplicate_attribute_is_none(self, executor):
        client = MagicMock()
        client.admin_get_user.return_value = _user(
            (PAYMENT_STATUS_ATTR, "ACTIVE"),
            (PAYMENT_STATUS_ATTR, "LAPSED"),
        )
        assert await _directory(client, executor).get_payment_status("a@x.com") is None

    @pytest.mark.asyncio
    async def test_unrecognized_value_is_none(self, executor):
        client = MagicMock()
        client.admin_get_user.return_value = _user((PAYMENT_STATUS_ATTR, "TRIALING"))
        assert await _directory(client, executor).get_payment_status("a@x.com") is None

    @pytest.mark.asyncio
    async def test_unknown_user_is_none(self, executor, client_error):
        client = MagicMock()
        client.admin_get_user.side_effect = client_error("UserNotFoundException", "AdminGetUser")
        assert await _directory(client, executor).get_payment_status("ghost@x.com") is None

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, executor, client_error):
        client = MagicMock()
        client.admin_get_user.side_effect = client_error("AccessDeniedException", "AdminGetUser")
        with pytest.raises(Exception, match="AccessDeniedException"):
            await _directory(client, executor).get_payment_status("a@x.com")


# ---------------------------------------------------------------------------
# Writing status and quotas
# ---------------------------------------------------------------------------


class TestStatusWrites:
    @pytest.mark.asyncio
    async def test_mark_active_writes_only_status(self, executor):
        client = MagicMock()
        await _directory(client, executor).mark_active("a@x.com")
        assert _written(client) == {PAYMENT_STATUS_ATTR: "ACTIVE"}

    @pytest.mark.asyncio
    async def test_mark_lapsed_writes_only_status(self, executor):
        client = MagicMock()
        await _directory(client, executor).mark_lapsed("a@x.com")
        assert _written(client) == {PAYMENT_STATUS_ATTR: "LAPSED"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "expected"),
        [("mark_failed", "FAILED"), ("mark_cancelled", "CANCELLED")],
    )
    async def test_failure_statuses_zero_quotas_in_one_update(self, executor, method, expected):
        client = MagicMock()
        await getattr(_directory(client, executor), method)("a@x.com")

        client.admin_update_user_attributes.assert_called_once()
        written = _written(client)
        assert written[PAYMENT_STATUS_ATTR] == expected
        for name in QUOTA_ATTRS:
            assert written[name] == "0"

    @pytest.mark.asyncio
    async def test_zeroing_twice_is_harmless(self, executor):
        client = MagicMock()
        directory = _directory(client, executor)
        await directory.zero_limits_and_set_status("a@x.com", PaymentStatus.FAILED)
        first = _written(client)
        await directory.zero_limits_and_set_status("a@x.com", PaymentStatus.FAILED)
        assert _written(client) == first
