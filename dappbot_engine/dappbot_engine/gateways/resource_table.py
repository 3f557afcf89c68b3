"""DynamoDB access for the dapp table and the lapsed-user ledger.

All writes are unconditional overwrites.  The dapp table is written by
several actors (API, build pipeline, deletion worker), so state changes go
through a raw read-modify-write that patches ``State`` and writes every
other attribute back untouched.  Concurrent writers are last-writer-wins.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from pydantic import ValidationError

from dappbot_engine.errors import DataAnomalyError
from dappbot_engine.executor.retry import RetryingExecutor
from dappbot_engine.models.billing import LapsedUserRecord
from dappbot_engine.models.resource import ResourceState, TenantResource

logger = logging.getLogger(__name__)

OWNER_INDEX_NAME = "OwnerEmailIndex"

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def serialize_item(item: dict[str, Any]) -> dict[str, Any]:
    """Convert a plain mapping into DynamoDB attribute-value form."""
    return {key: _serializer.serialize(value) for key, value in item.items()}


def deserialize_item(raw: dict[str, Any]) -> dict[str, Any]:
    """Convert a DynamoDB attribute-value mapping into plain Python values."""
    return {key: _deserializer.deserialize(value) for key, value in raw.items()}


def _iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resource_to_item(record: TenantResource) -> dict[str, Any]:
    """Plain attribute mapping for *record*, extras included."""
    item = record.model_dump(by_alias=True, exclude_none=True)
    item["State"] = record.state.value
    if record.updated_at is not None:
        item["UpdatedAt"] = _iso(record.updated_at)
    return item


class ResourceTable:
    """Typed gateway over the dapp table and the lapsed-user ledger.

    Parameters
    ----------
    client:
        A boto3 DynamoDB client.
    executor:
        Retry executor wrapping every call.
    dapp_table:
        Name of the table keyed by ``DappName``.
    lapsed_users_table:
        Name of the ledger table keyed by ``UserEmail``.
    grace_period_hours:
        How long an owner may stay lapsed before being a failure candidate.
    """

    def __init__(
        self,
        client: Any,
        executor: RetryingExecutor,
        *,
        dapp_table: str,
        lapsed_users_table: str,
        grace_period_hours: float,
    ) -> None:
        self._client = client
        self._executor = executor
        self._dapp_table = dapp_table
        self._lapsed_users_table = lapsed_users_table
        self._grace_period_hours = grace_period_hours

    @property
    def grace_period_hours(self) -> float:
        return self._grace_period_hours

    # -- Dapp table ------------------------------------------------------

    async def get_resource_item(self, name: str) -> dict[str, Any] | None:
        """Return the raw (deserialized) item for *name*, or ``None``."""
        params = {
            "TableName": self._dapp_table,
            "Key": serialize_item({"DappName": name}),
        }
        response = await self._executor.run_in_thread(lambda: self._client.get_item(**params))
        raw = response.get("Item")
        if not raw:
            return None
        return deserialize_item(raw)

    async def get_resource(self, name: str) -> TenantResource | None:
        """Return the resource record for *name*, or ``None`` if absent.

        Raises
        ------
        DataAnomalyError
            If the stored item does not have the shape of a resource record.
        """
        item = await self.get_resource_item(name)
        if item is None:
            return None
        try:
            return TenantResource.model_validate(item)
        except ValidationError as exc:
            raise DataAnomalyError(f"Malformed resource item for {name}: {exc}") from exc

    async def put_resource_item(self, item: dict[str, Any]) -> None:
        """Overwrite the raw item keyed by its ``DappName``."""
        params = {
            "TableName": self._dapp_table,
            "Item": serialize_item(item),
        }
        await self._executor.run_in_thread(lambda: self._client.put_item(**params))

    async def put_resource(self, record: TenantResource) -> None:
        """Overwrite the full record for ``record.name``."""
        await self.put_resource_item(resource_to_item(record))

    async def delete_resource(self, name: str) -> None:
        params = {
            "TableName": self._dapp_table,
            "Key": serialize_item({"DappName": name}),
        }
        await self._executor.run_in_thread(lambda: self._client.delete_item(**params))

    async def query_by_owner(self, email: str) -> set[str]:
        """Return the names of every resource owned by *email*."""
        names: set[str] = set()
        exclusive_start_key: dict[str, Any] | None = None
        while True:
            params: dict[str, Any] = {
                "TableName": self._dapp_table,
                "IndexName": OWNER_INDEX_NAME,
                "ExpressionAttributeNames": {"#OE": "OwnerEmail"},
                "ExpressionAttributeValues": {":e": {"S": email}},
                "KeyConditionExpression": "#OE = :e",
                "Select": "ALL_PROJECTED_ATTRIBUTES",
            }
            if exclusive_start_key:
                params["ExclusiveStartKey"] = exclusive_start_key
            response = await self._executor.run_in_thread(lambda: self._client.query(**params))
            for raw in response.get("Items") or []:
                name = deserialize_item(raw).get("DappName")
                if name:
                    names.add(name)
                else:
                    logger.warning(
                        "Item without DappName in owner index",
                        extra={"context": {"owner": email}},
                    )
            exclusive_start_key = response.get("LastEvaluatedKey")
            if not exclusive_start_key:
                return names

    async def set_resource_state(self, name: str, state: ResourceState) -> None:
        """Patch only the ``State`` attribute of *name*'s record.

        Raises
        ------
        DataAnomalyError
            If no record exists for *name*.
        """
        item = await self.get_resource_item(name)
        if item is None:
            raise DataAnomalyError(f"No resource record found for {name}")
        item["State"] = state.value
        await self.put_resource_item(item)
        logger.info("Resource %s set to %s", name, state.value)

    async def set_resource_available(self, name: str) -> None:
        await self.set_resource_state(name, ResourceState.AVAILABLE)

    async def set_resource_failed(self, name: str) -> None:
        await self.set_resource_state(name, ResourceState.FAILED)

    async def set_resource_building(
        self,
        record: TenantResource,
        distribution_id: str | None = None,
        distribution_dns: str | None = None,
    ) -> TenantResource:
        """Write *record* in the building state, recording its distribution."""
        update: dict[str, Any] = {"state": ResourceState.BUILDING}
        if distribution_id:
            update["distribution_id"] = distribution_id
        if distribution_dns:
            update["distribution_dns"] = distribution_dns
        building = record.model_copy(update=update)
        await self.put_resource(building)
        return building

    # -- Lapsed-user ledger ----------------------------------------------

    async def put_lapsed_user(self, email: str, now: datetime | None = None) -> LapsedUserRecord:
        record = LapsedUserRecord(email=email, lapsed_at=now or datetime.now(UTC))
        params = {
            "TableName": self._lapsed_users_table,
            "Item": serialize_item(record.to_item()),
        }
        await self._executor.run_in_thread(lambda: self._client.put_item(**params))
        return record

    async def delete_lapsed_user(self, email: str) -> None:
        params = {
            "TableName": self._lapsed_users_table,
            "Key": serialize_item({"UserEmail": email}),
        }
        await self._executor.run_in_thread(lambda: self._client.delete_item(**params))

    async def scan_lapsed_users(self) -> list[LapsedUserRecord]:
        """Return every ledger row.  Malformed rows are logged and skipped."""
        records: list[LapsedUserRecord] = []
        exclusive_start_key: dict[str, Any] | None = None
        while True:
            params: dict[str, Any] = {"TableName": self._lapsed_users_table}
            if exclusive_start_key:
                params["ExclusiveStartKey"] = exclusive_start_key
            response = await self._executor.run_in_thread(lambda: self._client.scan(**params))
            for raw in response.get("Items") or []:
                item = deserialize_item(raw)
                try:
                    records.append(LapsedUserRecord.model_validate(item))
                except ValidationError as exc:
                    logger.warning(
                        "Skipping malformed lapsed-user row: %s",
                        exc,
                        extra={"context": {"owner": item.get("UserEmail")}},
                    )
            exclusive_start_key = response.get("LastEvaluatedKey")
            if not exclusive_start_key:
                return records

    async def get_potential_failed_users(self, now: datetime | None = None) -> list[LapsedUserRecord]:
        """Return ledger rows whose age strictly exceeds the grace period."""
        now = now or datetime.now(UTC)
        rows = await self.scan_lapsed_users()
        return [row for row in rows if row.age_hours(now) > self._grace_period_hours]
