"""Unit tests for dappbot_engine.gateways.resource_table."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from dappbot_engine.errors import DataAnomalyError
from dappbot_engine.gateways.resource_table import (
    OWNER_INDEX_NAME,
    ResourceTable,
    deserialize_item,
    serialize_item,
)
from dappbot_engine.models.billing import LapsedUserRecord
from dappbot_engine.models.resource import ResourceState, TenantResource, dns_name_for

NOW = datetime(2025, 5, 15, 12, 0, tzinfo=UTC)


class FakeDynamoDB:
    """In-memory stand-in for the handful of DynamoDB calls the gateway makes."""

    def __init__(self, page_size: int = 100) -> None:
        self.tables: dict[str, dict[str, dict]] = {"dapps": {}, "lapsed": {}}
        self.keys = {"dapps": "DappName", "lapsed": "UserEmail"}
        self.page_size = page_size
        self.calls: list[str] = []

    def _key(self, table: str, key: dict) -> str:
        return deserialize_item(key)[self.keys[table]]

    def get_item(self, TableName, Key):
        self.calls.append("get_item")
        item = self.tables[TableName].get(self._key(TableName, Key))
        return {"Item": dict(item)} if item else {}

    def put_item(self, TableName, Item):
        self.calls.append("put_item")
        self.tables[TableName][self._key(TableName, Item)] = dict(Item)
        return {}

    def delete_item(self, TableName, Key):
        self.calls.append("delete_item")
        self.tables[TableName].pop(self._key(TableName, Key), None)
        return {}

    def _page(self, items: list[dict], start_key: dict | None, key_name: str) -> dict:
        names = [deserialize_item(i)[key_name] for i in items]
        start = names.index(deserialize_item(start_key)[key_name]) + 1 if start_key else 0
        page = items[start : start + self.page_size]
        response: dict = {"Items": page}
        if start + self.page_size < len(items):
            response["LastEvaluatedKey"] = {key_name: page[-1][key_name]}
        return response

    def query(self, TableName, IndexName, ExpressionAttributeValues, ExclusiveStartKey=None, **_):
        self.calls.append("query")
        assert IndexName == OWNER_INDEX_NAME
        owner = ExpressionAttributeValues[":e"]["S"]
        items = sorted(
            (i for i in self.tables[TableName].values() if i.get("OwnerEmail", {}).get("S") == owner),
            key=lambda i: i["DappName"]["S"],
        )
        return self._page(items, ExclusiveStartKey, "DappName")

    def scan(self, TableName, ExclusiveStartKey=None):
        self.calls.append("scan")
        key_name = self.keys[TableName]
        items = sorted(self.tables[TableName].values(), key=lambda i: i[key_name]["S"])
        return self._page(items, ExclusiveStartKey, key_name)


@pytest.fixture
def fake_dynamodb() -> FakeDynamoDB:
    return FakeDynamoDB()


@pytest.fixture
def table(fake_dynamodb, executor) -> ResourceTable:
    return ResourceTable(
        fake_dynamodb,
        executor,
        dapp_table="dapps",
        lapsed_users_table="lapsed",
        grace_period_hours=72.0,
    )


def _seed_resource(fake: FakeDynamoDB, name: str, owner: str = "a@x.com", **extra) -> None:
    item = {"DappName": name, "OwnerEmail": owner, "State": "BUILDING_DAPP", **extra}
    fake.tables["dapps"][name] = serialize_item(item)


def _seed_lapsed(fake: FakeDynamoDB, email: str, lapsed_at: datetime) -> None:
    record = LapsedUserRecord(email=email, lapsed_at=lapsed_at)
    fake.tables["lapsed"][email] = serialize_item(record.to_item())


# ---------------------------------------------------------------------------
# Models used by the table
# ---------------------------------------------------------------------------


class TestLapsedUserRecord:
    def test_age_hours(self):
        record = LapsedUserRecord(email="a@x.com", lapsed_at=NOW - timedelta(hours=100))
        assert record.age_hours(NOW) == pytest.approx(100.0)

    def test_naive_timestamp_assumed_utc(self):
        record = LapsedUserRecord(email="a@x.com", lapsed_at=datetime(2025, 5, 15, 12, 0))
        assert record.lapsed_at.tzinfo is not None
        assert record.age_hours(NOW) == pytest.approx(0.0)

    def test_item_uses_iso_timestamp(self):
        record = LapsedUserRecord(email="a@x.com", lapsed_at=NOW)
        assert record.to_item() == {"UserEmail": "a@x.com", "LapsedAt": "2025-05-15T12:00:00.000Z"}

    def test_parses_stored_item(self):
        record = LapsedUserRecord.model_validate({"UserEmail": "a@x.com", "LapsedAt": "2025-05-15T12:00:00.000Z"})
        assert record.lapsed_at == NOW


class TestDnsName:
    def test_appends_root(self):
        assert dns_name_for("kitty", ".dapp.bot") == "kitty.dapp.bot"


# ---------------------------------------------------------------------------
# Dapp table
# ---------------------------------------------------------------------------


class TestResourceRecords:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, table):
        assert await table.get_resource("nope") is None

    @pytest.mark.asyncio
    async def test_put_then_get(self, table):
        record = TenantResource(
            name="kitty",
            owner_email="a@x.com",
            state=ResourceState.AVAILABLE,
            distribution_id="E123",
            updated_at=NOW,
        )
        await table.put_resource(record)
        loaded = await table.get_resource("kitty")
        assert loaded.name == "kitty"
        assert loaded.state is ResourceState.AVAILABLE
        assert loaded.distribution_id == "E123"
        assert loaded.updated_at == NOW

    @pytest.mark.asyncio
    async def test_malformed_item_is_anomaly(self, table, fake_dynamodb):
        fake_dynamodb.tables["dapps"]["broken"] = serialize_item({"DappName": "broken"})
        with pytest.raises(DataAnomalyError, match="broken"):
            await table.get_resource("broken")

    @pytest.mark.asyncio
    async def test_delete_resource(self, table, fake_dynamodb):
        _seed_resource(fake_dynamodb, "kitty")
        await table.delete_resource("kitty")
        assert "kitty" not in fake_dynamodb.tables["dapps"]


class TestSetResourceState:
    @pytest.mark.asyncio
    async def test_available_preserves_every_other_attribute(self, table, fake_dynamodb):
        _seed_resource(
            fake_dynamodb,
            "kitty",
            CloudfrontDistributionId="E123",
            Abi="[]",
            Web3URL="https://mainnet.infura.io",
        )
        before = await table.get_resource_item("kitty")

        await table.set_resource_available("kitty")

        after = await table.get_resource_item("kitty")
        assert after["State"] == "AVAILABLE"
        assert {k: v for k, v in after.items() if k != "State"} == {
            k: v for k, v in before.items() if k != "State"
        }
        record = await table.get_resource("kitty")
        assert record.state is ResourceState.AVAILABLE

    @pytest.mark.asyncio
    async def test_failed(self, table, fake_dynamodb):
        _seed_resource(fake_dynamodb, "kitty")
        await table.set_resource_failed("kitty")
        assert (await table.get_resource("kitty")).state is ResourceState.FAILED

    @pytest.mark.asyncio
    async def test_missing_record_is_anomaly(self, table):
        with pytest.raises(DataAnomalyError, match="kitty"):
            await table.set_resource_available("kitty")

    @pytest.mark.asyncio
    async def test_building_records_distribution(self, table):
        record = TenantResource(name="kitty", owner_email="a@x.com", state=ResourceState.FAILED)
        building = await table.set_resource_building(record, "E9", "d9.cloudfront.net")
        stored = await table.get_resource("kitty")
        assert building.state is ResourceState.BUILDING
        assert stored.distribution_id == "E9"
        assert stored.distribution_dns == "d9.cloudfront.net"


class TestQueryByOwner:
    @pytest.mark.asyncio
    async def test_returns_names_for_owner_only(self, table, fake_dynamodb):
        _seed_resource(fake_dynamodb, "one", "a@x.com")
        _seed_resource(fake_dynamodb, "two", "a@x.com")
        _seed_resource(fake_dynamodb, "other", "b@x.com")
        assert await table.query_by_owner("a@x.com") == {"one", "two"}

    @pytest.mark.asyncio
    async def test_follows_pagination(self, table, fake_dynamodb):
        fake_dynamodb.page_size = 2
        for i in range(5):
            _seed_resource(fake_dynamodb, f"dapp-{i}", "a@x.com")
        assert await table.query_by_owner("a@x.com") == {f"dapp-{i}" for i in range(5)}
        assert fake_dynamodb.calls.count("query") == 3

    @pytest.mark.asyncio
    async def test_no_resources(self, table):
        assert await table.query_by_owner("nobody@x.com") == set()


# ---------------------------------------------------------------------------
# Lapsed-user ledger
# ---------------------------------------------------------------------------


class TestLapsedLedger:
    @pytest.mark.asyncio
    async def test_put_and_scan(self, table):
        await table.put_lapsed_user("a@x.com", now=NOW)
        rows = await table.scan_lapsed_users()
        assert [(r.email, r.lapsed_at) for r in rows] == [("a@x.com", NOW)]

    @pytest.mark.asyncio
    async def test_delete(self, table, fake_dynamodb):
        _seed_lapsed(fake_dynamodb, "a@x.com", NOW)
        await table.delete_lapsed_user("a@x.com")
        assert await table.scan_lapsed_users() == []

    @pytest.mark.asyncio
    async def test_scan_paginates_and_skips_malformed(self, table, fake_dynamodb):
        fake_dynamodb.page_size = 1
        _seed_lapsed(fake_dynamodb, "a@x.com", NOW)
        _seed_lapsed(fake_dynamodb, "c@x.com", NOW)
        fake_dynamodb.tables["lapsed"]["b@x.com"] = serialize_item({"UserEmail": "b@x.com", "LapsedAt": "yesterday"})

        rows = await table.scan_lapsed_users()

        assert sorted(r.email for r in rows) == ["a@x.com", "c@x.com"]
        assert fake_dynamodb.calls.count("scan") == 3

    @pytest.mark.asyncio
    async def test_potential_failed_users_strictly_past_grace(self, table, fake_dynamodb):
        _seed_lapsed(fake_dynamodb, "old@x.com", NOW - timedelta(hours=100))
        _seed_lapsed(fake_dynamodb, "edge@x.com", NOW - timedelta(hours=72))
        _seed_lapsed(fake_dynamodb, "new@x.com", NOW - timedelta(hours=1))

        rows = await table.get_potential_failed_users(now=NOW)

        assert [r.email for r in rows] == ["old@x.com"]
        for row in rows:
            assert row.age_hours(NOW) > table.grace_period_hours

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self, executor, no_sleep, client_error):
        client = MagicMock()
        client.scan.side_effect = [client_error("ProvisionedThroughputExceededException"), {"Items": []}]
        table = ResourceTable(
            client,
            executor,
            dapp_table="dapps",
            lapsed_users_table="lapsed",
            grace_period_hours=72.0,
        )
        assert await table.scan_lapsed_users() == []
        assert client.scan.call_count == 2
