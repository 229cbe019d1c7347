# tests/test_record_store.py
import asyncio

import pytest

from restaurant_ledger.db.record_store import (
    CONDITION_FAILED,
    ConditionFailedError,
    DeleteOp,
    PutOp,
    StoredItem,
    StoreUnavailableError,
)
from restaurant_ledger.db.sql_record_store import SqlRecordStore
from restaurant_ledger.domain import codec


def _item(pk: str, sk: str, **attributes) -> StoredItem:
    return StoredItem(pk, sk, attributes)


@pytest.mark.asyncio
async def test_put_and_get_roundtrip_versions(store) -> None:
    first = await store.put(_item("P#1", "A", value=1))
    assert first.version == 1

    second = await store.put(_item("P#1", "A", value=2))
    assert second.version == 2

    fetched = await store.get("P#1", "A")
    assert fetched.attributes == {"value": 2}
    assert fetched.version == 2
    assert await store.get("P#1", "missing") is None


@pytest.mark.asyncio
async def test_must_not_exist_rejects_existing_item(store) -> None:
    await store.put(_item("P#1", "A"), must_not_exist=True)
    with pytest.raises(ConditionFailedError):
        await store.put(_item("P#1", "A"), must_not_exist=True)


@pytest.mark.asyncio
async def test_expected_version_guards_put_and_delete(store) -> None:
    stored = await store.put(_item("P#1", "A", value=1))
    await store.put(_item("P#1", "A", value=2), expected_version=stored.version)

    # La versión leída ya no es la actual.
    with pytest.raises(ConditionFailedError):
        await store.put(_item("P#1", "A", value=3), expected_version=stored.version)
    with pytest.raises(ConditionFailedError):
        await store.delete("P#1", "A", expected_version=stored.version)

    assert await store.delete("P#1", "A", expected_version=stored.version + 1) is True
    assert await store.delete("P#1", "A") is False


@pytest.mark.asyncio
async def test_query_by_prefix_is_sorted_and_partition_scoped(store) -> None:
    for sk in ("REWARD#3", "REWARD#1", "PROFILE", "REWARD#2"):
        await store.put(_item("CUSTOMER#1", sk))
    await store.put(_item("CUSTOMER#10", "REWARD#9"))

    items = await store.query_by_prefix("CUSTOMER#1", "REWARD#")
    assert [item.sk for item in items] == ["REWARD#1", "REWARD#2", "REWARD#3"]


@pytest.mark.asyncio
async def test_query_by_prefix_treats_wildcards_literally(store) -> None:
    await store.put(_item("P", "A_1"))
    await store.put(_item("P", "AB1"))
    await store.put(_item("P", "A%2"))

    assert [item.sk for item in await store.query_by_prefix("P", "A_")] == ["A_1"]
    assert [item.sk for item in await store.query_by_prefix("P", "A%")] == ["A%2"]


@pytest.mark.asyncio
async def test_query_range_is_inclusive(store) -> None:
    for day in ("2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04"):
        await store.put(_item("RESTAURANT#r1", f"SALE#{day}#x"))

    items = await store.query_range("RESTAURANT#r1", "SALE#2024-01-02", f"SALE#2024-01-03#{codec.RANGE_HIGH_SENTINEL}")
    assert [item.sk for item in items] == ["SALE#2024-01-02#x", "SALE#2024-01-03#x"]


@pytest.mark.asyncio
async def test_scan_by_attribute_filters_record_type_and_plain_attributes(store) -> None:
    await store.put(_item("COUPON#A", "DETAILS", recordType="coupon", title="A"))
    await store.put(_item("COUPON#B", "DETAILS", recordType="coupon", title="B"))
    await store.put(_item("CUSTOMER#1", "PROFILE", recordType="customer", title="B"))

    coupons = await store.scan_by_attribute("recordType", "coupon")
    assert [item.pk for item in coupons] == ["COUPON#A", "COUPON#B"]

    titled = await store.scan_by_attribute("title", "B")
    assert {item.pk for item in titled} == {"COUPON#B", "CUSTOMER#1"}


@pytest.mark.asyncio
async def test_conditional_update_increments_missing_counter_from_zero(store) -> None:
    await store.put(_item("COUPON#A", "DETAILS", title="A"))

    first = await store.conditional_update("COUPON#A", "DETAILS", deltas={"usedCount": 1})
    second = await store.conditional_update("COUPON#A", "DETAILS", deltas={"usedCount": 1})

    assert first["usedCount"] == 1
    assert second["usedCount"] == 2
    assert second["title"] == "A"


@pytest.mark.asyncio
async def test_conditional_update_checks_existence_and_expected_values(store) -> None:
    with pytest.raises(ConditionFailedError):
        await store.conditional_update("COUPON#X", "DETAILS", deltas={"usedCount": 1})

    await store.put(_item("J", "1", status="pending"))
    with pytest.raises(ConditionFailedError):
        await store.conditional_update("J", "1", sets={"status": "applied"}, expected={"status": "applied"})

    updated = await store.conditional_update("J", "1", sets={"status": "applied"}, expected={"status": "pending"})
    assert updated["status"] == "applied"


@pytest.mark.asyncio
async def test_repeated_increments_accumulate(store) -> None:
    await store.put(_item("COUPON#A", "DETAILS"))

    for _ in range(5):
        await store.conditional_update("COUPON#A", "DETAILS", deltas={"usedCount": 1})

    item = await store.get("COUPON#A", "DETAILS")
    assert item.attributes["usedCount"] == 5


@pytest.mark.asyncio
async def test_batch_write_reports_every_op(store) -> None:
    stale = await store.put(_item("P", "stale", value=1))
    await store.put(_item("P", "stale", value=2))
    await store.put(_item("P", "gone"))

    ops = [
        PutOp(_item("P", "new", value=1), must_not_exist=True),
        PutOp(_item("P", "stale", value=3), expected_version=stale.version),
        DeleteOp("P", "gone"),
    ]
    result = await store.batch_write(ops)

    assert not result.ok
    assert result.applied == [ops[0], ops[2]]
    assert result.failed == [(ops[1], CONDITION_FAILED)]
    assert (await store.get("P", "stale")).attributes == {"value": 2}
    assert await store.get("P", "gone") is None


class _SlowSession:
    def __init__(self, inner, delay: float):
        self._inner = inner
        self._delay = delay

    async def __aenter__(self):
        await asyncio.sleep(self._delay)
        return await self._inner.__aenter__()

    async def __aexit__(self, *exc_info):
        return await self._inner.__aexit__(*exc_info)


@pytest.mark.asyncio
async def test_slow_backend_surfaces_as_unavailable(session_factory) -> None:
    slow_store = SqlRecordStore(lambda: _SlowSession(session_factory(), delay=0.5), timeout=0.05)

    with pytest.raises(StoreUnavailableError):
        await slow_store.get("P", "A")
