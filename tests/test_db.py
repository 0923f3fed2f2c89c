"""Tests for RecordStore — aiosqlite keyed records."""

import pytest

from skinlog.db import RecordStore

# -- insert / get --------------------------------------------------------------


async def test_insert_assigns_id_and_created_at(records: RecordStore) -> None:
    rec = await records.insert("goals", {"title": "Clear skin"})
    assert rec["id"]
    assert rec["created_at"]

    fetched = await records.get_record("goals", rec["id"])
    assert fetched == rec


async def test_insert_keeps_explicit_id(records: RecordStore) -> None:
    rec = await records.insert("goals", {"id": "g1", "title": "x"})
    assert rec["id"] == "g1"


async def test_get_missing_record(records: RecordStore) -> None:
    assert await records.get_record("goals", "nope") is None


async def test_collections_are_separate(records: RecordStore) -> None:
    await records.insert("goals", {"id": "same"})
    assert await records.get_record("routines", "same") is None


async def test_insert_many(records: RecordStore) -> None:
    rows = await records.insert_many("steps", [{"n": 1}, {"n": 2}])
    assert len(rows) == 2
    assert await records.insert_many("steps", []) == []
    assert len(await records.select("steps")) == 2


# -- select --------------------------------------------------------------------


async def test_select_filters_orders_and_limits(records: RecordStore) -> None:
    await records.insert("checkins", {"user_id": "u1", "date": "2025-06-01"})
    await records.insert("checkins", {"user_id": "u1", "date": "2025-06-03"})
    await records.insert("checkins", {"user_id": "u1", "date": "2025-06-02"})
    await records.insert("checkins", {"user_id": "u2", "date": "2025-06-04"})

    rows = await records.select(
        "checkins", where={"user_id": "u1"}, order_by="date", descending=True, limit=2
    )
    assert [r["date"] for r in rows] == ["2025-06-03", "2025-06-02"]


async def test_select_bool_and_null(records: RecordStore) -> None:
    await records.insert("routines", {"id": "a", "is_active": True, "day_of_week": None})
    await records.insert("routines", {"id": "b", "is_active": False, "day_of_week": 1})

    active = await records.select("routines", where={"is_active": True})
    assert [r["id"] for r in active] == ["a"]
    undated = await records.select("routines", where={"day_of_week": None})
    assert [r["id"] for r in undated] == ["a"]


async def test_select_rejects_bad_field_name(records: RecordStore) -> None:
    with pytest.raises(ValueError, match="Invalid field name"):
        await records.select("goals", where={"title') OR 1=1 --": "x"})


async def test_select_one(records: RecordStore) -> None:
    await records.insert("products", {"name": "Gel", "brand": "Acme"})
    found = await records.select_one("products", where={"name": "Gel", "brand": "Acme"})
    assert found is not None
    assert await records.select_one("products", where={"name": "Other"}) is None


# -- update / upsert / delete --------------------------------------------------


async def test_update_merges_fields(records: RecordStore) -> None:
    rec = await records.insert("goals", {"title": "a", "status": "active"})
    updated = await records.update("goals", rec["id"], {"status": "done"})
    assert updated["title"] == "a"
    assert updated["status"] == "done"
    assert "updated_at" in updated
    assert (await records.get_record("goals", rec["id"]))["status"] == "done"


async def test_update_missing_returns_none(records: RecordStore) -> None:
    assert await records.update("goals", "nope", {"x": 1}) is None


async def test_update_where(records: RecordStore) -> None:
    await records.insert("routines", {"user_id": "u1", "is_active": True})
    await records.insert("routines", {"user_id": "u1", "is_active": True})
    await records.insert("routines", {"user_id": "u2", "is_active": True})

    count = await records.update_where("routines", {"user_id": "u1"}, {"is_active": False})
    assert count == 2
    assert len(await records.select("routines", where={"is_active": True})) == 1


async def test_upsert_on_natural_key(records: RecordStore) -> None:
    first = await records.upsert(
        "inventory", {"user_id": "u1", "product_id": "p1", "amount": 50},
        on_conflict=("user_id", "product_id"),
    )
    second = await records.upsert(
        "inventory", {"user_id": "u1", "product_id": "p1", "amount": 100},
        on_conflict=("user_id", "product_id"),
    )
    assert second["id"] == first["id"]
    rows = await records.select("inventory")
    assert len(rows) == 1
    assert rows[0]["amount"] == 100


async def test_delete(records: RecordStore) -> None:
    rec = await records.insert("goals", {"title": "x"})
    assert await records.delete("goals", rec["id"]) is True
    assert await records.delete("goals", rec["id"]) is False


# -- singleton -----------------------------------------------------------------


def test_singleton_reset() -> None:
    a = RecordStore.get()
    assert RecordStore.get() is a
    RecordStore._reset()
    assert RecordStore.get() is not a
