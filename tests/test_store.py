"""Tests for SkincareStore — cache, write-through and refresh."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from skinlog.chat.actions import WeeklyRoutineSuggestion
from skinlog.data.store import SkincareStore
from skinlog.db import RecordStore
from skinlog.errors import WriteError
from skinlog.events import RefreshSignal

TODAY = date(2025, 6, 2)
USER_ID = "user-1"

# -- Helpers -------------------------------------------------------------------


async def _product(records: RecordStore, name: str, brand: str, category: str = "serum") -> str:
    rec = await records.insert("products", {"name": name, "brand": brand, "category": category})
    return rec["id"]


async def _routine(
    records: RecordStore, name: str = "Morning Glow", rtype: str = "morning", active: bool = True
) -> str:
    rec = await records.insert(
        "routines", {"user_id": USER_ID, "name": name, "type": rtype, "is_active": active}
    )
    return rec["id"]


async def _item(records: RecordStore, product_id: str, amount: int = 100) -> str:
    rec = await records.insert(
        "user_inventory",
        {"user_id": USER_ID, "product_id": product_id, "amount_remaining": amount},
    )
    return rec["id"]


# -- refresh_data --------------------------------------------------------------


async def test_refresh_loads_all_collections(records: RecordStore, store: SkincareStore) -> None:
    pid = await _product(records, "Gel", "Acme")
    rid = await _routine(records)
    await records.insert(
        "routine_steps",
        {"routine_id": rid, "step_order": 2, "instructions": "Moisturize", "product_id": None},
    )
    await records.insert(
        "routine_steps",
        {"routine_id": rid, "step_order": 1, "instructions": "Cleanse", "product_id": pid},
    )
    await _item(records, pid, 60)
    await records.insert("daily_checkins", {"user_id": USER_ID, "date": "2025-06-01"})
    await records.insert("goals", {"user_id": USER_ID, "title": "Glow", "status": "active"})
    await records.insert("goals", {"user_id": USER_ID, "title": "Old", "status": "completed"})
    await records.insert("goals", {"user_id": "someone-else", "title": "X", "status": "active"})

    await store.refresh_data()

    assert store.loaded
    [routine] = store.routines
    assert [s.instructions for s in routine.steps] == ["Cleanse", "Moisturize"]
    assert routine.steps[0].product.name == "Gel"
    [item] = store.inventory
    assert item.amount_remaining == 60
    assert item.product.brand == "Acme"
    assert [c.date for c in store.check_ins] == ["2025-06-01"]
    assert [g.title for g in store.goals] == ["Glow"]


async def test_refresh_limits_check_in_history(records: RecordStore, store: SkincareStore) -> None:
    for day in range(1, 13):
        await records.insert("daily_checkins", {"user_id": USER_ID, "date": f"2025-05-{day:02d}"})

    await store.refresh_data()

    dates = [c.date for c in store.check_ins]
    assert len(dates) == 10
    assert dates[0] == "2025-05-12"


async def test_refresh_loads_upcoming_appointments(
    records: RecordStore, store: SkincareStore
) -> None:
    for appt_id, when, status in [
        ("past", "2025-05-01T10:00:00", "scheduled"),
        ("soon", "2025-06-10T09:00:00", "scheduled"),
        ("idea", None, "suggested"),
        ("off", "2025-06-20T09:00:00", "cancelled"),
    ]:
        await records.insert(
            "appointments",
            {"id": appt_id, "user_id": USER_ID, "treatment_type": "Facial",
             "scheduled_at": when, "status": status},
        )
    await records.insert(
        "appointments",
        {"user_id": "someone-else", "treatment_type": "Peel", "scheduled_at": None,
         "status": "suggested"},
    )

    await store.refresh_data()

    assert [a.id for a in store.appointments] == ["idea", "soon"]
    assert store.snapshot().appointments == store.appointments


async def test_refresh_without_user_is_noop(records: RecordStore) -> None:
    anon = SkincareStore(records, None)
    callback = MagicMock()
    anon.on_data_change(callback)

    await anon.refresh_data()

    assert not anon.loaded
    callback.assert_not_called()


async def test_overlapping_refreshes(records: RecordStore, store: SkincareStore) -> None:
    await _routine(records)
    await asyncio.gather(store.refresh_data(), store.refresh_data())
    assert len(store.routines) == 1


async def test_snapshot_is_read_only_view(records: RecordStore, store: SkincareStore) -> None:
    await _routine(records)
    await store.refresh_data()
    snap = store.snapshot()
    assert isinstance(snap.routines, tuple)
    assert snap.loaded


# -- subscriptions -------------------------------------------------------------


async def test_subscribers_notified_and_unsubscribed(store: SkincareStore) -> None:
    callback = MagicMock()
    unsubscribe = store.on_data_change(callback)

    await store.refresh_data()
    assert callback.call_count == 1

    unsubscribe()
    await store.refresh_data()
    assert callback.call_count == 1


async def test_failing_subscriber_does_not_break_others(store: SkincareStore) -> None:
    bad = MagicMock(side_effect=RuntimeError("boom"))
    good = MagicMock()
    store.on_data_change(bad)
    store.on_data_change(good)

    await store.refresh_data()

    good.assert_called_once()


async def test_listen_for_refresh(records: RecordStore, store: SkincareStore) -> None:
    signal = RefreshSignal.get()
    stop = store.listen_for_refresh(signal)
    await _routine(records)

    await signal.emit("test")
    assert len(store.routines) == 1

    stop()
    assert signal.listener_count == 0


# -- mark_routine_complete -----------------------------------------------------


async def test_mark_complete_creates_check_in(records: RecordStore, store: SkincareStore) -> None:
    rid = await _routine(records, "Morning Glow", "morning")
    await store.refresh_data()

    check_in = await store.mark_routine_complete(rid, "Morning Glow")

    assert check_in.date == TODAY.isoformat()
    assert check_in.morning_completed is True
    assert check_in.evening_completed is None
    assert check_in.skin_rating == 3
    assert check_in.notes == "Completed Morning Glow routine"
    assert store.todays_check_in() == check_in


async def test_mark_complete_keeps_other_flag(records: RecordStore, store: SkincareStore) -> None:
    rid = await _routine(records, "Night", "evening")
    await records.insert(
        "daily_checkins",
        {
            "user_id": USER_ID,
            "date": TODAY.isoformat(),
            "morning_routine_completed": False,
            "evening_routine_completed": None,
            "skin_condition_rating": 4,
        },
    )
    await store.refresh_data()

    check_in = await store.mark_routine_complete(rid, "Night")

    assert check_in.evening_completed is True
    assert check_in.morning_completed is False
    assert check_in.skin_rating == 4
    assert len(await records.select("daily_checkins")) == 1


async def test_evening_detected_from_name(records: RecordStore, store: SkincareStore) -> None:
    rid = await _routine(records, "Evening Wind Down", "custom")
    await store.refresh_data()

    check_in = await store.mark_routine_complete(rid, "Evening Wind Down")

    assert check_in.evening_completed is True
    assert check_in.morning_completed is None


async def test_mark_complete_requires_user(records: RecordStore) -> None:
    anon = SkincareStore(records, None)
    with pytest.raises(WriteError):
        await anon.mark_routine_complete("r1", "AM")
    assert await records.select("daily_checkins") == []


# -- inventory -----------------------------------------------------------------


async def test_add_product_new_and_top_up(records: RecordStore, store: SkincareStore) -> None:
    pid = await _product(records, "Gel", "Acme")
    await store.refresh_data()

    item = await store.add_product_to_inventory(pid)
    assert item.amount_remaining == 100
    assert item.product.name == "Gel"

    await store.update_inventory_item(item.id, {"amount_remaining": 50})
    topped = await store.add_product_to_inventory(pid)
    assert topped.amount_remaining == 70

    await store.update_inventory_item(item.id, {"amount_remaining": 95})
    capped = await store.add_product_to_inventory(pid)
    assert capped.amount_remaining == 100
    assert len(store.inventory) == 1


async def test_mark_product_as_used_floors_at_zero(
    records: RecordStore, store: SkincareStore
) -> None:
    pid = await _product(records, "Gel", "Acme")
    item_id = await _item(records, pid, 25)
    await store.refresh_data()

    assert (await store.mark_product_as_used(item_id, 25)).amount_remaining == 15
    assert (await store.mark_product_as_used(item_id, 5)).amount_remaining == 0
    assert (await records.get_record("user_inventory", item_id))["amount_remaining"] == 0


async def test_delete_product(records: RecordStore, store: SkincareStore) -> None:
    pid = await _product(records, "Gel", "Acme")
    item_id = await _item(records, pid)
    await store.refresh_data()

    assert await store.delete_product_from_inventory(item_id) is True
    assert store.inventory == ()
    assert await records.get_record("user_inventory", item_id) is None


async def test_optimistic_update_notifies_before_write(
    records: RecordStore, store: SkincareStore
) -> None:
    pid = await _product(records, "Gel", "Acme")
    item_id = await _item(records, pid, 80)
    await store.refresh_data()
    seen: list[int] = []
    store.on_data_change(lambda: seen.append(store.inventory[0].amount_remaining))

    await store.update_inventory_item(item_id, {"amount_remaining": 30})

    assert seen[0] == 30


# -- write failures ------------------------------------------------------------


async def test_failed_write_rolls_back(records: RecordStore, store: SkincareStore) -> None:
    pid = await _product(records, "Gel", "Acme")
    item_id = await _item(records, pid, 80)
    await store.refresh_data()

    with (
        patch.object(records, "update", AsyncMock(side_effect=OSError("disk full"))),
        pytest.raises(WriteError, match="disk full"),
    ):
        await store.update_inventory_item(item_id, {"amount_remaining": 10})

    assert store.inventory[0].amount_remaining == 80


async def test_failed_write_without_rollback(records: RecordStore) -> None:
    store = SkincareStore(records, USER_ID, today=lambda: TODAY, rollback_on_failure=False)
    pid = await _product(records, "Gel", "Acme")
    item_id = await _item(records, pid, 80)
    await store.refresh_data()

    with (
        patch.object(records, "delete", AsyncMock(side_effect=OSError("offline"))),
        pytest.raises(WriteError),
    ):
        await store.delete_product_from_inventory(item_id)

    assert store.inventory == ()


async def test_rollback_keeps_data_refreshed_during_write(
    records: RecordStore, store: SkincareStore
) -> None:
    pid = await _product(records, "Gel", "Acme")
    item_id = await _item(records, pid, 80)
    await store.refresh_data()
    gate = asyncio.Event()

    async def slow_failure(*args, **kwargs):
        await gate.wait()
        raise OSError("timeout")

    with patch.object(records, "update", slow_failure):
        task = asyncio.create_task(store.update_inventory_item(item_id, {"amount_remaining": 10}))
        await asyncio.sleep(0)
        assert store.inventory[0].amount_remaining == 10

        toner = await _product(records, "Toner", "Acme", "toner")
        await _item(records, toner, 50)
        await store.refresh_data()
        gate.set()
        with pytest.raises(WriteError, match="timeout"):
            await task

    assert sorted(i.amount_remaining for i in store.inventory) == [50, 80]


async def test_failed_insert_keeps_concurrent_refresh(
    records: RecordStore, store: SkincareStore
) -> None:
    gate = asyncio.Event()
    real_insert = records.insert

    async def insert(collection, data):
        if data.get("title") == "fails":
            await gate.wait()
            raise OSError("rejected")
        return await real_insert(collection, data)

    with patch.object(records, "insert", insert):
        task = asyncio.create_task(store.add_goal("fails", "d", "2025-09-01"))
        await asyncio.sleep(0)
        await records.insert(
            "goals",
            {"user_id": USER_ID, "title": "other surface", "description": "d",
             "target_date": "2025-09-01", "status": "active"},
        )
        await store.refresh_data()
        gate.set()
        with pytest.raises(WriteError):
            await task

    assert [g.title for g in store.goals] == ["other surface"]


async def test_update_missing_routine_raises(store: SkincareStore) -> None:
    with pytest.raises(WriteError, match="not found"):
        await store.update_routine("missing", {"name": "x"})


async def test_update_routine(records: RecordStore, store: SkincareStore) -> None:
    rid = await _routine(records)
    await store.refresh_data()

    routine = await store.update_routine(rid, {"name": "Renamed", "is_active": False})

    assert routine.name == "Renamed"
    assert routine.is_active is False
    assert (await records.get_record("routines", rid))["name"] == "Renamed"


# -- check-ins and goals -------------------------------------------------------


async def test_add_check_in_defaults_to_today(store: SkincareStore) -> None:
    check_in = await store.add_check_in({"skin_condition_rating": 4, "notes": "calm"})
    assert check_in.date == TODAY.isoformat()
    assert store.check_ins == (check_in,)


async def test_add_goal(records: RecordStore, store: SkincareStore) -> None:
    goal = await store.add_goal("Fade spots", "Even tone", "2025-12-01")
    assert goal.status == "active"
    assert store.goals == (goal,)
    assert (await records.get_record("goals", goal.id))["user_id"] == USER_ID


async def test_record_check_in_photos(records: RecordStore, store: SkincareStore) -> None:
    check_in = await store.record_check_in_photos(
        ["https://img/1.jpg", "https://img/2.jpg"], lighting="indoor", notes="after peel"
    )

    photos = await records.select("progress_photos")
    assert [p["photo_url"] for p in photos] == ["https://img/1.jpg", "https://img/2.jpg"]
    assert all(p["checkin_id"] == check_in.id for p in photos)
    assert all(p["lighting_condition"] == "indoor" for p in photos)
    assert check_in.notes == "after peel"

    again = await store.record_check_in_photos(["https://img/3.jpg"])
    assert again.id == check_in.id
    assert len(await records.select("daily_checkins")) == 1


# -- chat mutations ------------------------------------------------------------


async def test_add_recommended_product_creates_product(
    records: RecordStore, store: SkincareStore
) -> None:
    item, updated = await store.add_recommended_product(
        "Niacinamide Serum", "Ordinary", category="serum", key_ingredients=["niacinamide"]
    )

    assert updated is False
    assert item.amount_remaining == 100
    [product] = await records.select("products")
    assert product["subcategory"] == "ai-recommended"
    assert product["key_ingredients"] == ["niacinamide"]


async def test_add_recommended_product_reuses_exact_match(
    records: RecordStore, store: SkincareStore
) -> None:
    pid = await _product(records, "Gel", "Acme")
    await _item(records, pid, 20)
    await store.refresh_data()

    item, updated = await store.add_recommended_product("Gel", "Acme", amount_remaining=70)

    assert updated is True
    assert item.product_id == pid
    assert item.amount_remaining == 70
    assert len(store.inventory) == 1
    assert len(await records.select("products")) == 1


async def test_add_recommended_product_category_fallback(
    records: RecordStore, store: SkincareStore
) -> None:
    pid = await _product(records, "Gel Cleanser", "Acme", category="cleanser")

    item, _ = await store.add_recommended_product("Foam Cleanser", "Acme", category="cleanser")

    assert item.product_id == pid


async def test_apply_routine_update(records: RecordStore, store: SkincareStore) -> None:
    routine = await store.apply_routine_update("morning", ["Add vitamin C", "Use SPF 50"])

    assert routine.name == "Morning Routine (Updated)"
    assert [s.instructions for s in routine.steps] == ["Add vitamin C", "Use SPF 50"]
    assert {s.amount for s in routine.steps} == {"As needed"}

    again = await store.apply_routine_update("morning", ["Double cleanse"])
    assert again.id == routine.id
    assert again.name == "Morning Routine (Updated)"
    assert [s.step_order for s in again.steps] == [1, 2, 3]
    assert len(store.routines) == 1


async def test_apply_weekly_routine(records: RecordStore, store: SkincareStore) -> None:
    old = await _routine(records, "Old AM", "morning")
    await store.refresh_data()
    suggestion = WeeklyRoutineSuggestion.model_validate(
        {
            "title": "Calm week",
            "description": "d",
            "reasoning": "r",
            "weeklySchedule": {
                "tuesday": {
                    "morning": {
                        "steps": [
                            {"product_name": "Gel", "product_brand": "Acme", "instructions": "Wash"}
                        ]
                    },
                    "evening": {"steps": ["Moisturize"]},
                },
                "monday": {"morning": {"steps": ["ignored"]}},
            },
        }
    )

    created = await store.apply_weekly_routine(suggestion)

    assert [r.type for r in created] == ["morning", "evening"]
    assert created[0].steps[0].instructions == "Wash"
    assert created[0].steps[0].product.name == "Gel"
    assert [s.instructions for s in created[1].steps] == ["Moisturize"]
    assert (await records.get_record("routines", old))["is_active"] is False
    active = [r for r in store.routines if r.is_active]
    assert len(active) == 2
    [saved] = await records.select("routine_suggestions")
    assert saved["status"] == "approved"


async def test_apply_weekly_routine_rejects_empty_schedule(
    records: RecordStore, store: SkincareStore
) -> None:
    old = await _routine(records)
    await store.refresh_data()
    empty = WeeklyRoutineSuggestion.model_validate(
        {"title": "t", "description": "d", "reasoning": "r", "weeklySchedule": {}}
    )

    with pytest.raises(WriteError):
        await store.apply_weekly_routine(empty)

    assert (await records.get_record("routines", old))["is_active"] is True
