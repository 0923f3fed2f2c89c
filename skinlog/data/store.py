"""SkincareStore — the shared, subscriber-notified cache of the user's data.

Every surface (chat, routine tab, cabinet tab, check-ins) reads the same
store through its snapshot properties and writes only through the mutation
methods below, so the notify step is never bypassed.

Mutations update the cache first, notify subscribers, then write through to
the record backend.  A failed write raises ``WriteError``; when
``settings.rollback_failed_writes`` is on, the collections the optimistic
change replaced are restored (and subscribers notified again) before
raising, unless a refresh or another mutation has replaced them since.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from skinlog.config import settings
from skinlog.data.models import (
    Appointment,
    CheckIn,
    DataSnapshot,
    Goal,
    InventoryItem,
    Product,
    Routine,
    RoutineStep,
)
from skinlog.errors import WriteError
from skinlog.events import RefreshSignal

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from skinlog.chat.actions import WeeklyRoutineSuggestion
    from skinlog.db import RecordStore

logger = logging.getLogger(__name__)

ROUTINES = "routines"
ROUTINE_STEPS = "routine_steps"
INVENTORY = "user_inventory"
PRODUCTS = "products"
CHECK_INS = "daily_checkins"
GOALS = "goals"
PHOTOS = "progress_photos"
SUGGESTIONS = "routine_suggestions"
APPOINTMENTS = "appointments"

_COLLECTIONS = ("_routines", "_inventory", "_check_ins", "_goals")

USAGE_STEP = 10
RESTOCK_STEP = 20
FULL_AMOUNT = 100
DEFAULT_SKIN_RATING = 3


def _utc_today() -> date:
    return datetime.now(UTC).date()


def _clamp_amount(value: int) -> int:
    return max(0, min(FULL_AMOUNT, value))


class SkincareStore:
    """Single in-memory cache of routines, inventory, check-ins and goals.

    *user_id* is None when nobody is signed in; reads then return empty
    snapshots and mutations are refused.  *today* is injectable so tests
    can pin the date used for check-ins.
    """

    def __init__(
        self,
        records: RecordStore,
        user_id: str | None,
        *,
        today: Callable[[], date] | None = None,
        rollback_on_failure: bool | None = None,
    ) -> None:
        self._records = records
        self._user_id = user_id
        self._today = today or _utc_today
        self._rollback = (
            settings.rollback_failed_writes if rollback_on_failure is None else rollback_on_failure
        )
        self._routines: list[Routine] = []
        self._inventory: list[InventoryItem] = []
        self._check_ins: list[CheckIn] = []
        self._goals: list[Goal] = []
        self._appointments: list[Appointment] = []
        self._loaded = False
        self._subscribers: list[Callable[[], None]] = []
        self._disconnect_refresh: Callable[[], None] | None = None

    # -- Reads -----------------------------------------------------------------

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def is_authenticated(self) -> bool:
        return bool(self._user_id)

    @property
    def records(self) -> RecordStore:
        return self._records

    @property
    def routines(self) -> tuple[Routine, ...]:
        return tuple(self._routines)

    @property
    def inventory(self) -> tuple[InventoryItem, ...]:
        return tuple(self._inventory)

    @property
    def check_ins(self) -> tuple[CheckIn, ...]:
        return tuple(self._check_ins)

    @property
    def goals(self) -> tuple[Goal, ...]:
        return tuple(self._goals)

    @property
    def appointments(self) -> tuple[Appointment, ...]:
        return tuple(self._appointments)

    @property
    def loaded(self) -> bool:
        return self._loaded

    def snapshot(self) -> DataSnapshot:
        return DataSnapshot(
            routines=self.routines,
            inventory=self.inventory,
            check_ins=self.check_ins,
            goals=self.goals,
            appointments=self.appointments,
            loaded=self._loaded,
        )

    def today_iso(self) -> str:
        return self._today().isoformat()

    def todays_check_in(self) -> CheckIn | None:
        today = self.today_iso()
        return next((c for c in self._check_ins if c.date == today), None)

    def active_routine(self, routine_type: str) -> Routine | None:
        """Return the first active routine whose type matches *routine_type*."""
        wanted = routine_type.lower()
        return next(
            (r for r in self._routines if r.is_active and r.type.lower() == wanted), None
        )

    # -- Subscriptions ---------------------------------------------------------

    def on_data_change(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Subscribe to cache changes. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception:
                logger.exception("Data change subscriber failed")

    def listen_for_refresh(self, signal: RefreshSignal | None = None) -> Callable[[], None]:
        """Reload whenever the process-wide refresh signal fires."""
        if self._disconnect_refresh is not None:
            return self._disconnect_refresh
        disconnect = (signal or RefreshSignal.get()).connect(self.refresh_data)

        def stop() -> None:
            disconnect()
            self._disconnect_refresh = None

        self._disconnect_refresh = stop
        return stop

    def close(self) -> None:
        if self._disconnect_refresh is not None:
            self._disconnect_refresh()
        self._subscribers.clear()

    # -- Refresh ---------------------------------------------------------------

    async def refresh_data(self) -> None:
        """Reload everything from the backend and replace the cache in one go."""
        if not self._user_id:
            logger.info("No signed-in user, skipping data refresh")
            return

        routines, inventory, check_ins, goals, appointments = await asyncio.gather(
            self._fetch_routines(),
            self._fetch_inventory(),
            self._fetch_check_ins(),
            self._fetch_goals(),
            self._fetch_appointments(),
        )
        self._routines = routines
        self._inventory = inventory
        self._check_ins = check_ins
        self._goals = goals
        self._appointments = appointments
        self._loaded = True
        logger.debug(
            "Refreshed data: %d routines, %d inventory, %d check-ins, %d goals, %d appointments",
            len(routines), len(inventory), len(check_ins), len(goals), len(appointments),
        )
        self._notify()

    async def _load_products(self, product_ids: set[str]) -> dict[str, Product]:
        ids = sorted(pid for pid in product_ids if pid)
        recs = await asyncio.gather(*(self._records.get_record(PRODUCTS, pid) for pid in ids))
        return {rec["id"]: Product.from_record(rec) for rec in recs if rec is not None}

    async def _build_routine(self, rec: dict[str, Any]) -> Routine:
        step_recs = await self._records.select(
            ROUTINE_STEPS, where={"routine_id": rec["id"]}, order_by="step_order"
        )
        products = await self._load_products({s.get("product_id") for s in step_recs})
        steps = tuple(
            RoutineStep.from_record(s, products.get(s.get("product_id") or ""))
            for s in step_recs
        )
        return Routine.from_record(rec, steps)

    async def _fetch_routines(self) -> list[Routine]:
        recs = await self._records.select(
            ROUTINES, where={"user_id": self._user_id}, order_by="created_at", descending=True
        )
        return list(await asyncio.gather(*(self._build_routine(r) for r in recs)))

    async def _fetch_inventory(self) -> list[InventoryItem]:
        recs = await self._records.select(
            INVENTORY, where={"user_id": self._user_id}, order_by="created_at", descending=True
        )
        products = await self._load_products({r.get("product_id") for r in recs})
        return [InventoryItem.from_record(r, products.get(r.get("product_id") or "")) for r in recs]

    async def _fetch_check_ins(self) -> list[CheckIn]:
        recs = await self._records.select(
            CHECK_INS,
            where={"user_id": self._user_id},
            order_by="date",
            descending=True,
            limit=settings.check_in_history_limit,
        )
        return [CheckIn.from_record(r) for r in recs]

    async def _fetch_goals(self) -> list[Goal]:
        recs = await self._records.select(
            GOALS,
            where={"user_id": self._user_id, "status": "active"},
            order_by="created_at",
            descending=True,
        )
        return [Goal.from_record(r) for r in recs]

    async def _fetch_appointments(self) -> list[Appointment]:
        """Suggested treatments and appointments from today on, soonest first."""
        recs = await self._records.select(
            APPOINTMENTS, where={"user_id": self._user_id}, order_by="scheduled_at"
        )
        today = self.today_iso()
        return [
            Appointment.from_record(r)
            for r in recs
            if r.get("status") != "cancelled"
            and (not r.get("scheduled_at") or r["scheduled_at"][:10] >= today)
        ]

    # -- Write-through plumbing ------------------------------------------------

    def _require_user(self, operation: str) -> str:
        if not self._user_id:
            raise WriteError(operation, "not signed in")
        return self._user_id

    def _capture(self) -> dict[str, list]:
        return {name: getattr(self, name) for name in _COLLECTIONS}

    def _rollback_to(self, touched: dict[str, tuple[list, list]], operation: str) -> None:
        """Undo an optimistic change to the collections in *touched*.

        *touched* maps each collection the change replaced to its
        ``(before, applied)`` lists.  A collection replaced again since
        (by a refresh or another mutation) holds newer data and is kept.
        """
        if not touched:
            return
        if not self._rollback:
            logger.warning("%s failed; cache left ahead of the backend", operation)
            return
        restored = False
        for name, (before, applied) in touched.items():
            if getattr(self, name) is applied:
                setattr(self, name, before)
                restored = True
            else:
                logger.debug("%s: %s changed since the write began, not rolled back", operation, name)
        if restored:
            self._notify()

    async def _write_through(
        self,
        operation: str,
        write: Callable[[], Awaitable[Any]],
        optimistic: Callable[[], None] | None = None,
    ) -> Any:
        """Apply *optimistic*, notify, then await *write*.

        Any exception from *write* becomes a ``WriteError``; the collections
        *optimistic* replaced are rolled back first when rollback is enabled.
        """
        touched: dict[str, tuple[list, list]] = {}
        if optimistic is not None:
            before = self._capture()
            optimistic()
            touched = {
                name: (old, getattr(self, name))
                for name, old in before.items()
                if getattr(self, name) is not old
            }
            self._notify()
        try:
            return await write()
        except WriteError:
            self._rollback_to(touched, operation)
            raise
        except Exception as exc:
            logger.exception("%s failed", operation)
            self._rollback_to(touched, operation)
            raise WriteError(operation, str(exc)) from exc

    @staticmethod
    def _replace_by_id(items: list, item_id: str, updated) -> list:
        return [updated if getattr(i, "id", None) == item_id else i for i in items]

    # -- Routines --------------------------------------------------------------

    async def update_routine(self, routine_id: str, updates: dict[str, Any]) -> Routine:
        """Apply *updates* to a routine's own fields (not its steps)."""
        self._require_user("update_routine")
        allowed = {f.name for f in dataclasses.fields(Routine)} - {"id", "steps", "created_at"}

        def apply() -> None:
            self._routines = [
                dataclasses.replace(r, **{k: v for k, v in updates.items() if k in allowed})
                if r.id == routine_id
                else r
                for r in self._routines
            ]

        async def write() -> Routine:
            rec = await self._records.update(ROUTINES, routine_id, updates)
            if rec is None:
                raise WriteError("update_routine", f"routine {routine_id} not found")
            return next((r for r in self._routines if r.id == routine_id), None) or (
                await self._build_routine(rec)
            )

        return await self._write_through("update_routine", write, apply)

    async def mark_routine_complete(self, routine_id: str, routine_name: str) -> CheckIn:
        """Tick today's morning or evening flag for the given routine.

        The routine counts as an evening routine when its type or name
        contains "evening"; otherwise it is a morning routine.  An existing
        check-in keeps its other flag; a new one leaves it as None.
        """
        user_id = self._require_user("mark_routine_complete")
        routine = next((r for r in self._routines if r.id == routine_id), None)
        is_evening = (
            routine.is_evening if routine is not None else "evening" in routine_name.lower()
        )
        flag = "evening_routine_completed" if is_evening else "morning_routine_completed"
        today = self.today_iso()
        cached = self.todays_check_in()

        def apply() -> None:
            attr = "evening_completed" if is_evening else "morning_completed"
            updated = dataclasses.replace(cached, **{attr: True})
            self._check_ins = self._replace_by_id(self._check_ins, cached.id, updated)

        async def write() -> CheckIn:
            existing = await self._records.select_one(
                CHECK_INS, where={"user_id": user_id, "date": today}
            )
            if existing is not None:
                rec = await self._records.update(CHECK_INS, existing["id"], {flag: True})
                if rec is None:
                    raise WriteError("mark_routine_complete", "check-in vanished")
            else:
                rec = await self._records.insert(
                    CHECK_INS,
                    {
                        "user_id": user_id,
                        "date": today,
                        "morning_routine_completed": None,
                        "evening_routine_completed": None,
                        flag: True,
                        "skin_condition_rating": DEFAULT_SKIN_RATING,
                        "notes": f"Completed {routine_name} routine",
                    },
                )
            return CheckIn.from_record(rec)

        check_in = await self._write_through(
            "mark_routine_complete", write, apply if cached is not None else None
        )
        self._put_check_in(check_in)
        self._notify()
        logger.info("Marked %s routine complete for %s", "evening" if is_evening else "morning", today)
        return check_in

    def _put_check_in(self, check_in: CheckIn) -> None:
        others = [c for c in self._check_ins if c.id != check_in.id and c.date != check_in.date]
        self._check_ins = sorted([check_in, *others], key=lambda c: c.date, reverse=True)

    async def apply_routine_update(self, routine_type: str, changes: list[str]) -> Routine:
        """Append *changes* as steps on the active routine of *routine_type*.

        Creates ``"<Type> Routine"`` when the user has no active routine of
        that type.  The routine name gains an ``(Updated)`` suffix once.
        """
        user_id = self._require_user("apply_routine_update")

        async def write() -> Routine:
            rec = await self._records.select_one(
                ROUTINES, where={"user_id": user_id, "type": routine_type, "is_active": True}
            )
            if rec is None:
                rec = await self._records.insert(
                    ROUTINES,
                    {
                        "user_id": user_id,
                        "name": f"{routine_type.capitalize()} Routine",
                        "type": routine_type,
                        "is_active": True,
                        "day_of_week": None,
                    },
                )
            existing = await self._records.select(ROUTINE_STEPS, where={"routine_id": rec["id"]})
            next_order = max((int(s.get("step_order") or 0) for s in existing), default=0) + 1
            await self._records.insert_many(
                ROUTINE_STEPS,
                [
                    {
                        "routine_id": rec["id"],
                        "step_order": next_order + offset,
                        "instructions": change,
                        "product_id": None,
                        "amount": "As needed",
                    }
                    for offset, change in enumerate(changes)
                ],
            )
            if not rec.get("name", "").endswith("(Updated)"):
                rec = await self._records.update(
                    ROUTINES, rec["id"], {"name": f"{rec.get('name', '')} (Updated)"}
                ) or rec
            return await self._build_routine(rec)

        routine = await self._write_through("apply_routine_update", write)
        self._routines = [routine, *(r for r in self._routines if r.id != routine.id)]
        self._notify()
        return routine

    async def apply_weekly_routine(self, suggestion: WeeklyRoutineSuggestion) -> list[Routine]:
        """Replace the user's routines with a suggested week.

        All existing routines are deactivated and one morning plus one
        evening routine are created from the first day of the schedule.
        Per-day variation beyond that first day is not persisted.
        """
        user_id = self._require_user("apply_weekly_routine")
        first_day = suggestion.first_day()
        if first_day is None:
            raise WriteError("apply_weekly_routine", "schedule has no days")

        def apply() -> None:
            self._routines = [dataclasses.replace(r, is_active=False) for r in self._routines]

        async def write() -> list[Routine]:
            await self.record_suggestion(suggestion, "approved")
            await self._records.update_where(
                ROUTINES, {"user_id": user_id}, {"is_active": False}
            )
            created: list[Routine] = []
            for period in ("morning", "evening"):
                rec = await self._records.insert(
                    ROUTINES,
                    {
                        "user_id": user_id,
                        "name": f"{period.capitalize()} Routine",
                        "type": period,
                        "is_active": True,
                        "day_of_week": None,
                    },
                )
                step_rows = []
                for order, step in enumerate(suggestion.steps_for(first_day, period), start=1):
                    product_id = None
                    if step.product_name and step.product_brand:
                        product_id, _ = await self._resolve_product(
                            step.product_name,
                            step.product_brand,
                            category=step.category,
                            description=f"{step.product_brand} {step.product_name}",
                            category_fallback=False,
                        )
                    step_rows.append(
                        {
                            "routine_id": rec["id"],
                            "step_order": order,
                            "instructions": step.instructions,
                            "product_id": product_id,
                            "amount": "As directed",
                        }
                    )
                await self._records.insert_many(ROUTINE_STEPS, step_rows)
                created.append(await self._build_routine(rec))
            return created

        created = await self._write_through("apply_weekly_routine", write, apply)
        self._routines = [*created, *(r for r in self._routines if r.id not in {c.id for c in created})]
        self._notify()
        logger.info("Applied weekly routine %r from %s", suggestion.title, first_day)
        return created

    async def record_suggestion(self, suggestion: WeeklyRoutineSuggestion, status: str) -> dict[str, Any]:
        """Store a weekly suggestion with its approval *status*."""
        user_id = self._require_user("record_suggestion")
        stamp = datetime.now(UTC).isoformat()
        return await self._records.upsert(
            SUGGESTIONS,
            {
                "user_id": user_id,
                "title": suggestion.title,
                "description": suggestion.description,
                "reasoning": suggestion.reasoning,
                "weekly_schedule": suggestion.weekly_schedule,
                "status": status,
                f"{status}_at": stamp,
            },
            on_conflict=("user_id", "title"),
        )

    # -- Inventory -------------------------------------------------------------

    async def update_inventory_item(self, item_id: str, updates: dict[str, Any]) -> InventoryItem:
        self._require_user("update_inventory_item")
        allowed = {"amount_remaining", "purchase_date", "expiry_date", "notes"}
        changes = {k: v for k, v in updates.items() if k in allowed}

        def apply() -> None:
            self._inventory = [
                dataclasses.replace(i, **changes) if i.id == item_id else i
                for i in self._inventory
            ]

        async def write() -> InventoryItem:
            rec = await self._records.update(INVENTORY, item_id, updates)
            if rec is None:
                raise WriteError("update_inventory_item", f"item {item_id} not found")
            return next((i for i in self._inventory if i.id == item_id), None) or (
                InventoryItem.from_record(rec)
            )

        return await self._write_through("update_inventory_item", write, apply)

    async def add_product_to_inventory(self, product_id: str, notes: str = "") -> InventoryItem:
        """Add a product to the cabinet, or top up one the user already owns."""
        user_id = self._require_user("add_product_to_inventory")
        owned = next((i for i in self._inventory if i.product_id == product_id), None)
        if owned is not None:
            return await self.update_inventory_item(
                owned.id,
                {
                    "amount_remaining": _clamp_amount(owned.amount_remaining + RESTOCK_STEP),
                    "notes": notes or owned.notes,
                },
            )

        async def write() -> InventoryItem:
            rec = await self._records.insert(
                INVENTORY,
                {
                    "user_id": user_id,
                    "product_id": product_id,
                    "amount_remaining": FULL_AMOUNT,
                    "purchase_date": self.today_iso(),
                    "notes": notes,
                },
            )
            products = await self._load_products({product_id})
            return InventoryItem.from_record(rec, products.get(product_id))

        item = await self._write_through("add_product_to_inventory", write)
        self._inventory = [item, *self._inventory]
        self._notify()
        return item

    async def mark_product_as_used(self, item_id: str, current_amount: int) -> InventoryItem:
        return await self.update_inventory_item(
            item_id, {"amount_remaining": max(0, current_amount - USAGE_STEP)}
        )

    async def delete_product_from_inventory(self, item_id: str) -> bool:
        """Remove a cabinet item. Returns False if the backend had no such row."""
        self._require_user("delete_product_from_inventory")

        def apply() -> None:
            self._inventory = [i for i in self._inventory if i.id != item_id]

        return await self._write_through(
            "delete_product_from_inventory",
            lambda: self._records.delete(INVENTORY, item_id),
            apply,
        )

    async def _resolve_product(
        self,
        name: str,
        brand: str,
        *,
        category: str = "",
        description: str = "",
        key_ingredients: list[str] | None = None,
        benefits: list[str] | None = None,
        category_fallback: bool = True,
    ) -> tuple[str, bool]:
        """Find a catalog product for *name*/*brand*, creating it if needed.

        Returns ``(product_id, created)``.
        """
        exact = await self._records.select_one(PRODUCTS, where={"name": name, "brand": brand})
        if exact is not None:
            return exact["id"], False
        if category_fallback and category:
            similar = await self._records.select_one(
                PRODUCTS, where={"brand": brand, "category": category}
            )
            if similar is not None:
                return similar["id"], False
        rec = await self._records.insert(
            PRODUCTS,
            {
                "name": name,
                "brand": brand,
                "category": category or "skincare",
                "subcategory": "ai-recommended",
                "description": description or f"{brand} {name}",
                "key_ingredients": key_ingredients or [],
                "benefits": benefits or [],
            },
        )
        logger.info("Created product %s / %s", brand, name)
        return rec["id"], True

    async def add_recommended_product(
        self,
        name: str,
        brand: str,
        *,
        category: str = "",
        description: str = "",
        key_ingredients: list[str] | None = None,
        benefits: list[str] | None = None,
        amount_remaining: int | None = None,
        notes: str = "",
    ) -> tuple[InventoryItem, bool]:
        """Put a recommended product in the cabinet.

        The inventory row is keyed on ``(user_id, product_id)``: an owned
        product is reset to *amount_remaining*, otherwise a row is created.
        Returns ``(item, updated_existing)``.
        """
        user_id = self._require_user("add_recommended_product")
        amount = _clamp_amount(
            settings.default_amount_remaining if amount_remaining is None else amount_remaining
        )

        async def write() -> tuple[InventoryItem, bool]:
            product_id, _ = await self._resolve_product(
                name,
                brand,
                category=category,
                description=description,
                key_ingredients=key_ingredients,
                benefits=benefits,
            )
            existing = await self._records.select_one(
                INVENTORY, where={"user_id": user_id, "product_id": product_id}
            )
            if existing is not None:
                rec = await self._records.update(
                    INVENTORY,
                    existing["id"],
                    {"amount_remaining": amount, "notes": notes or existing.get("notes", "")},
                ) or existing
            else:
                rec = await self._records.insert(
                    INVENTORY,
                    {
                        "user_id": user_id,
                        "product_id": product_id,
                        "amount_remaining": amount,
                        "purchase_date": self.today_iso(),
                        "notes": notes,
                    },
                )
            products = await self._load_products({product_id})
            return InventoryItem.from_record(rec, products.get(product_id)), existing is not None

        item, updated = await self._write_through("add_recommended_product", write)
        self._inventory = [item, *(i for i in self._inventory if i.id != item.id)]
        self._notify()
        return item, updated

    # -- Check-ins & goals -----------------------------------------------------

    async def add_check_in(self, fields: dict[str, Any]) -> CheckIn:
        """Insert a check-in record (``date`` defaults to today)."""
        user_id = self._require_user("add_check_in")
        record = {"date": self.today_iso(), **fields, "user_id": user_id}

        async def write() -> CheckIn:
            return CheckIn.from_record(await self._records.insert(CHECK_INS, record))

        check_in = await self._write_through("add_check_in", write)
        self._put_check_in(check_in)
        self._notify()
        return check_in

    async def record_check_in_photos(
        self, photo_urls: list[str], *, lighting: str = "natural", notes: str | None = None
    ) -> CheckIn:
        """Attach photos to today's check-in, creating the check-in if needed."""
        user_id = self._require_user("record_check_in_photos")
        today = self.today_iso()

        async def write() -> CheckIn:
            existing = await self._records.select_one(
                CHECK_INS, where={"user_id": user_id, "date": today}
            )
            if existing is None:
                rec = await self._records.insert(
                    CHECK_INS,
                    {
                        "user_id": user_id,
                        "date": today,
                        "morning_routine_completed": None,
                        "evening_routine_completed": None,
                        "notes": notes or "",
                    },
                )
            elif notes:
                rec = await self._records.update(CHECK_INS, existing["id"], {"notes": notes}) or existing
            else:
                rec = existing
            await self._records.insert_many(
                PHOTOS,
                [
                    {
                        "user_id": user_id,
                        "checkin_id": rec["id"],
                        "photo_url": url,
                        "lighting_condition": lighting or "natural",
                    }
                    for url in photo_urls
                ],
            )
            return CheckIn.from_record(rec)

        check_in = await self._write_through("record_check_in_photos", write)
        self._put_check_in(check_in)
        self._notify()
        return check_in

    async def add_goal(
        self, title: str, description: str, target_date: str, status: str = "active"
    ) -> Goal:
        user_id = self._require_user("add_goal")

        async def write() -> Goal:
            rec = await self._records.insert(
                GOALS,
                {
                    "user_id": user_id,
                    "title": title,
                    "description": description,
                    "target_date": target_date,
                    "status": status,
                },
            )
            return Goal.from_record(rec)

        goal = await self._write_through("add_goal", write)
        if goal.status == "active":
            self._goals = [goal, *self._goals]
            self._notify()
        return goal
