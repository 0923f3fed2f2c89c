"""Domain entities cached by the shared data store.

Records come back from the backend as plain dicts with the column names the
advisor and the forms use (``morning_routine_completed``,
``skin_condition_rating``, ...).  Each entity knows how to build itself from
such a record.  Entities are frozen; the store replaces them wholesale.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Product:
    """A catalog product, joined onto inventory rows and routine steps."""

    id: str
    name: str
    brand: str
    category: str = ""
    description: str = ""

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> Product:
        return cls(
            id=rec["id"],
            name=rec.get("name") or "",
            brand=rec.get("brand") or "",
            category=rec.get("category") or "",
            description=rec.get("description") or "",
        )


@dataclass(frozen=True)
class RoutineStep:
    step_order: int
    instructions: str
    product_id: str | None
    amount: str = ""
    id: str = ""
    routine_id: str = ""
    product: Product | None = None

    @classmethod
    def from_record(
        cls, rec: dict[str, Any], product: Product | None = None
    ) -> RoutineStep:
        return cls(
            step_order=int(rec.get("step_order") or 0),
            instructions=rec.get("instructions") or "",
            product_id=rec.get("product_id"),
            amount=rec.get("amount") or "",
            id=rec.get("id", ""),
            routine_id=rec.get("routine_id", ""),
            product=product,
        )


@dataclass(frozen=True)
class Routine:
    """A morning or evening routine, optionally pinned to a weekday."""

    id: str
    name: str
    type: str
    is_active: bool = True
    day_of_week: int | None = None
    steps: tuple[RoutineStep, ...] = ()
    created_at: str = ""

    @property
    def is_evening(self) -> bool:
        """True when either the type or the name mentions "evening"."""
        return "evening" in (self.type or "").lower() or "evening" in (self.name or "").lower()

    @classmethod
    def from_record(
        cls, rec: dict[str, Any], steps: tuple[RoutineStep, ...] = ()
    ) -> Routine:
        return cls(
            id=rec["id"],
            name=rec.get("name") or "",
            type=rec.get("type") or "",
            is_active=bool(rec.get("is_active", True)),
            day_of_week=rec.get("day_of_week"),
            steps=tuple(sorted(steps, key=lambda s: s.step_order)),
            created_at=rec.get("created_at", ""),
        )


@dataclass(frozen=True)
class InventoryItem:
    """One product in the user's cabinet."""

    id: str
    product_id: str
    amount_remaining: int
    purchase_date: str | None = None
    expiry_date: str | None = None
    notes: str = ""
    product: Product | None = None
    created_at: str = ""

    @classmethod
    def from_record(
        cls, rec: dict[str, Any], product: Product | None = None
    ) -> InventoryItem:
        return cls(
            id=rec["id"],
            product_id=rec.get("product_id") or "",
            amount_remaining=int(rec.get("amount_remaining") or 0),
            purchase_date=rec.get("purchase_date"),
            expiry_date=rec.get("expiry_date"),
            notes=rec.get("notes") or "",
            product=product,
            created_at=rec.get("created_at", ""),
        )


@dataclass(frozen=True)
class CheckIn:
    """A daily check-in.

    ``morning_completed`` / ``evening_completed`` are tri-state: ``None``
    means "not tracked yet", which is different from ``False`` ("tracked
    and not done").
    """

    id: str
    date: str
    morning_completed: bool | None = None
    evening_completed: bool | None = None
    skin_rating: int | None = None
    notes: str = ""

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> CheckIn:
        return cls(
            id=rec["id"],
            date=rec.get("date") or "",
            morning_completed=rec.get("morning_routine_completed"),
            evening_completed=rec.get("evening_routine_completed"),
            skin_rating=rec.get("skin_condition_rating"),
            notes=rec.get("notes") or "",
        )


@dataclass(frozen=True)
class Goal:
    id: str
    title: str
    description: str
    target_date: str
    status: str = "active"

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> Goal:
        return cls(
            id=rec["id"],
            title=rec.get("title") or "",
            description=rec.get("description") or "",
            target_date=rec.get("target_date") or "",
            status=rec.get("status") or "active",
        )


@dataclass(frozen=True)
class Appointment:
    """A treatment appointment; ``scheduled_at`` is one ISO 8601 instant."""

    id: str
    treatment_type: str
    scheduled_at: str | None = None
    provider: str = ""
    location: str = ""
    notes: str = ""
    status: str = "scheduled"

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> Appointment:
        return cls(
            id=rec["id"],
            treatment_type=rec.get("treatment_type") or "",
            scheduled_at=rec.get("scheduled_at"),
            provider=rec.get("provider") or "",
            location=rec.get("location") or "",
            notes=rec.get("notes") or "",
            status=rec.get("status") or "scheduled",
        )


@dataclass(frozen=True)
class DataSnapshot:
    """Read-only view of everything the shared store caches."""

    routines: tuple[Routine, ...] = ()
    inventory: tuple[InventoryItem, ...] = ()
    check_ins: tuple[CheckIn, ...] = ()
    goals: tuple[Goal, ...] = ()
    appointments: tuple[Appointment, ...] = ()
    loaded: bool = field(default=False, compare=False)
