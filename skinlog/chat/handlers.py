"""Action dispatcher — runs a confirmed chat action against the user's data.

One handler per action kind.  ``ActionDispatcher.dispatch`` never raises:
every handler outcome, including unexpected exceptions, comes back as an
``ActionResult`` the chat session can turn into a transcript message.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from skinlog.chat.actions import (
    ActionKind,
    ActionPayload,
    AppointmentAction,
    CabinetAction,
    CheckinAction,
    GoalSuggestion,
    ProductRecommendation,
    RoutineAction,
    RoutineUpdate,
    TreatmentSuggestion,
    WeeklyRoutineSuggestion,
)
from skinlog.chat.tags import mark_segment_done
from skinlog.data.store import APPOINTMENTS
from skinlog.errors import WriteError
from skinlog.events import RefreshSignal

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from skinlog.chat.transcript import Message, TranscriptStore
    from skinlog.data.store import SkincareStore

    PhotoAnalyzer = Callable[[list[str], str | None], Awaitable[str]]

logger = logging.getLogger(__name__)

LOGIN_REQUIRED = "Please log in to use this feature."

_APPOINTMENT_FIELDS = ("treatment_type", "provider", "location", "notes", "status")

_TIME_FORMATS = ("%H:%M", "%H:%M:%S", "%I:%M %p", "%I:%M%p", "%I %p")


@dataclass
class ActionResult:
    """Outcome of one dispatched action."""

    success: bool
    message: str
    data: dict[str, Any] | None = None


# Fields identifying the originating segment, and the flag spliced into it
# once the action has been carried out.
_COMPLETION: dict[ActionKind, tuple[tuple[str, ...], str]] = {
    ActionKind.PRODUCT: (("name", "brand"), "added"),
    ActionKind.CABINET_ACTION: (("action", "product_name", "product_brand"), "added"),
    ActionKind.ROUTINE: (("type", "changes"), "added"),
    ActionKind.TREATMENT: (("type", "reason"), "added"),
    ActionKind.GOAL: (("title",), "added"),
    ActionKind.APPOINTMENT_ACTION: (("action", "treatment_type", "date", "time"), "added"),
    ActionKind.CHECKIN_ACTION: (("photo_urls",), "completed"),
    ActionKind.WEEKLY_ROUTINE: (("title",), "completed"),
}


def combine_date_time(day: str, clock: str) -> str:
    """Combine a ``YYYY-MM-DD`` date and a wall-clock time into one ISO instant.

    Raises:
        ValueError: either part cannot be read.
    """
    parsed_day = datetime.strptime(day.strip(), "%Y-%m-%d").date()
    text = clock.strip().upper()
    for fmt in _TIME_FORMATS:
        try:
            parsed_time = datetime.strptime(text, fmt).time()
        except ValueError:
            continue
        return datetime.combine(parsed_day, parsed_time).isoformat()
    msg = f"Unrecognised time: {clock!r}"
    raise ValueError(msg)


class ActionDispatcher:
    """Routes actions to their handler and reports the outcome.

    After a successful dispatch the process-wide refresh signal fires so
    views holding their own store reference catch up.
    """

    HANDLERS: dict[ActionKind, str] = {
        ActionKind.PRODUCT: "_add_product",
        ActionKind.ROUTINE: "_update_routine",
        ActionKind.TREATMENT: "_add_treatment",
        ActionKind.GOAL: "_create_goal",
        ActionKind.ROUTINE_ACTION: "_complete_routine",
        ActionKind.CABINET_ACTION: "_manage_cabinet",
        ActionKind.APPOINTMENT_ACTION: "_manage_appointment",
        ActionKind.CHECKIN_ACTION: "_add_check_in_photos",
        ActionKind.WEEKLY_ROUTINE: "_approve_weekly_routine",
    }

    def __init__(
        self,
        store: SkincareStore,
        transcripts: TranscriptStore | None = None,
        *,
        signal: RefreshSignal | None = None,
        analyzer: PhotoAnalyzer | None = None,
    ) -> None:
        self._store = store
        self._records = store.records
        self._transcripts = transcripts
        self._signal = signal or RefreshSignal.get()
        self._analyzer = analyzer

    async def dispatch(
        self, action: ActionPayload, *, message: Message | None = None
    ) -> ActionResult:
        """Run *action*. When *message* is given, flag its segment as done."""
        kind = action.kind
        if not self._store.is_authenticated:
            logger.info("Rejected %s action: no signed-in user", kind)
            return ActionResult(success=False, message=LOGIN_REQUIRED)

        handler: Callable[[Any], Awaitable[ActionResult]] = getattr(self, self.HANDLERS[kind])
        logger.info("Dispatching %s action", kind)
        t0 = time.monotonic()
        try:
            result = await handler(action)
        except WriteError as exc:
            logger.warning("%s action failed to save: %s", kind, exc)
            return ActionResult(
                success=False,
                message=f"Sorry, I couldn't save that change ({exc.detail or exc.operation}). "
                "Please try again.",
            )
        except Exception:
            logger.exception("%s action failed in %.2fs", kind, time.monotonic() - t0)
            return ActionResult(
                success=False,
                message="Sorry, something went wrong while handling that. Please try again.",
            )

        elapsed = time.monotonic() - t0
        if not result.success:
            logger.warning("%s action returned failure in %.2fs: %s", kind, elapsed, result.message)
            return result

        logger.info("%s action succeeded in %.2fs", kind, elapsed)
        if message is not None:
            await self._flag_done(action, message)
        await self._signal.emit(str(kind))
        return result

    async def decline(self, action: ActionPayload) -> ActionResult:
        """Record that the user turned a suggestion down."""
        if not self._store.is_authenticated:
            return ActionResult(success=False, message=LOGIN_REQUIRED)
        if not isinstance(action, WeeklyRoutineSuggestion):
            return ActionResult(success=True, message="Suggestion dismissed.")
        try:
            await self._store.record_suggestion(action, "denied")
        except Exception:
            logger.exception("Failed to record declined suggestion %r", action.title)
            return ActionResult(
                success=False, message="Sorry, I couldn't record that. Please try again."
            )
        logger.info("Weekly routine suggestion %r declined", action.title)
        return ActionResult(success=True, message="Routine suggestion declined.")

    async def _flag_done(self, action: ActionPayload, message: Message) -> None:
        completion = _COMPLETION.get(action.kind)
        if completion is None:
            return
        fields, flag = completion
        values = action.model_dump(mode="json")
        match = {name: values[name] for name in fields}
        updated = mark_segment_done(message.content, action.kind, match, flag=flag)
        if updated is None:
            logger.debug("No unflagged %s segment matched in message %s", action.kind, message.id)
            return
        message.content = updated
        if self._transcripts is None:
            return
        try:
            await self._transcripts.update_content(message.id, updated)
        except Exception:
            logger.exception("Failed to persist completion flag on message %s", message.id)

    # -- Handlers --------------------------------------------------------------

    async def _add_product(self, action: ProductRecommendation) -> ActionResult:
        item, updated = await self._store.add_recommended_product(
            action.name,
            action.brand,
            category=action.category,
            description=action.description,
            key_ingredients=action.key_ingredients,
            benefits=action.benefits,
            notes=action.reason,
        )
        verb = "Updated" if updated else "Added"
        return ActionResult(
            success=True,
            message=f"{verb} {action.brand} {action.name} in your collection!",
            data={"inventory_item_id": item.id, "product_id": item.product_id},
        )

    async def _update_routine(self, action: RoutineUpdate) -> ActionResult:
        if not action.changes:
            return ActionResult(success=False, message="There are no routine changes to apply.")
        routine = await self._store.apply_routine_update(action.type, action.changes)
        return ActionResult(
            success=True,
            message=f"Updated your {action.type} routine with {len(action.changes)} change(s).",
            data={"routine_id": routine.id},
        )

    async def _add_treatment(self, action: TreatmentSuggestion) -> ActionResult:
        rec = await self._records.insert(
            APPOINTMENTS,
            {
                "user_id": self._store.user_id,
                "treatment_type": action.type,
                "scheduled_at": None,
                "provider": "",
                "notes": action.reason,
                "frequency": action.frequency,
                "status": "suggested",
            },
        )
        return ActionResult(
            success=True,
            message=f"Added {action.type} to your treatment plan.",
            data={"appointment_id": rec["id"]},
        )

    async def _create_goal(self, action: GoalSuggestion) -> ActionResult:
        goal = await self._store.add_goal(action.title, action.description, action.target_date)
        return ActionResult(
            success=True, message=f"Created goal: {goal.title}", data={"goal_id": goal.id}
        )

    async def _complete_routine(self, action: RoutineAction) -> ActionResult:
        routine = self._store.active_routine(action.type)
        if routine is None:
            return ActionResult(
                success=False, message=f"I couldn't find an active {action.type} routine."
            )
        check_in = await self._store.mark_routine_complete(routine.id, routine.name)
        return ActionResult(
            success=True,
            message=f"Marked your {action.type} routine as complete!",
            data={"check_in_id": check_in.id},
        )

    async def _manage_cabinet(self, action: CabinetAction) -> ActionResult:
        label = f"{action.product_brand} {action.product_name}"
        if action.action == "remove":
            name = action.product_name.lower()
            brand = action.product_brand.lower()
            item = next(
                (
                    i
                    for i in self._store.inventory
                    if i.product is not None
                    and i.product.name.lower() == name
                    and i.product.brand.lower() == brand
                ),
                None,
            )
            if item is None:
                return ActionResult(
                    success=False, message=f"I couldn't find {label} in your cabinet."
                )
            if not await self._store.delete_product_from_inventory(item.id):
                return ActionResult(
                    success=False, message=f"I couldn't find {label} in your cabinet."
                )
            return ActionResult(
                success=True,
                message=f"Removed {label} from your cabinet.",
                data={"inventory_item_id": item.id},
            )

        item, updated = await self._store.add_recommended_product(
            action.product_name,
            action.product_brand,
            category=action.category or "",
            amount_remaining=action.amount_remaining,
            notes=action.reason,
        )
        verb = "Updated" if updated else "Added"
        preposition = "in" if updated else "to"
        return ActionResult(
            success=True,
            message=f"{verb} {label} {preposition} your cabinet.",
            data={"inventory_item_id": item.id, "amount_remaining": item.amount_remaining},
        )

    async def _manage_appointment(self, action: AppointmentAction) -> ActionResult:
        if action.action == "add":
            try:
                scheduled_at = combine_date_time(action.date, action.time)
            except ValueError:
                return ActionResult(
                    success=False,
                    message=f"I couldn't read the date and time {action.date} {action.time}.",
                )
            rec = await self._records.insert(
                APPOINTMENTS,
                {
                    "user_id": self._store.user_id,
                    "treatment_type": action.treatment_type,
                    "scheduled_at": scheduled_at,
                    "provider": action.provider,
                    "location": action.location or "",
                    "notes": action.notes or "",
                    "status": "scheduled",
                },
            )
            return ActionResult(
                success=True,
                message=f"Scheduled {action.treatment_type} with {action.provider}.",
                data={"appointment_id": rec["id"], "scheduled_at": scheduled_at},
            )

        if not action.appointment_id:
            return ActionResult(
                success=False, message=f"Which appointment should I {action.action}?"
            )
        existing = await self._records.get_record(APPOINTMENTS, action.appointment_id)
        if existing is None or existing.get("user_id") != self._store.user_id:
            return ActionResult(success=False, message="I couldn't find that appointment.")

        if action.action == "remove":
            await self._records.delete(APPOINTMENTS, action.appointment_id)
            return ActionResult(
                success=True,
                message=f"Removed your {existing.get('treatment_type', 'appointment')} appointment.",
                data={"appointment_id": action.appointment_id},
            )

        changes = dict(action.changes or {})
        updates: dict[str, Any] = {k: changes[k] for k in _APPOINTMENT_FIELDS if k in changes}
        if "date" in changes or "time" in changes:
            try:
                updates["scheduled_at"] = combine_date_time(
                    changes.get("date", action.date), changes.get("time", action.time)
                )
            except ValueError:
                return ActionResult(success=False, message="I couldn't read the new date and time.")
        if not updates:
            return ActionResult(success=False, message="There is nothing to change.")
        await self._records.update(APPOINTMENTS, action.appointment_id, updates)
        return ActionResult(
            success=True,
            message="Updated your appointment.",
            data={"appointment_id": action.appointment_id, **updates},
        )

    async def _add_check_in_photos(self, action: CheckinAction) -> ActionResult:
        if not action.photo_urls:
            return ActionResult(success=False, message="There are no photos to add.")
        check_in = await self._store.record_check_in_photos(
            action.photo_urls, lighting=action.lighting, notes=action.notes
        )
        data: dict[str, Any] = {"check_in_id": check_in.id, "photo_count": len(action.photo_urls)}
        if self._analyzer is not None:
            try:
                data["analysis"] = await self._analyzer(action.photo_urls, action.notes)
            except Exception:
                logger.exception("Photo analysis failed for check-in %s", check_in.id)
        return ActionResult(
            success=True,
            message=f"Added {len(action.photo_urls)} photo(s) to today's check-in.",
            data=data,
        )

    async def _approve_weekly_routine(self, action: WeeklyRoutineSuggestion) -> ActionResult:
        if action.first_day() is None:
            return ActionResult(success=False, message="That routine suggestion has no schedule.")
        created = await self._store.apply_weekly_routine(action)
        return ActionResult(
            success=True,
            message=f"Approved {action.title}! Your new routines are ready.",
            data={"routine_ids": [r.id for r in created]},
        )


_unhandled = set(ActionKind) - set(ActionDispatcher.HANDLERS)
if _unhandled:
    msg = f"No handler for action kind(s): {sorted(_unhandled)}"
    raise RuntimeError(msg)
