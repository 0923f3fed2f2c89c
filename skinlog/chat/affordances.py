"""Affordances — the confirmable buttons shown under an advisor reply.

A reply is re-parsed on every render, so everything here is derived from
the parse result plus three sources of completion state:

- flags spliced into the stored message (``added`` / ``completed``);
- today's check-in, for routine completion;
- a short-lived per-button flash, for cabinet actions.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from skinlog.chat.actions import ActionKind, CabinetAction, RoutineAction
from skinlog.config import settings

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from skinlog.chat.actions import ActionPayload
    from skinlog.chat.tags import ParsedSegment, ParseResult
    from skinlog.data.models import CheckIn

logger = logging.getLogger(__name__)


class AffordanceState(StrEnum):
    IDLE = "idle"
    CONFIRMING = "confirming"
    DONE = "done"


@dataclass(frozen=True)
class Affordance:
    key: str
    kind: ActionKind
    label: str
    state: AffordanceState
    disabled: bool
    action: ActionPayload


class FlashTracker:
    """Per-button ``idle -> confirming -> done -> idle`` state machine.

    ``done`` lasts *delay* seconds and then falls back to ``idle``.  The
    clock is injectable so tests can move time forward by hand.
    """

    def __init__(
        self, delay: float | None = None, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._delay = settings.cabinet_flash_seconds if delay is None else delay
        self._clock = clock
        self._states: dict[str, AffordanceState] = {}
        self._deadlines: dict[str, float] = {}

    def state(self, key: str) -> AffordanceState:
        current = self._states.get(key, AffordanceState.IDLE)
        if current is AffordanceState.DONE and self._clock() >= self._deadlines[key]:
            self.cancel(key)
            return AffordanceState.IDLE
        return current

    def begin(self, key: str) -> bool:
        """Enter ``confirming``. False if the button is not idle."""
        if self.state(key) is not AffordanceState.IDLE:
            logger.debug("Ignoring repeat confirmation for %s", key)
            return False
        self._states[key] = AffordanceState.CONFIRMING
        return True

    def succeed(self, key: str) -> None:
        if self.state(key) is not AffordanceState.CONFIRMING:
            return
        self._states[key] = AffordanceState.DONE
        self._deadlines[key] = self._clock() + self._delay

    def fail(self, key: str) -> None:
        if self.state(key) is AffordanceState.CONFIRMING:
            self.cancel(key)

    def cancel(self, key: str) -> None:
        """Drop any pending state, including a running ``done`` deadline."""
        self._states.pop(key, None)
        self._deadlines.pop(key, None)

    def expires_in(self, key: str) -> float | None:
        """Seconds left on the ``done`` flash, or None when not flashing."""
        if self.state(key) is not AffordanceState.DONE:
            return None
        return max(0.0, self._deadlines[key] - self._clock())


# kind -> (idle label, done label)
_LABELS: dict[ActionKind, tuple[str, str]] = {
    ActionKind.PRODUCT: ("Add to Collection", "Added to Collection"),
    ActionKind.ROUTINE: ("Accept Changes", "Changes Accepted"),
    ActionKind.TREATMENT: ("Add to Treatment Plan", "Added to Plan"),
    ActionKind.GOAL: ("Create Goal", "Goal Created"),
    ActionKind.ROUTINE_ACTION: ("Mark {type} routine complete", "Completed"),
    ActionKind.CABINET_ACTION: ("Add to Cabinet", "Added"),
    ActionKind.APPOINTMENT_ACTION: ("Add Appointment", "Appointment Added"),
    ActionKind.CHECKIN_ACTION: ("Add to Daily Check-in", "Added to Check-in"),
    ActionKind.WEEKLY_ROUTINE: ("Approve Routine", "Routine Approved"),
}

_CABINET_LABELS: dict[str, tuple[str, str]] = {
    "add": ("Add to Cabinet", "Added"),
    "update": ("Update Cabinet", "Updated"),
    "remove": ("Remove from Cabinet", "Removed"),
}

_APPOINTMENT_LABELS: dict[str, tuple[str, str]] = {
    "add": ("Add Appointment", "Appointment Added"),
    "edit": ("Update Appointment", "Appointment Updated"),
    "remove": ("Cancel Appointment", "Appointment Cancelled"),
}


def affordance_key(segment: ParsedSegment) -> str:
    """Stable key for a segment's button.

    Cabinet buttons are keyed by product so the flash follows the product;
    everything else uses the segment's ``(kind, ordinal)`` key.
    """
    action = segment.action
    if isinstance(action, CabinetAction):
        return f"{action.product_name}-{action.product_brand}-{segment.index}"
    return segment.key


def flash_key(segment: ParsedSegment, scope: str = "") -> str:
    """Key a button's flash state, optionally within *scope* (a message id).

    Ordinals restart in every message, so a tracker shared by several
    messages needs the scope to keep their buttons apart.
    """
    key = affordance_key(segment)
    return f"{scope}:{key}" if scope else key


def _labels(action: ActionPayload) -> tuple[str, str]:
    if isinstance(action, CabinetAction):
        return _CABINET_LABELS[action.action]
    if action.kind is ActionKind.APPOINTMENT_ACTION:
        return _APPOINTMENT_LABELS[action.action]
    idle, done = _LABELS[action.kind]
    if isinstance(action, RoutineAction):
        idle = idle.format(type=action.type)
    return idle, done


def _routine_done(action: RoutineAction, todays: CheckIn | None) -> bool:
    if todays is None:
        return False
    flag = todays.evening_completed if action.type == "evening" else todays.morning_completed
    return flag is True


def render_affordances(
    result: ParseResult,
    *,
    flashes: FlashTracker | None = None,
    check_ins: Iterable[CheckIn] = (),
    today: str | None = None,
    scope: str = "",
) -> list[Affordance]:
    """Describe one button per parsed action, in message order.

    *scope* is passed to ``flash_key`` when reading flash state.
    """
    todays = next((c for c in check_ins if c.date == today), None) if today else None
    affordances: list[Affordance] = []
    for segment in result.segments:
        action = segment.action
        key = affordance_key(segment)
        idle_label, done_label = _labels(action)

        if isinstance(action, RoutineAction):
            done = _routine_done(action, todays)
        else:
            done = action.is_done

        state = AffordanceState.DONE if done else AffordanceState.IDLE
        if not done and flashes is not None:
            state = flashes.state(flash_key(segment, scope))

        if state is AffordanceState.DONE:
            label = done_label
        elif state is AffordanceState.CONFIRMING:
            label = "Saving..."
        else:
            label = idle_label

        affordances.append(
            Affordance(
                key=key,
                kind=segment.kind,
                label=label,
                state=state,
                disabled=state is not AffordanceState.IDLE,
                action=action,
            )
        )
    return affordances
