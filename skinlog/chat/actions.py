"""Typed actions carried inside advisor replies.

Each ``[KIND]{...}[/KIND]`` segment in an assistant message decodes into one
of the payload models below.  Field names follow the snake_case the advisor
is prompted to emit; camelCase spellings are accepted as aliases.  A payload
missing a required field fails validation and the action is discarded.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any, ClassVar, Literal

from pydantic import AliasChoices, AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ActionKind(StrEnum):
    """Tag names recognised in assistant text."""

    PRODUCT = "PRODUCT"
    ROUTINE = "ROUTINE"
    TREATMENT = "TREATMENT"
    GOAL = "GOAL"
    ROUTINE_ACTION = "ROUTINE_ACTION"
    CABINET_ACTION = "CABINET_ACTION"
    APPOINTMENT_ACTION = "APPOINTMENT_ACTION"
    CHECKIN_ACTION = "CHECKIN_ACTION"
    WEEKLY_ROUTINE = "WEEKLY_ROUTINE"


RoutineType = Literal["morning", "evening"]


class ActionPayload(BaseModel):
    """Base class for action payload models.

    ``added`` / ``completed`` are the completion flags spliced into a stored
    message after the action succeeds; they survive a reload of the
    conversation.
    """

    model_config = ConfigDict(
        alias_generator=AliasGenerator(
            validation_alias=lambda name: AliasChoices(name, to_camel(name)),
        ),
        frozen=True,
    )

    kind: ClassVar[ActionKind]

    added: bool = False
    completed: bool = False

    @property
    def is_done(self) -> bool:
        return self.added or self.completed

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON object carried between the tags."""
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        for flag in ("added", "completed"):
            if not data.get(flag):
                data.pop(flag, None)
        return data


class ProductRecommendation(ActionPayload):
    kind: ClassVar[ActionKind] = ActionKind.PRODUCT

    name: str
    brand: str
    category: str
    description: str
    key_ingredients: list[str]
    benefits: list[str]
    reason: str


class RoutineUpdate(ActionPayload):
    kind: ClassVar[ActionKind] = ActionKind.ROUTINE

    type: RoutineType
    changes: list[str]


class TreatmentSuggestion(ActionPayload):
    kind: ClassVar[ActionKind] = ActionKind.TREATMENT

    type: str
    reason: str
    frequency: str


class GoalSuggestion(ActionPayload):
    kind: ClassVar[ActionKind] = ActionKind.GOAL

    title: str
    description: str
    target_date: str


class RoutineAction(ActionPayload):
    kind: ClassVar[ActionKind] = ActionKind.ROUTINE_ACTION

    type: RoutineType
    routine_name: str
    action: Literal["complete"]


class CabinetAction(ActionPayload):
    kind: ClassVar[ActionKind] = ActionKind.CABINET_ACTION

    action: Literal["add", "remove", "update"]
    product_name: str
    product_brand: str
    category: str | None = None
    amount_remaining: int | None = None
    reason: str


class AppointmentAction(ActionPayload):
    """Add, edit or remove a treatment appointment.

    ``appointment_id`` identifies the target of an edit or removal;
    ``changes`` carries the edited fields.
    """

    kind: ClassVar[ActionKind] = ActionKind.APPOINTMENT_ACTION

    action: Literal["add", "edit", "remove"]
    treatment_type: str
    date: str
    time: str
    provider: str
    location: str | None = None
    notes: str | None = None
    appointment_id: str | None = None
    changes: dict[str, Any] | None = None


class CheckinAction(ActionPayload):
    kind: ClassVar[ActionKind] = ActionKind.CHECKIN_ACTION

    action: Literal["add_photos"]
    photo_urls: list[str]
    notes: str | None = None
    lighting: str


class ScheduleStep(BaseModel):
    """One step of a suggested routine."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(
            validation_alias=lambda name: AliasChoices(name, to_camel(name)),
        ),
    )

    product_name: str = ""
    product_brand: str = ""
    category: str = "skincare"
    instructions: str = ""


class WeeklyRoutineSuggestion(ActionPayload):
    """A week of morning/evening routines proposed by the advisor.

    ``weekly_schedule`` is kept as the raw mapping so it round-trips exactly:
    ``{"monday": {"morning": {"steps": [...]}, "evening": {...}}, ...}``.
    """

    kind: ClassVar[ActionKind] = ActionKind.WEEKLY_ROUTINE

    title: str
    description: str
    reasoning: str
    weekly_schedule: dict[str, dict[str, Any]] = Field(
        validation_alias=AliasChoices("weekly_schedule", "weeklySchedule"),
        serialization_alias="weeklySchedule",
    )
    id: str | None = None

    def first_day(self) -> str | None:
        """Name of the first day in the schedule, in payload order."""
        return next(iter(self.weekly_schedule), None)

    def steps_for(self, day: str, period: RoutineType) -> list[ScheduleStep]:
        """Return the parsed steps of one day's morning or evening plan."""
        plan = self.weekly_schedule.get(day) or {}
        raw_steps = (plan.get(period) or {}).get("steps") or []
        steps: list[ScheduleStep] = []
        for raw in raw_steps:
            if isinstance(raw, str):
                steps.append(ScheduleStep(instructions=raw))
            elif isinstance(raw, dict):
                present = {k: v for k, v in raw.items() if v is not None}
                steps.append(ScheduleStep.model_validate(present))
        return steps


Action = (
    ProductRecommendation
    | RoutineUpdate
    | TreatmentSuggestion
    | GoalSuggestion
    | RoutineAction
    | CabinetAction
    | AppointmentAction
    | CheckinAction
    | WeeklyRoutineSuggestion
)

ACTION_MODELS: dict[ActionKind, type[ActionPayload]] = {
    model.kind: model
    for model in (
        ProductRecommendation,
        RoutineUpdate,
        TreatmentSuggestion,
        GoalSuggestion,
        RoutineAction,
        CabinetAction,
        AppointmentAction,
        CheckinAction,
        WeeklyRoutineSuggestion,
    )
}


def serialize_segment(action: ActionPayload) -> str:
    """Render an action as a ``[KIND]{json}[/KIND]`` segment."""
    return f"[{action.kind}]{json.dumps(action.to_payload())}[/{action.kind}]"
