"""System prompt assembly for the skincare advisor."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from skinlog.data.models import DataSnapshot

logger = logging.getLogger(__name__)

_DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

ADVISOR_PERSONA = """\
You are a friendly, knowledgeable skincare advisor. Give practical, evidence-based
advice tailored to the user's routines, products and recent check-ins. Keep answers
concise. You are not a doctor; suggest seeing a dermatologist for medical concerns."""

ACTION_GRAMMAR = """\
# Actions

When you suggest something the user can act on, embed it in your reply as a tagged
JSON object: [KIND]{...}[/KIND]. Use exactly one JSON object per tag, with
snake_case keys, and never wrap tags in code fences. Write normal prose around them.

- [PRODUCT]{"name": "...", "brand": "...", "category": "...", "description": "...", "key_ingredients": ["..."], "benefits": ["..."], "reason": "..."}[/PRODUCT]
- [ROUTINE]{"type": "morning" | "evening", "changes": ["..."]}[/ROUTINE]
- [TREATMENT]{"type": "...", "reason": "...", "frequency": "..."}[/TREATMENT]
- [GOAL]{"title": "...", "description": "...", "target_date": "YYYY-MM-DD"}[/GOAL]
- [ROUTINE_ACTION]{"type": "morning" | "evening", "routine_name": "...", "action": "complete"}[/ROUTINE_ACTION]
- [CABINET_ACTION]{"action": "add" | "remove" | "update", "product_name": "...", "product_brand": "...", "category": "...", "amount_remaining": 0-100, "reason": "..."}[/CABINET_ACTION]
- [APPOINTMENT_ACTION]{"action": "add" | "edit" | "remove", "treatment_type": "...", "date": "YYYY-MM-DD", "time": "HH:MM", "provider": "...", "location": "...", "notes": "...", "appointment_id": "...", "changes": {"date": "YYYY-MM-DD", "time": "HH:MM", "provider": "...", "location": "...", "notes": "..."}}[/APPOINTMENT_ACTION]
- [CHECKIN_ACTION]{"action": "add_photos", "photo_urls": ["..."], "notes": "...", "lighting": "natural"}[/CHECKIN_ACTION]
- [WEEKLY_ROUTINE]{"title": "...", "description": "...", "reasoning": "...", "weeklySchedule": {"monday": {"morning": {"steps": [{"product_name": "...", "product_brand": "...", "instructions": "..."}]}, "evening": {"steps": []}}}}[/WEEKLY_ROUTINE]

Only use ROUTINE_ACTION for routines the user actually has. For CABINET_ACTION
"remove", use the exact product name and brand from the user's cabinet. For
APPOINTMENT_ACTION "edit" or "remove", copy the appointment id from the user's
appointments and keep the other fields as they are now; put edited fields in
"changes"."""


def _format_routines(snapshot: DataSnapshot) -> str:
    active = [r for r in snapshot.routines if r.is_active]
    if not active:
        return "## Routines\n\nNo active routines."
    lines = ["## Routines\n"]
    by_day: dict[str, list[str]] = {}
    for routine in active:
        day = _DAY_NAMES[routine.day_of_week] if routine.day_of_week is not None else "Every day"
        steps = "; ".join(
            f"{s.step_order}. {s.product.brand + ' ' + s.product.name + ': ' if s.product else ''}"
            f"{s.instructions}"
            for s in routine.steps
        )
        by_day.setdefault(day, []).append(f"- {routine.type} ({routine.name}): {steps or 'no steps'}")
    for day, entries in by_day.items():
        lines.append(f"{day}:")
        lines.extend(entries)
    return "\n".join(lines)


def _format_inventory(snapshot: DataSnapshot) -> str:
    if not snapshot.inventory:
        return "## Product cabinet\n\nEmpty."
    lines = ["## Product cabinet\n"]
    for item in snapshot.inventory:
        name = f"{item.product.brand} {item.product.name}" if item.product else item.product_id
        category = f" [{item.product.category}]" if item.product and item.product.category else ""
        lines.append(f"- {name}{category}, {item.amount_remaining}% remaining")
    return "\n".join(lines)


def _mark(flag: bool | None) -> str:
    return "-" if flag is None else ("yes" if flag else "no")


def _format_check_ins(snapshot: DataSnapshot) -> str:
    if not snapshot.check_ins:
        return "## Recent check-ins\n\nNone yet."
    lines = ["## Recent check-ins\n"]
    for c in snapshot.check_ins:
        rating = f", skin {c.skin_rating}/5" if c.skin_rating is not None else ""
        notes = f", notes: {c.notes}" if c.notes else ""
        lines.append(
            f"- {c.date}: morning {_mark(c.morning_completed)}, "
            f"evening {_mark(c.evening_completed)}{rating}{notes}"
        )
    return "\n".join(lines)


def _format_goals(snapshot: DataSnapshot) -> str:
    if not snapshot.goals:
        return "## Goals\n\nNo active goals."
    lines = ["## Goals\n"]
    lines.extend(f"- {g.title} (by {g.target_date}): {g.description}" for g in snapshot.goals)
    return "\n".join(lines)


def _format_appointments(snapshot: DataSnapshot) -> str:
    if not snapshot.appointments:
        return "## Appointments\n\nNone scheduled."
    lines = ["## Appointments\n"]
    for a in snapshot.appointments:
        when = a.scheduled_at or "not scheduled"
        provider = f" with {a.provider}" if a.provider else ""
        location = f" at {a.location}" if a.location else ""
        lines.append(f"- {a.treatment_type}{provider}{location}: {when}, {a.status} (id: {a.id})")
    return "\n".join(lines)


def build_system_prompt(
    snapshot: DataSnapshot, *, now: datetime | None = None
) -> list[dict]:
    """Assemble the advisor system prompt.

    The persona and action grammar get ``cache_control`` since they never
    change; the user's data and the current date follow as separate blocks.

    Returns:
        List of content blocks for the Claude ``system`` parameter.
    """
    now = now or datetime.now(UTC)
    user_data = "\n\n".join(
        [
            "# User data",
            _format_routines(snapshot),
            _format_inventory(snapshot),
            _format_check_ins(snapshot),
            _format_goals(snapshot),
            _format_appointments(snapshot),
        ]
    )
    logger.debug("System prompt user data: %d chars", len(user_data))
    return [
        {
            "type": "text",
            "text": f"{ADVISOR_PERSONA}\n\n---\n\n{ACTION_GRAMMAR}",
            "cache_control": {"type": "ephemeral"},
        },
        {"type": "text", "text": user_data},
        {"type": "text", "text": f"Today is {now.strftime('%A, %B %d, %Y')}."},
    ]
