"""Tag protocol parser for advisor replies.

Assistant text may carry segments of the form ``[KIND]{json}[/KIND]``
interleaved with prose.  ``parse()`` is stateless and is re-run on the whole
buffer after every streamed chunk, so it has to be safe on a prefix of the
final message:

- a segment only counts once its closing tag has arrived;
- payloads are extracted by balanced-brace scanning (string aware), so nested
  objects such as a weekly schedule do not cut the payload short;
- a payload that does not decode is dropped and left visible in the prose;
- keys are derived from ``(kind, ordinal)``, never from the clock.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from skinlog.chat.actions import ACTION_MODELS, ActionKind, ActionPayload

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

# Longest names first so ROUTINE_ACTION is never read as ROUTINE.
_OPEN_RE = re.compile(
    r"\[("
    + "|".join(sorted((k.value for k in ActionKind), key=len, reverse=True))
    + r")\]"
)

_LOADING_MESSAGES: dict[ActionKind, str] = {
    ActionKind.PRODUCT: "Preparing product recommendations...",
    ActionKind.ROUTINE: "Building your routine...",
    ActionKind.TREATMENT: "Analyzing treatment options...",
    ActionKind.GOAL: "Setting up your goals...",
    ActionKind.ROUTINE_ACTION: "Preparing routine actions...",
    ActionKind.CABINET_ACTION: "Managing your cabinet...",
    ActionKind.APPOINTMENT_ACTION: "Scheduling appointments...",
    ActionKind.CHECKIN_ACTION: "Preparing check-in actions...",
    ActionKind.WEEKLY_ROUTINE: "Creating your weekly routine...",
}


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsedSegment:
    """A complete segment whose payload validated into an action.

    ``index`` is the ordinal of this action among actions of the same kind
    in the message; together with the kind it forms the stable UI key.
    """

    kind: ActionKind
    index: int
    action: ActionPayload
    start: int
    end: int

    @property
    def key(self) -> str:
        return action_key(self.kind, self.index)


@dataclass
class ParseResult:
    segments: list[ParsedSegment] = field(default_factory=list)
    display_text: str = ""

    @property
    def actions(self) -> list[ActionPayload]:
        return [seg.action for seg in self.segments]

    def of_kind(self, kind: ActionKind) -> list[ParsedSegment]:
        return [seg for seg in self.segments if seg.kind is kind]


@dataclass(frozen=True)
class _Span:
    """A well-formed tagged span found by the scanner."""

    kind: ActionKind
    start: int
    end: int
    payload_start: int = 0
    payload_end: int = 0
    payload: dict[str, Any] | None = None
    inline_text: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def action_key(kind: ActionKind, index: int) -> str:
    """Return the deterministic UI key for the *index*-th action of *kind*."""
    return f"{kind.value.lower()}-{index}"


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _match_brace(text: str, start: int) -> int | None:
    """Return the index just past the ``}`` closing ``text[start]``.

    Braces inside JSON string literals are ignored.  Returns None when the
    object is not closed yet.
    """
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def _scan(text: str) -> Iterator[_Span]:
    """Yield well-formed spans left to right, never overlapping."""
    pos = 0
    while True:
        m = _OPEN_RE.search(text, pos)
        if m is None:
            return
        kind = ActionKind(m.group(1))
        close = f"[/{kind.value}]"
        body = _skip_ws(text, m.end())

        if body < len(text) and text[body] == "{":
            brace_end = _match_brace(text, body)
            if brace_end is None:
                # Unterminated: still streaming, or never closed.
                pos = m.end()
                continue
            close_at = _skip_ws(text, brace_end)
            if not text.startswith(close, close_at):
                pos = m.end()
                continue
            end = close_at + len(close)
            raw = text[body:brace_end]
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError as exc:
                logger.debug("Dropping %s segment with bad JSON: %s", kind.value, exc)
                pos = end
                continue
            if not isinstance(payload, dict):
                logger.debug("Dropping %s segment: payload is not an object", kind.value)
                pos = end
                continue
            yield _Span(kind, m.start(), end, body, brace_end, payload=payload)
            pos = end
            continue

        if kind is ActionKind.PRODUCT:
            # Plain inline product mention: [PRODUCT]Name[/PRODUCT]
            close_at = text.find(close, m.end())
            inner = text[m.end():close_at] if close_at != -1 else ""
            if close_at != -1 and inner and "[" not in inner:
                yield _Span(kind, m.start(), close_at + len(close), inline_text=inner)
                pos = close_at + len(close)
                continue

        pos = m.end()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse(text: str) -> ParseResult:
    """Extract typed actions and the prose to display around them."""
    segments: list[ParsedSegment] = []
    counts: dict[ActionKind, int] = {}
    pieces: list[str] = []
    cursor = 0

    for span in _scan(text):
        pieces.append(text[cursor:span.start])
        cursor = span.end
        if span.inline_text is not None:
            pieces.append(span.inline_text)
            continue

        model = ACTION_MODELS[span.kind]
        try:
            action = model.model_validate(span.payload)
        except ValidationError as exc:
            logger.debug(
                "Discarding %s action: %d field error(s)", span.kind.value, exc.error_count()
            )
            continue

        index = counts.get(span.kind, 0)
        counts[span.kind] = index + 1
        segments.append(ParsedSegment(span.kind, index, action, span.start, span.end))

    pieces.append(text[cursor:])
    return ParseResult(segments=segments, display_text="".join(pieces))


# ---------------------------------------------------------------------------
# Completion rewrite
# ---------------------------------------------------------------------------


def _payload_matches(payload: dict[str, Any], match: dict[str, Any]) -> bool:
    for key, value in match.items():
        found = payload.get(key, payload.get(to_camel(key)))
        if found != value:
            return False
    return True


def mark_segment_done(
    content: str,
    kind: ActionKind,
    match: dict[str, Any],
    *,
    flag: str = "added",
) -> str | None:
    """Splice ``"<flag>":true`` into the first matching, unflagged segment.

    A segment matches when its payload carries every key/value pair in
    *match* (for example ``{"name": ..., "brand": ...}``).  The flag is
    inserted just before the payload's closing brace, so every other byte of
    *content* is preserved.  Returns None when no segment matched.
    """
    for span in _scan(content):
        if span.kind is not kind or span.payload is None:
            continue
        if span.payload.get(flag) is True or not _payload_matches(span.payload, match):
            continue
        insert_at = span.payload_end - 1
        addition = f'"{flag}":true'
        if span.payload:
            addition = "," + addition
        return content[:insert_at] + addition + content[insert_at:]
    return None


# ---------------------------------------------------------------------------
# Streaming indicators
# ---------------------------------------------------------------------------


def streaming_kind(text: str) -> ActionKind | None:
    """Kind of the last opening tag that has no complete segment yet."""
    spans = list(_scan(text))
    pending: ActionKind | None = None
    for m in _OPEN_RE.finditer(text):
        if any(s.start <= m.start() < s.end for s in spans):
            continue
        pending = ActionKind(m.group(1))
    return pending


def has_incomplete_segment(text: str) -> bool:
    """True while an opened tag is still waiting for its closing tag."""
    return streaming_kind(text) is not None


def loading_message(kind: ActionKind | None) -> str:
    """Friendly placeholder shown while a segment of *kind* streams in."""
    if kind is None:
        return "Preparing component..."
    return _LOADING_MESSAGES.get(kind, "Preparing component...")
