"""Convert stored transcript messages to Claude API messages.

User turns may carry photo references written as ``[IMAGE: <url>]``.  Those
are lifted out of the text and sent as image blocks.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from skinlog.chat.transcript import Message

logger = logging.getLogger(__name__)

_IMAGE_RE = re.compile(r"\[IMAGE:\s*([^\]]+)\]")
_DATA_URI_RE = re.compile(r"^data:(image/[A-Za-z0-9.+-]+);base64,(.+)$", re.DOTALL)
_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)

PHOTO_FALLBACK_TEXT = "Please analyze these photos of my skin."


def image_refs(content: str) -> list[str]:
    """All ``[IMAGE: ...]`` references in *content*, in order."""
    return [m.strip() for m in _IMAGE_RE.findall(content)]


def image_part(ref: str) -> dict[str, Any] | None:
    """Build an image content block, or None for an unusable reference."""
    m = _DATA_URI_RE.match(ref)
    if m:
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": m.group(1), "data": m.group(2)},
        }
    if _HTTP_RE.match(ref):
        return {"type": "image", "source": {"type": "url", "url": ref}}
    if ref.startswith("blob:"):
        logger.warning("Skipping browser-local blob image reference")
    else:
        logger.warning("Unrecognized image reference, skipping: %s", ref[:80])
    return None


def to_api_message(message: Message) -> dict[str, Any]:
    if message.role != "user" or "[IMAGE:" not in message.content:
        return {"role": message.role, "content": message.content}

    text = _IMAGE_RE.sub("", message.content).strip()
    parts: list[dict[str, Any]] = []
    if text:
        parts.append({"type": "text", "text": text})
    images = [p for p in (image_part(ref) for ref in image_refs(message.content)) if p]
    parts.extend(images)
    if not images and not text:
        parts.append({"type": "text", "text": PHOTO_FALLBACK_TEXT})
    elif images and not text:
        parts.insert(0, {"type": "text", "text": PHOTO_FALLBACK_TEXT})
    return {"role": "user", "content": parts}


def to_api_messages(messages: Iterable[Message]) -> list[dict[str, Any]]:
    """Format messages for the Claude API, skipping empty turns."""
    return [to_api_message(m) for m in messages if m.content.strip()]
