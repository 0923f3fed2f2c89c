"""Async Claude API client for the skincare advisor."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import anthropic

from skinlog.config import settings
from skinlog.llm.messages import image_part

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None

_PHOTO_ANALYSIS_PROMPT = (
    "You are a skincare advisor reviewing progress photos. Describe visible skin "
    "condition (texture, redness, breakouts, dryness) in two or three short sentences. "
    "Do not diagnose medical conditions."
)


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | list[dict[str, Any]] | None = None,
    model: str | None = None,
    max_tokens: int = 4096,
) -> str:
    """Single-shot Claude call — no streaming.

    Use this for isolated LLM tasks (photo analysis and the like) where the
    advisor stream is not needed.
    """
    client = _get_client()
    kwargs: dict[str, Any] = {
        "model": model or settings.advisor_model,
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if system is not None:
        kwargs["system"] = system
    response = await client.messages.create(**kwargs)
    return response.content[0].text


async def stream_advice(
    messages: list[dict[str, Any]],
    system: str | list[dict[str, Any]],
    *,
    model: str | None = None,
) -> AsyncIterator[str]:
    """Yield the advisor's reply as it streams in.

    Args:
        messages: Conversation history in Claude API message format.
        system: System prompt (see ``skinlog.llm.prompt``).
    """
    client = _get_client()
    kwargs: dict[str, Any] = {
        "model": model or settings.advisor_model,
        "max_tokens": settings.advisor_max_tokens,
        "temperature": settings.advisor_temperature,
        "system": system,
        "messages": messages,
    }
    logger.info("Advisor call with %d message(s)", len(messages))
    async with client.messages.stream(**kwargs) as stream:
        async for text in stream.text_stream:
            yield text


async def analyze_photos(photo_urls: list[str], notes: str | None = None) -> str:
    """Short text assessment of check-in photos."""
    content: list[dict[str, Any]] = []
    for url in photo_urls:
        part = image_part(url)
        if part is not None:
            content.append(part)
    text = "Please analyze these photos of my skin."
    if notes:
        text = f"{text} Notes: {notes}"
    content.append({"type": "text", "text": text})
    return await complete_text(
        [{"role": "user", "content": content}],
        system=_PHOTO_ANALYSIS_PROMPT,
        max_tokens=1024,
    )
