"""Tests for the stream assembler."""

import pytest

from skinlog.chat.stream import assemble
from skinlog.errors import StreamInterrupted


async def _chunks(*items, error: Exception | None = None):
    for item in items:
        yield item
    if error is not None:
        raise error


async def test_assembles_in_order_and_reports_full_buffer() -> None:
    seen: list[str] = []
    result = await assemble(_chunks("Hel", "lo ", "world"), seen.append)
    assert result == "Hello world"
    assert seen == ["Hel", "Hello ", "Hello world"]


async def test_async_callback_is_awaited() -> None:
    seen: list[str] = []

    async def on_update(buffer: str) -> None:
        seen.append(buffer)

    await assemble(_chunks("a", "b"), on_update)
    assert seen == ["a", "ab"]


async def test_no_callback() -> None:
    assert await assemble(_chunks("x", "y")) == "xy"


async def test_split_multibyte_character() -> None:
    encoded = "café ✨".encode()
    seen: list[str] = []
    result = await assemble(
        _chunks(encoded[:4], encoded[4:5], encoded[5:7], encoded[7:]), seen.append
    )
    assert result == "café ✨"
    assert all("�" not in s for s in seen)


async def test_empty_stream() -> None:
    seen: list[str] = []
    assert await assemble(_chunks(), seen.append) == ""
    assert seen == []


async def test_failure_carries_partial_buffer() -> None:
    boom = ConnectionError("reset")
    with pytest.raises(StreamInterrupted) as exc_info:
        await assemble(_chunks("Partial ", "reply", error=boom))
    assert exc_info.value.partial == "Partial reply"
    assert exc_info.value.cause is boom


async def test_callback_errors_are_not_wrapped() -> None:
    def on_update(buffer: str) -> None:
        raise ValueError("render failed")

    with pytest.raises(ValueError, match="render failed"):
        await assemble(_chunks("a"), on_update)
