"""Stream assembler — turns a chunked advisor stream into one growing buffer."""

from __future__ import annotations

import codecs
import inspect
import logging
from typing import TYPE_CHECKING

from skinlog.errors import StreamInterrupted

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, Awaitable, Callable

logger = logging.getLogger(__name__)


async def assemble(
    stream: AsyncIterable[str | bytes],
    on_update: Callable[[str], Awaitable[None] | None] | None = None,
) -> str:
    """Consume *stream* in arrival order and return the settled content.

    ``on_update`` receives the full buffer (not the delta) after every chunk
    that adds text, so the tag parser can simply re-parse it.  Bytes are
    decoded incrementally as UTF-8; a multi-byte character split across two
    chunks is emitted once both halves have arrived.

    Raises:
        StreamInterrupted: reading the stream failed. ``partial`` holds what
            was assembled before the failure.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    chunks = 0
    iterator = aiter(stream)

    while True:
        try:
            chunk = await anext(iterator)
        except StopAsyncIteration:
            break
        except Exception as exc:
            logger.warning("Advisor stream failed after %d chunk(s): %s", chunks, exc)
            raise StreamInterrupted(buffer, exc) from exc

        chunks += 1
        text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        if not text:
            continue
        buffer += text
        await _notify(on_update, buffer)

    tail = decoder.decode(b"", final=True)
    if tail:
        buffer += tail
        await _notify(on_update, buffer)

    logger.debug("Assembled %d chars from %d chunk(s)", len(buffer), chunks)
    return buffer


async def _notify(
    on_update: Callable[[str], Awaitable[None] | None] | None, buffer: str
) -> None:
    if on_update is None:
        return
    result = on_update(buffer)
    if inspect.isawaitable(result):
        await result
