"""Chat session — one conversation between the user and the advisor.

``send()`` stores the user's turn, streams the advisor's reply through the
assembler (re-parsing after each chunk for progressive display) and stores
the settled reply.  ``confirm()`` dispatches an action the user clicked and
writes any failure back into the conversation as an assistant message.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from skinlog.chat.affordances import FlashTracker, flash_key, render_affordances
from skinlog.chat.handlers import ActionResult
from skinlog.chat.stream import assemble
from skinlog.chat.tags import ParseResult, parse
from skinlog.config import settings
from skinlog.errors import StreamInterrupted
from skinlog.llm.client import stream_advice
from skinlog.llm.messages import to_api_messages
from skinlog.llm.prompt import build_system_prompt

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, Awaitable, Callable

    from skinlog.chat.affordances import Affordance
    from skinlog.chat.handlers import ActionDispatcher
    from skinlog.chat.tags import ParsedSegment
    from skinlog.chat.transcript import Message, TranscriptStore
    from skinlog.data.store import SkincareStore

    Advisor = Callable[[list[dict[str, Any]], list[dict]], AsyncIterable[str | bytes]]

logger = logging.getLogger(__name__)

APOLOGY = "I apologize, but I'm having trouble responding right now. Please try again."


@dataclass
class Reply:
    """What ``send()`` produced.

    ``message`` is the stored assistant reply (the partial reply when the
    stream broke, or None if nothing arrived).  ``apology`` is set only
    when the stream broke.
    """

    message: Message | None
    parsed: ParseResult = field(default_factory=ParseResult)
    apology: Message | None = None

    @property
    def interrupted(self) -> bool:
        return self.apology is not None


class ChatSession:
    def __init__(
        self,
        conversation_id: str,
        store: SkincareStore,
        transcripts: TranscriptStore,
        dispatcher: ActionDispatcher,
        *,
        advisor: Advisor | None = None,
        flashes: FlashTracker | None = None,
    ) -> None:
        self.conversation_id = conversation_id
        self.messages: list[Message] = []
        self._store = store
        self._transcripts = transcripts
        self._dispatcher = dispatcher
        self._advisor = advisor or stream_advice
        self.flashes = flashes or FlashTracker()

    async def load(self) -> list[Message]:
        """Load the stored conversation."""
        self.messages = await self._transcripts.load(self.conversation_id)
        logger.info("Loaded %d message(s) for %s", len(self.messages), self.conversation_id)
        return self.messages

    async def _append(self, role: str, content: str) -> Message:
        message = await self._transcripts.add_message(self.conversation_id, role, content)
        self.messages.append(message)
        return message

    async def send(
        self,
        text: str,
        on_update: Callable[[ParseResult], Awaitable[None] | None] | None = None,
    ) -> Reply:
        """Send *text* and stream back the advisor's reply.

        ``on_update`` receives the re-parsed reply after every chunk.
        """
        await self._append("user", text)
        window = self.messages[-settings.conversation_window_size :]
        system = build_system_prompt(self._store.snapshot())

        async def progress(buffer: str) -> None:
            if on_update is None:
                return
            result = on_update(parse(buffer))
            if inspect.isawaitable(result):
                await result

        try:
            content = await assemble(self._advisor(to_api_messages(window), system), progress)
        except StreamInterrupted as exc:
            logger.warning("Advisor reply interrupted: %s", exc.cause)
            partial = await self._append("assistant", exc.partial) if exc.partial.strip() else None
            apology = await self._append("assistant", APOLOGY)
            return Reply(message=partial, parsed=parse(exc.partial), apology=apology)

        message = await self._append("assistant", content)
        return Reply(message=message, parsed=parse(content))

    def affordances(self, message: Message) -> list[Affordance]:
        """Buttons for the actions in *message*, with their current state."""
        return render_affordances(
            parse(message.content),
            flashes=self.flashes,
            check_ins=self._store.check_ins,
            today=self._store.today_iso(),
            scope=message.id,
        )

    async def confirm(self, message: Message, segment: ParsedSegment) -> ActionResult:
        """Carry out the action the user clicked.

        A repeat click while the first is still in flight (or still
        flashing "done") is ignored.
        """
        key = flash_key(segment, message.id)
        if not self.flashes.begin(key):
            return ActionResult(success=False, message="That action is already being handled.")

        result = await self._dispatcher.dispatch(segment.action, message=message)
        if result.success:
            self.flashes.succeed(key)
        else:
            self.flashes.fail(key)
            await self._append("assistant", result.message)
        return result

    async def decline(self, segment: ParsedSegment) -> ActionResult:
        result = await self._dispatcher.decline(segment.action)
        if not result.success:
            await self._append("assistant", result.message)
        return result
