"""Persisted chat transcript with a sliding window for the advisor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from skinlog.config import settings

if TYPE_CHECKING:
    from skinlog.db import RecordStore

logger = logging.getLogger(__name__)

MESSAGES = "chat_messages"


@dataclass
class Message:
    """A single conversation turn."""

    id: str
    role: str  # "user" or "assistant"
    content: str
    created_at: str = ""
    conversation_id: str = ""

    @classmethod
    def from_record(cls, rec: dict[str, Any]) -> Message:
        return cls(
            id=rec["id"],
            role=rec.get("role") or "assistant",
            content=rec.get("content") or "",
            created_at=rec.get("created_at", ""),
            conversation_id=rec.get("conversation_id", ""),
        )


class TranscriptStore:
    """Reads and writes the messages of one user's conversations."""

    def __init__(self, records: RecordStore, user_id: str | None) -> None:
        self._records = records
        self._user_id = user_id

    async def add_message(self, conversation_id: str, role: str, content: str) -> Message:
        rec = await self._records.insert(
            MESSAGES,
            {
                "user_id": self._user_id,
                "conversation_id": conversation_id,
                "role": role,
                "content": content,
            },
        )
        logger.debug("Stored %s message %s in %s", role, rec["id"], conversation_id)
        return Message.from_record(rec)

    async def load(self, conversation_id: str, *, limit: int | None = None) -> list[Message]:
        """Return the conversation in creation order.

        With *limit*, only the most recent *limit* messages are returned.
        """
        recs = await self._records.select(
            MESSAGES,
            where={"user_id": self._user_id, "conversation_id": conversation_id},
            order_by="created_at",
        )
        messages = [Message.from_record(r) for r in recs]
        if limit is not None and len(messages) > limit:
            messages = messages[-limit:]
        return messages

    async def window(self, conversation_id: str) -> list[Message]:
        """The recent messages sent to the advisor."""
        return await self.load(conversation_id, limit=settings.conversation_window_size)

    async def update_content(self, message_id: str, content: str) -> bool:
        """Replace a stored message's content. Returns False if it is gone."""
        rec = await self._records.update(MESSAGES, message_id, {"content": content})
        if rec is None:
            logger.warning("Message %s not found, content not updated", message_id)
            return False
        return True
