"""Application factory — wires the store, dispatcher and chat together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from skinlog.chat.handlers import ActionDispatcher
from skinlog.chat.session import ChatSession
from skinlog.chat.transcript import TranscriptStore
from skinlog.config import settings
from skinlog.data.store import SkincareStore
from skinlog.db import RecordStore
from skinlog.events import RefreshSignal
from skinlog.llm.client import analyze_photos

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_logging_configured = False


def configure_logging() -> None:
    global _logging_configured  # noqa: PLW0603
    if _logging_configured:
        return
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    _logging_configured = True


@dataclass
class SkinlogApp:
    """Everything one signed-in user's surfaces share."""

    records: RecordStore
    store: SkincareStore
    transcripts: TranscriptStore
    dispatcher: ActionDispatcher

    def chat(self, conversation_id: str) -> ChatSession:
        return ChatSession(conversation_id, self.store, self.transcripts, self.dispatcher)

    async def start(self) -> None:
        """Load the user's data and start listening for refresh requests."""
        self.store.listen_for_refresh()
        await self.store.refresh_data()

    def close(self) -> None:
        self.store.close()


def create_app(user_id: str | None, *, db_path: Path | None = None) -> SkinlogApp:
    """Build the app for *user_id* (None when nobody is signed in)."""
    configure_logging()
    records = RecordStore(db_path) if db_path is not None else RecordStore.get()
    store = SkincareStore(records, user_id)
    transcripts = TranscriptStore(records, user_id)
    dispatcher = ActionDispatcher(
        store,
        transcripts,
        signal=RefreshSignal.get(),
        analyzer=analyze_photos if settings.photo_analysis_enabled else None,
    )
    logger.info("Skinlog ready (user=%s, db=%s)", user_id or "-", records.db_path)
    return SkinlogApp(records=records, store=store, transcripts=transcripts, dispatcher=dispatcher)
