"""RefreshSignal — process-wide "data changed, reload" broadcast."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class RefreshSignal:
    """Lets any part of the app ask every connected store to reload.

    Singleton accessed via ``RefreshSignal.get()``.  Chat action handlers
    emit it after a write so tab views that hold their own store reference
    pick up the change.
    """

    _instance: RefreshSignal | None = None

    def __init__(self) -> None:
        self._listeners: list[Callable[[], Awaitable[object]]] = []

    @classmethod
    def get(cls) -> RefreshSignal:
        """Return the singleton instance, creating it if needed."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset singleton — for tests only."""
        cls._instance = None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def connect(self, listener: Callable[[], Awaitable[object]]) -> Callable[[], None]:
        """Register *listener*. Returns a function that disconnects it."""
        self._listeners.append(listener)

        def disconnect() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return disconnect

    async def emit(self, reason: str = "") -> None:
        """Run every listener concurrently; failures are logged, not raised."""
        listeners = list(self._listeners)
        if not listeners:
            return
        logger.debug("Refresh requested (%s) for %d listener(s)", reason or "-", len(listeners))
        results = await asyncio.gather(*(fn() for fn in listeners), return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Refresh listener failed", exc_info=result)
