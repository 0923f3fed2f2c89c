"""Chat action protocol: tagged actions in advisor replies."""

from skinlog.chat.actions import ActionKind, ActionPayload
from skinlog.chat.handlers import ActionDispatcher, ActionResult
from skinlog.chat.session import ChatSession
from skinlog.chat.tags import ParseResult, parse

__all__ = [
    "ActionDispatcher",
    "ActionKind",
    "ActionPayload",
    "ActionResult",
    "ChatSession",
    "ParseResult",
    "parse",
]
