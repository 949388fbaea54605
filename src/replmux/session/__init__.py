"""Named REPL sessions, their registry, and the front-end event wire."""

from replmux.session.registry import Session, SessionOptions, SessionRegistry
from replmux.session.wire import EventType, Wire, WireEvent

__all__ = [
    "EventType",
    "Session",
    "SessionOptions",
    "SessionRegistry",
    "Wire",
    "WireEvent",
]
