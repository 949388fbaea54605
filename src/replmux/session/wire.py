"""Wire protocol: decouples session management from the front end.

The controller and registry publish session lifecycle events; front ends
subscribe and render them. Output itself is not sent over the wire, front
ends read it from the session's buffer.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    SESSION_START = "session_start"
    SESSION_REUSE = "session_reuse"
    SESSION_EXIT = "session_exit"
    SESSION_KILLED = "session_killed"
    ERROR = "error"
    STATUS = "status"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: sessions -> front-end subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_status(self, message: str) -> None:
        self.send(WireEvent(type=EventType.STATUS, data={"message": message}))

    def send_error(self, error: str) -> None:
        self.send(WireEvent(type=EventType.ERROR, data={"error": error}))

    def send_session_start(self, identifier: str, command: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SESSION_START,
                data={"session": identifier, "command": command},
            )
        )

    def send_session_reuse(self, identifier: str) -> None:
        self.send(WireEvent(type=EventType.SESSION_REUSE, data={"session": identifier}))

    def send_session_exit(
        self,
        identifier: str,
        exit_code: int | None,
        last_output: str = "",
    ) -> None:
        """Notify subscribers that a session's process exited on its own."""
        self.send(
            WireEvent(
                type=EventType.SESSION_EXIT,
                data={
                    "session": identifier,
                    "exit_code": exit_code,
                    "last_output": last_output[:500],
                },
            )
        )

    def send_session_killed(self, identifier: str) -> None:
        self.send(
            WireEvent(type=EventType.SESSION_KILLED, data={"session": identifier})
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
