"""Wire protocol — the single global event stream out of the PTY backend.

The backend pushes OUTPUT and EXIT events for every session onto one wire,
unfiltered.  Consumers (the event router, the UI status bar) subscribe and
pick out what belongs to them.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    OUTPUT = "output"
    EXIT = "exit"
    SPAWNED = "spawned"
    RESPAWNED = "respawned"
    CWD = "cwd"
    ERROR = "error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def session_id(self) -> str | None:
        return self.data.get("session_id")


class Wire:
    """Async message bus: backend -> subscribers.

    Single-producer, multi-consumer broadcast.  Each subscriber gets its own
    FIFO queue, so per-session ordering is preserved for every consumer.
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

    def send_output(self, session_id: str, data: str) -> None:
        self.send(
            WireEvent(
                type=EventType.OUTPUT,
                data={"session_id": session_id, "data": data},
            )
        )

    def send_exit(self, session_id: str, exit_code: int | None) -> None:
        """Notify subscribers that a PTY process exited on its own."""
        self.send(
            WireEvent(
                type=EventType.EXIT,
                data={"session_id": session_id, "exit_code": exit_code},
            )
        )

    def send_spawned(self, session_id: str, shell_type: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SPAWNED,
                data={"session_id": session_id, "shell_type": shell_type},
            )
        )

    def send_respawned(self, old_id: str, new_id: str) -> None:
        self.send(
            WireEvent(
                type=EventType.RESPAWNED,
                data={"session_id": new_id, "previous_id": old_id},
            )
        )

    def send_cwd(self, session_id: str, cwd: str) -> None:
        self.send(
            WireEvent(
                type=EventType.CWD,
                data={"session_id": session_id, "cwd": cwd},
            )
        )

    def send_error(self, error: str) -> None:
        """Report a global (not per-session) failure."""
        self.send(WireEvent(type=EventType.ERROR, data={"error": error}))

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        if self._closed:
            return
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
