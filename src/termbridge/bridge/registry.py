"""Session registry — the one authoritative map of session id -> Session.

Every other component reads sessions from here and mutates them only
through this narrow API.  Sessions are immutable snapshots; an update
swaps the whole snapshot under the lock, so a reader never observes half
of a change.

Each entry also owns a ``SessionResources`` struct (cleanup callables and
scheduled loop handles) which is released exactly once when the entry is
removed.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

from termbridge.pty.types import ShellType

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    """Lifecycle of a session as seen by the bridge.

    PENDING -> ACTIVE -> EXITED -> RESPAWNING -> ACTIVE -> ...
    """

    PENDING = "pending"  # Id known, early output not yet replayed
    ACTIVE = "active"
    EXITED = "exited"
    RESPAWNING = "respawning"


@dataclass(frozen=True)
class Session:
    """Snapshot of one live or recently-exited shell process."""

    id: str
    shell_type: ShellType
    working_directory: str | None = None  # Original spawn directory, never updated
    dimensions: tuple[int, int] = (24, 80)  # (rows, cols)
    state: SessionState = SessionState.PENDING
    child_process_count: int = 0
    exit_code: int | None = None
    title: str = ""

    @property
    def alive(self) -> bool:
        return self.state in (SessionState.PENDING, SessionState.ACTIVE)


@dataclass
class SessionResources:
    """Auxiliary per-session state: cleanups and pending loop callbacks."""

    cleanups: list[Callable[[], None]] = field(default_factory=list)
    handles: list[asyncio.Handle] = field(default_factory=list)
    released: bool = False

    def add_cleanup(self, fn: Callable[[], None]) -> None:
        self.cleanups.append(fn)

    def add_handle(self, handle: asyncio.Handle) -> None:
        """Track a loop callback; handles already cancelled are pruned."""
        self.handles = [h for h in self.handles if not h.cancelled()]
        self.handles.append(handle)

    def release(self) -> None:
        """Cancel pending handles and run cleanups, once."""
        if self.released:
            return
        self.released = True
        for handle in self.handles:
            handle.cancel()
        self.handles.clear()
        for fn in reversed(self.cleanups):
            try:
                fn()
            except Exception:
                logger.exception("Session cleanup failed")
        self.cleanups.clear()


@dataclass
class _Entry:
    session: Session
    resources: SessionResources


class SessionRegistry:
    """Registry of sessions keyed by backend id.

    ``remove()`` synchronously notifies invalidation listeners (the event
    router stops trusting the id) before it returns.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._focused: str | None = None
        self._listeners: list[Callable[[str], None]] = []
        self._lock = threading.RLock()

    def add_invalidation_listener(self, listener: Callable[[str], None]) -> None:
        """Call ``listener(session_id)`` whenever an id is removed or replaced."""
        self._listeners.append(listener)

    def register(
        self,
        session_id: str,
        session: Session,
        resources: SessionResources | None = None,
    ) -> Session:
        if session.id != session_id:
            session = dataclasses.replace(session, id=session_id)
        with self._lock:
            if session_id in self._entries:
                raise ValueError(f"Session already registered: {session_id}")
            self._entries[session_id] = _Entry(
                session=session, resources=resources or SessionResources()
            )
        logger.debug("Registered session %s (%s)", session_id[:8], session.state.value)
        return session

    def get(self, session_id: str | None) -> Session | None:
        if session_id is None:
            return None
        with self._lock:
            entry = self._entries.get(session_id)
            return entry.session if entry else None

    def update(self, session_id: str, **changes: Any) -> Session | None:
        """Swap in a new snapshot with ``changes`` applied. None if unknown."""
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            entry.session = dataclasses.replace(entry.session, **changes)
            return entry.session

    def resources(self, session_id: str) -> SessionResources | None:
        with self._lock:
            entry = self._entries.get(session_id)
            return entry.resources if entry else None

    def remove(self, session_id: str) -> Session | None:
        """Drop a session, release its resources and retire its id."""
        with self._lock:
            entry = self._entries.pop(session_id, None)
            if self._focused == session_id:
                self._focused = None
        if entry is None:
            return None
        self._invalidate(session_id)
        entry.resources.release()
        logger.debug("Removed session %s", session_id[:8])
        return entry.session

    def replace(self, old_id: str, new_id: str, session: Session) -> Session:
        """Move an entry to a new id (respawn), keeping its resources.

        The old id is retired; focus follows the entry.
        """
        if session.id != new_id:
            session = dataclasses.replace(session, id=new_id)
        with self._lock:
            entry = self._entries.pop(old_id, None)
            resources = entry.resources if entry else SessionResources()
            self._entries[new_id] = _Entry(session=session, resources=resources)
            if self._focused == old_id:
                self._focused = new_id
        self._invalidate(old_id)
        logger.debug("Session %s replaced by %s", old_id[:8], new_id[:8])
        return session

    def _invalidate(self, session_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(session_id)
            except Exception:
                logger.exception("Invalidation listener failed for %s", session_id)

    def focus(self, session_id: str | None) -> None:
        """Mark the session that receives keystrokes (the focused tab)."""
        with self._lock:
            if session_id is not None and session_id not in self._entries:
                raise KeyError(session_id)
            self._focused = session_id

    @property
    def focused(self) -> Session | None:
        with self._lock:
            if self._focused is None:
                return None
            entry = self._entries.get(self._focused)
            return entry.session if entry else None

    def list_active(self) -> list[Session]:
        with self._lock:
            return [
                e.session
                for e in self._entries.values()
                if e.session.state == SessionState.ACTIVE
            ]

    def list_all(self) -> list[Session]:
        with self._lock:
            return [e.session for e in self._entries.values()]

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
