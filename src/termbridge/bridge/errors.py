"""Error taxonomy for the session bridge.

Failures are local to one session: SpawnFailure and RespawnFailure are
shown inline in the affected pane, WriteFailure and OverflowDrop are only
logged, UnknownSessionEvent is dropped silently.  Only BackendUnavailable
is escalated to a global error state.
"""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for session bridge errors."""


class SpawnFailure(BridgeError):
    """The backend could not allocate a process."""

    def __init__(self, reason: str, shell_type: str | None = None) -> None:
        self.reason = reason
        self.shell_type = shell_type
        super().__init__(reason)


class RespawnFailure(BridgeError):
    """An automatic respawn after process exit failed."""

    def __init__(self, reason: str, previous_id: str | None = None) -> None:
        self.reason = reason
        self.previous_id = previous_id
        super().__init__(reason)


class WriteFailure(BridgeError):
    """Input could not be delivered (unknown session or I/O error)."""

    def __init__(self, session_id: str, reason: str) -> None:
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"write to {session_id[:8]} failed: {reason}")


class OverflowDrop(BridgeError):
    """The early-output buffer was full and an event was dropped."""

    def __init__(self, limit: int, session_id: str | None = None) -> None:
        self.limit = limit
        self.session_id = session_id
        super().__init__(f"early output buffer full ({limit}), dropping output")


class UnknownSessionEvent(BridgeError):
    """An event arrived for a retired or unknown session id."""

    def __init__(self, session_id: str | None) -> None:
        self.session_id = session_id
        super().__init__(f"event for unknown session {session_id}")


class BackendUnavailable(BridgeError):
    """The process backend is gone; nothing can be spawned or written."""
