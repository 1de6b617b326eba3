"""Lifecycle manager — spawn, write, resize, kill and respawn sessions.

The manager is the only caller of the backend command surface.  It keeps
the registry current and translates backend exceptions into the bridge
error taxonomy: spawn and respawn failures are raised to the caller,
write and resize failures are logged and swallowed so the terminal stays
interactive.
"""

from __future__ import annotations

import logging
from typing import Protocol

from termbridge.bridge.errors import (
    BackendUnavailable,
    RespawnFailure,
    SpawnFailure,
    WriteFailure,
)
from termbridge.bridge.registry import Session, SessionRegistry, SessionState
from termbridge.bridge.router import EventRouter
from termbridge.pty.types import SessionInfo, ShellType

logger = logging.getLogger(__name__)


class Backend(Protocol):
    """Command surface of the process-owning backend."""

    async def spawn(
        self,
        shell_type: ShellType,
        working_directory: str | None = None,
        rows: int = 24,
        cols: int = 80,
    ) -> str: ...

    async def write(self, session_id: str, data: str) -> None: ...

    async def resize(self, session_id: str, rows: int, cols: int) -> None: ...

    async def kill(self, session_id: str) -> None: ...

    async def kill_children(self, session_id: str) -> int: ...

    async def child_count(self, session_id: str) -> int: ...

    async def get_info(self, session_id: str) -> SessionInfo | None: ...

    async def list_sessions(self) -> list[str]: ...

    async def kill_all(self) -> None: ...


class LifecycleManager:
    """Owns session creation and teardown on top of a backend.

    Killing removes the registry entry first, which synchronously retires
    the id in the router; only then is the backend asked to terminate the
    process.  Anything the dying process still prints is dropped.
    """

    def __init__(
        self,
        backend: Backend,
        registry: SessionRegistry | None = None,
        router: EventRouter | None = None,
    ) -> None:
        self.backend = backend
        self.registry = registry or SessionRegistry()
        self.router = router
        self._unavailable = False
        if router is not None:
            self.registry.add_invalidation_listener(router.retire)

    def _check_available(self) -> None:
        if self._unavailable:
            raise BackendUnavailable("PTY backend is unavailable")

    def mark_unavailable(self, reason: str = "PTY backend is unavailable") -> None:
        """Escalate to the global error state; later spawns fail fast.

        The reason is published once as an ERROR event on the wire.
        """
        if self._unavailable:
            return
        self._unavailable = True
        logger.error("PTY backend marked unavailable: %s", reason)
        if self.router is not None:
            self.router.wire.send_error(reason)

    @property
    def available(self) -> bool:
        return not self._unavailable

    # --- Spawn ---

    async def spawn(
        self,
        shell_type: ShellType,
        working_directory: str | None = None,
        rows: int = 24,
        cols: int = 80,
    ) -> str:
        """Start a shell and register it as PENDING.

        Raises ``SpawnFailure`` with the backend's reason.  No retry.
        """
        self._check_available()
        try:
            session_id = await self.backend.spawn(
                shell_type, working_directory, rows, cols
            )
        except Exception as e:
            logger.warning("Spawn of %s failed: %s", shell_type.value, e)
            raise SpawnFailure(str(e) or type(e).__name__, shell_type.value) from e

        self.registry.register(
            session_id,
            Session(
                id=session_id,
                shell_type=shell_type,
                working_directory=working_directory,
                dimensions=(rows, cols),
                title=shell_type.display_name,
            ),
        )
        return session_id

    def activate(self, session_id: str) -> Session | None:
        """Mark a session ACTIVE once its output linkage is complete."""
        return self.registry.update(session_id, state=SessionState.ACTIVE)

    def mark_exited(self, session_id: str, exit_code: int | None) -> Session | None:
        return self.registry.update(
            session_id, state=SessionState.EXITED, exit_code=exit_code
        )

    # --- Input / resize ---

    async def write(self, session_id: str, data: str) -> bool:
        """Send input to a session.  Failures are logged, never raised."""
        if session_id not in self.registry:
            logger.warning("%s", WriteFailure(session_id, "session not found"))
            return False
        try:
            await self.backend.write(session_id, data)
        except Exception as e:
            logger.warning("%s", WriteFailure(session_id, str(e) or type(e).__name__))
            return False
        return True

    async def resize(self, session_id: str, rows: int, cols: int) -> bool:
        if rows <= 0 or cols <= 0:
            return False
        if session_id not in self.registry:
            logger.debug("Resize for unknown session %s ignored", session_id[:8])
            return False
        try:
            await self.backend.resize(session_id, rows, cols)
        except Exception as e:
            logger.warning("Resize of %s failed: %s", session_id[:8], e)
            return False
        self.registry.update(session_id, dimensions=(rows, cols))
        logger.debug("Resized %s to %dx%d", session_id[:8], cols, rows)
        return True

    # --- Termination ---

    async def kill(self, session_id: str) -> None:
        """Terminate a session.  Killing an unknown or dead session is a no-op."""
        self.registry.remove(session_id)
        try:
            await self.backend.kill(session_id)
        except Exception as e:
            logger.debug("Kill of %s: %s", session_id[:8], e)

    async def force_kill_children(self, session_id: str) -> int:
        """Terminate the shell's descendants, leaving the shell alive.

        Returns how many were terminated, 0 when none or the session is gone.
        """
        if session_id not in self.registry:
            return 0
        try:
            count = await self.backend.kill_children(session_id)
        except Exception as e:
            logger.warning("Killing children of %s failed: %s", session_id[:8], e)
            return 0
        logger.info("Killed %d child process(es) of %s", count, session_id[:8])
        await self.refresh_child_count(session_id)
        return count

    async def refresh_child_count(self, session_id: str) -> int:
        try:
            count = await self.backend.child_count(session_id)
        except Exception:
            count = 0
        self.registry.update(session_id, child_process_count=count)
        return count

    # --- Respawn ---

    async def respawn(
        self,
        old_id: str,
        shell_type: ShellType | None = None,
        working_directory: str | None = None,
    ) -> str:
        """Replace an exited session with a fresh process.

        The replacement uses the same shell type and the directory the
        session was first spawned in, never a directory discovered in its
        output.  The registry entry moves to the new id and the old id is
        retired.  Raises ``RespawnFailure``; the entry is then left EXITED.
        """
        previous = self.registry.get(old_id)
        if previous is not None:
            shell_type = previous.shell_type
            working_directory = previous.working_directory
            rows, cols = previous.dimensions
        else:
            rows, cols = 24, 80
        if shell_type is None:
            raise RespawnFailure("unknown shell type", previous_id=old_id)

        self.registry.update(old_id, state=SessionState.RESPAWNING)
        try:
            self._check_available()
            new_id = await self.backend.spawn(
                shell_type, working_directory, rows, cols
            )
        except Exception as e:
            self.registry.update(old_id, state=SessionState.EXITED)
            logger.warning("Respawn of %s failed: %s", old_id[:8], e)
            raise RespawnFailure(str(e) or type(e).__name__, previous_id=old_id) from e

        self.registry.replace(
            old_id,
            new_id,
            Session(
                id=new_id,
                shell_type=shell_type,
                working_directory=working_directory,
                dimensions=(rows, cols),
                title=shell_type.display_name,
            ),
        )
        if self.router is not None:
            self.router.wire.send_respawned(old_id, new_id)
        logger.info("Respawned %s as %s", old_id[:8], new_id[:8])
        return new_id

    # --- Queries ---

    async def get_info(self, session_id: str) -> SessionInfo | None:
        try:
            return await self.backend.get_info(session_id)
        except Exception as e:
            logger.debug("get_info(%s) failed: %s", session_id[:8], e)
            return None

    async def list_sessions(self) -> list[str]:
        return await self.backend.list_sessions()

    async def shutdown(self) -> None:
        """Kill every session, ours and any the backend still tracks."""
        for session in self.registry.list_all():
            self.registry.remove(session.id)
        await self.backend.kill_all()
