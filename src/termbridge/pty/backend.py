"""PTY backend — owns every shell process and publishes their events.

This is the process-owning side of the bridge.  Commands come in one call
at a time (spawn, write, resize, kill, ...); output and exit events go out
unsolicited on a single global Wire, not filtered per consumer.
"""

from __future__ import annotations

import asyncio
import logging

from termbridge.pty.process import PTYProcess
from termbridge.pty.types import SessionInfo, ShellType, SpawnConfig
from termbridge.session.wire import Wire

logger = logging.getLogger(__name__)


class SessionNotFound(LookupError):
    """No live PTY session with the given id."""


class PTYBackend:
    """Manages the lifecycle of multiple PTY sessions.

    The backend ensures:
    - Sessions are tracked and can be looked up by ID
    - All sessions are killed on cleanup (no orphan processes)
    - Session limits are enforced
    - Output and exit are published on the Wire, tagged with the session id
    """

    MAX_SESSIONS = 32

    def __init__(
        self,
        wire: Wire,
        shell_commands: dict[str, list[str]] | None = None,
    ) -> None:
        self._sessions: dict[str, PTYProcess] = {}
        self._wire = wire
        self._shell_commands = shell_commands or {}

    async def spawn(
        self,
        shell_type: ShellType,
        working_directory: str | None = None,
        rows: int = 24,
        cols: int = 80,
    ) -> str:
        """Spawn a new shell and return its session id.

        Raises ``FileNotFoundError`` when the shell cannot be resolved and
        ``OSError`` when the PTY or process cannot be created.
        """
        return await self.spawn_config(
            SpawnConfig(
                shell_type=shell_type,
                working_directory=working_directory,
                rows=rows,
                cols=cols,
            )
        )

    async def spawn_config(self, config: SpawnConfig) -> str:
        if len(self._sessions) >= self.MAX_SESSIONS:
            raise OSError(f"Session limit reached ({self.MAX_SESSIONS})")

        argv = config.command or config.shell_type.resolve_command(self._shell_commands)
        process = PTYProcess(config=config)

        wire = self._wire

        def _on_output(p: PTYProcess, data: str) -> None:
            wire.send_output(p.id, data)

        def _on_exit(p: PTYProcess, exit_code: int | None) -> None:
            self._sessions.pop(p.id, None)
            wire.send_exit(p.id, exit_code)
            logger.info("PTY session %s terminated", p.id)

        process.set_on_output(_on_output)
        process.set_on_exit(_on_exit)

        # Tracked before start so output read right away is attributable
        self._sessions[process.id] = process
        try:
            await process.start(argv)
        except BaseException:
            self._sessions.pop(process.id, None)
            raise

        wire.send_spawned(process.id, config.shell_type.value)
        logger.info(
            "Spawned PTY session %s with shell %s", process.id, config.shell_type.value
        )
        return process.id

    def _require(self, session_id: str) -> PTYProcess:
        process = self._sessions.get(session_id)
        if process is None or not process.alive:
            raise SessionNotFound(f"PTY session not found: {session_id}")
        return process

    async def write(self, session_id: str, data: str) -> None:
        """Write input data to a PTY session."""
        process = self._require(session_id)
        if len(data) == 1 and ord(data) < 32:
            logger.debug(
                "Sending control character 0x%02X (Ctrl+%s) to PTY %s",
                ord(data),
                chr(ord(data) + 64),
                session_id[:8],
            )
        process.write(data)

    async def resize(self, session_id: str, rows: int, cols: int) -> None:
        self._require(session_id).resize(rows, cols)

    async def kill(self, session_id: str) -> None:
        """Kill a session and remove it from tracking. Unknown ids are a no-op."""
        process = self._sessions.pop(session_id, None)
        if process is None:
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, process.kill)

    async def kill_children(self, session_id: str) -> int:
        """Kill the descendants of a session's shell, not the shell itself."""
        process = self._require(session_id)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, process.kill_children)

    async def child_count(self, session_id: str) -> int:
        return len(self._require(session_id).children())

    async def get_info(self, session_id: str) -> SessionInfo | None:
        process = self._sessions.get(session_id)
        if process is None:
            return None
        return SessionInfo(
            id=process.id,
            shell_type=process.shell_type,
            working_directory=process.working_directory,
            is_alive=process.alive,
            pid=process.pid,
        )

    async def list_sessions(self) -> list[str]:
        return list(self._sessions.keys())

    async def kill_all(self) -> None:
        """Kill all sessions. Called on shutdown."""
        for session_id in list(self._sessions.keys()):
            await self.kill(session_id)
        logger.info("All PTY sessions cleaned up")

    def __len__(self) -> int:
        return len(self._sessions)
