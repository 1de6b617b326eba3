"""Terminal — binds one display surface to one (re)spawnable shell session.

This is the caller side of the bridge for a single pane:

* subscribes to the event router *before* spawning, so a prompt printed
  before ``spawn`` returns is buffered and replayed in order;
* writes failures inline into the pane rather than raising;
* respawns the shell when it exits on its own, in the directory it was
  first started in;
* tears down in a fixed order: detach listeners, cancel timers and tasks,
  kill the process, dispose the surface.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Callable

from termbridge.bridge.errors import BackendUnavailable, RespawnFailure, SpawnFailure
from termbridge.bridge.input import (
    DEFAULT_DOUBLE_INTERRUPT_MS,
    Clipboard,
    InputClassifier,
    KeyDecision,
    KeyPress,
)
from termbridge.bridge.lifecycle import LifecycleManager
from termbridge.bridge.resize import DEFAULT_DEBOUNCE_MS, ResizeCoordinator
from termbridge.bridge.router import Subscription
from termbridge.bridge.surface import DisplaySurface
from termbridge.pty.types import ShellType

logger = logging.getLogger(__name__)

GRAY = "\x1b[90m"
BOLD_RED = "\x1b[1;31m"
RESET = "\x1b[0m"


def exit_line(exit_code: int | None) -> str:
    code = "unknown" if exit_code is None else exit_code
    return f"\r\n{GRAY}[Process exited with code {code}]{RESET}\r\n"


RESTART_LINE = f"{GRAY}[Restarting shell...]{RESET}\r\n\r\n"


def failure_line(action: str, reason: str) -> str:
    return f"\r\n{BOLD_RED}[Failed to {action}: {reason}]{RESET}\r\n"


class TerminalState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    RESPAWNING = "respawning"
    FAILED = "failed"  # Spawn or respawn failed, no automatic retry
    CLOSED = "closed"


class _MemoryClipboard:
    def __init__(self) -> None:
        self.text = ""

    async def read_text(self) -> str:
        return self.text

    async def write_text(self, text: str) -> None:
        self.text = text


class Terminal:
    """One pane's shell session."""

    def __init__(
        self,
        lifecycle: LifecycleManager,
        surface: DisplaySurface,
        shell_type: ShellType = ShellType.BASH,
        working_directory: str | None = None,
        *,
        clipboard: Clipboard | None = None,
        startup_command: str | None = None,
        resize_debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        double_interrupt_ms: int = DEFAULT_DOUBLE_INTERRUPT_MS,
        on_ready: Callable[[str], None] | None = None,
        on_exit: Callable[[int | None], None] | None = None,
        on_title_change: Callable[[str], None] | None = None,
        on_cwd_change: Callable[[str], None] | None = None,
        on_error: Callable[[str], None] | None = None,
    ) -> None:
        if lifecycle.router is None:
            raise ValueError("Terminal needs a lifecycle manager with an event router")
        self.lifecycle = lifecycle
        self.router = lifecycle.router
        self.surface = surface
        self.shell_type = shell_type
        # Captured once; respawns never use a directory parsed from output
        self.working_directory = working_directory
        self.startup_command = startup_command
        self.on_ready = on_ready
        self.on_exit = on_exit
        self.on_title_change = on_title_change
        self.on_cwd_change = on_cwd_change
        self.on_error = on_error

        self._session_id: str | None = None
        self._state = TerminalState.IDLE
        self._subscription: Subscription | None = None
        self._remove_data_listener: Callable[[], None] | None = None
        self._respawn_task: asyncio.Task | None = None
        self._writes: set[asyncio.Task] = set()
        self.last_error: str | None = None

        self.resizer = ResizeCoordinator(
            fit=surface.fit,
            session_id=lambda: self._session_id,
            resize=lifecycle.resize,
            debounce_ms=resize_debounce_ms,
            track=self._track_handle,
        )
        self.input = InputClassifier(
            target=lifecycle,
            session_id=lambda: self._session_id,
            selection=surface,
            clipboard=clipboard or _MemoryClipboard(),
            double_interrupt_ms=double_interrupt_ms,
        )

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def state(self) -> TerminalState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state == TerminalState.CLOSED

    # --- Boot ---

    async def start(self) -> str | None:
        """Spawn the shell.  Returns the session id, or None on failure."""
        if self._state != TerminalState.IDLE:
            return self._session_id
        self._state = TerminalState.STARTING

        # Listen first: output can arrive before spawn() returns
        self._subscription = self.router.subscribe(
            on_output=self._on_output,
            on_exit=self._on_exit,
            on_cwd_change=self._on_cwd,
        )
        self._remove_data_listener = self.surface.on_data(self._on_input)

        rows, cols = self.surface.fit()
        try:
            session_id = await self.lifecycle.spawn(
                self.shell_type, self.working_directory, rows, cols
            )
        except SpawnFailure as e:
            self._fail("start shell", e.reason)
            return None
        except BackendUnavailable as e:
            self._fail("start shell", str(e))
            return None

        if self.closed:
            await self.lifecycle.kill(session_id)
            return None

        self._link(session_id)
        if self._state != TerminalState.RUNNING:
            return session_id
        await self.lifecycle.resize(session_id, rows, cols)
        if self.on_ready is not None:
            self.on_ready(session_id)
        if self.startup_command:
            await self.lifecycle.write(session_id, self.startup_command + "\r")
        return session_id

    def _link(self, session_id: str) -> None:
        """Resolve the subscription and own the registry entry's resources."""
        assert self._subscription is not None
        self._session_id = session_id
        self.lifecycle.activate(session_id)
        resources = self.lifecycle.registry.resources(session_id)
        if resources is not None and not resources.cleanups:
            resources.add_cleanup(self._detach)
            resources.add_cleanup(self.resizer.cancel)
        self._state = TerminalState.RUNNING
        # Replay may deliver an exit, which moves us on to RESPAWNING
        replayed = self._subscription.resolve(session_id)
        if replayed:
            logger.debug("Replayed %d early event(s) for %s", replayed, session_id[:8])

    def _track_handle(self, handle: asyncio.TimerHandle) -> None:
        if self._session_id is None:
            return
        resources = self.lifecycle.registry.resources(self._session_id)
        if resources is not None:
            resources.add_handle(handle)

    def _fail(self, action: str, reason: str) -> None:
        if self.closed:
            return
        self._state = TerminalState.FAILED
        self.last_error = reason
        self.surface.write(failure_line(action, reason))
        if self._subscription is not None:
            self._subscription.close()
        if self.on_error is not None:
            self.on_error(reason)

    # --- Events from the router ---

    def _on_output(self, data: str) -> None:
        if self.closed:
            return
        self.surface.write(data)

    def _on_cwd(self, cwd: str) -> None:
        if self.on_cwd_change is not None:
            self.on_cwd_change(cwd)

    def _on_exit(self, exit_code: int | None) -> None:
        if self.closed or self._session_id is None:
            return
        old_id = self._session_id
        self.surface.write(exit_line(exit_code))
        self.lifecycle.mark_exited(old_id, exit_code)
        if self.on_exit is not None:
            self.on_exit(exit_code)

        self._state = TerminalState.RESPAWNING
        # Buffer the replacement's early output until its id is known
        assert self._subscription is not None
        self._subscription.expect_new_id()
        self.surface.write(RESTART_LINE)
        self._respawn_task = asyncio.create_task(self._respawn(old_id))

    async def _respawn(self, old_id: str) -> None:
        try:
            new_id = await self.lifecycle.respawn(
                old_id, self.shell_type, self.working_directory
            )
        except RespawnFailure as e:
            if not self.closed:
                self._fail("restart shell", e.reason)
            return
        finally:
            self._respawn_task = None

        if self.closed:
            await self.lifecycle.kill(new_id)
            return

        self._link(new_id)
        if self._state != TerminalState.RUNNING:
            return
        rows, cols = self.surface.fit()
        await self.lifecycle.resize(new_id, rows, cols)
        if self.on_title_change is not None:
            self.on_title_change(self.shell_type.display_name)
        logger.info("Shell respawned with new session id %s", new_id[:8])
        if self.on_ready is not None:
            self.on_ready(new_id)

    # --- Input ---

    def _on_input(self, data: str) -> None:
        session_id = self._session_id
        if session_id is None or self.closed:
            return
        task = asyncio.ensure_future(self.lifecycle.write(session_id, data))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def handle_key(self, key: KeyPress) -> KeyDecision:
        if self.closed:
            return KeyDecision.CONSUMED
        return await self.input.handle(key)

    async def paste(self, text: str | None = None) -> None:
        await self.input.paste(text)

    async def write(self, data: str) -> bool:
        if self._session_id is None or self.closed:
            return False
        return await self.lifecycle.write(self._session_id, data)

    def on_viewport_change(self) -> None:
        self.resizer.on_viewport_change()

    # --- Teardown ---

    def _detach(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self._remove_data_listener is not None:
            self._remove_data_listener()
            self._remove_data_listener = None

    async def close(self) -> None:
        """Tear the pane down.  Idempotent."""
        if self.closed:
            return
        self._state = TerminalState.CLOSED
        self._detach()
        self.resizer.cancel()
        for task in list(self._writes):
            task.cancel()
        session_id = self._session_id
        self._session_id = None
        if session_id is not None:
            await self.lifecycle.kill(session_id)
        # A respawn in flight kills its own replacement once it sees CLOSED
        task = self._respawn_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        self.surface.dispose()
