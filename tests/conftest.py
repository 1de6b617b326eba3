"""Shared fixtures: an in-memory backend and display surface."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from termbridge.bridge.lifecycle import LifecycleManager
from termbridge.bridge.router import EventRouter
from termbridge.pty.backend import SessionNotFound
from termbridge.pty.types import SessionInfo, ShellType
from termbridge.session.wire import Wire


async def settle(rounds: int = 30) -> None:
    """Let queued callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeBackend:
    """Backend that tracks calls and publishes on a real Wire.

    ``early_output`` chunks are sent for a new session *before* ``spawn``
    returns, with the loop yielded in between, the way a fast shell prompt
    beats the spawn acknowledgement.
    """

    def __init__(self, wire: Wire) -> None:
        self.wire = wire
        self.spawned: list[tuple[str, ShellType, str | None, int, int]] = []
        self.writes: list[tuple[str, str]] = []
        self.resizes: list[tuple[str, int, int]] = []
        self.kills: list[str] = []
        self.kill_children_calls: list[str] = []
        self.children: dict[str, int] = {}
        self.alive: set[str] = set()
        self.spawn_errors: list[Exception] = []
        self.write_error: Exception | None = None
        self.early_output: list[str] = []
        self._counter = 0

    async def spawn(
        self,
        shell_type: ShellType,
        working_directory: str | None = None,
        rows: int = 24,
        cols: int = 80,
    ) -> str:
        if self.spawn_errors:
            raise self.spawn_errors.pop(0)
        self._counter += 1
        session_id = f"session-{self._counter:04d}"
        self.spawned.append((session_id, shell_type, working_directory, rows, cols))
        self.alive.add(session_id)
        for chunk in self.early_output:
            self.wire.send_output(session_id, chunk)
        await settle()
        return session_id

    def _require(self, session_id: str) -> None:
        if session_id not in self.alive:
            raise SessionNotFound(f"PTY session not found: {session_id}")

    async def write(self, session_id: str, data: str) -> None:
        self._require(session_id)
        if self.write_error is not None:
            raise self.write_error
        self.writes.append((session_id, data))

    async def resize(self, session_id: str, rows: int, cols: int) -> None:
        self._require(session_id)
        self.resizes.append((session_id, rows, cols))

    async def kill(self, session_id: str) -> None:
        # Like the real backend: an explicit kill publishes no exit event
        self.kills.append(session_id)
        self.alive.discard(session_id)

    async def kill_children(self, session_id: str) -> int:
        self._require(session_id)
        self.kill_children_calls.append(session_id)
        count = self.children.get(session_id, 0)
        self.children[session_id] = 0
        return count

    async def child_count(self, session_id: str) -> int:
        self._require(session_id)
        return self.children.get(session_id, 0)

    async def get_info(self, session_id: str) -> SessionInfo | None:
        for sid, shell_type, directory, _rows, _cols in self.spawned:
            if sid == session_id:
                return SessionInfo(
                    id=sid,
                    shell_type=shell_type,
                    working_directory=directory,
                    is_alive=sid in self.alive,
                )
        return None

    async def list_sessions(self) -> list[str]:
        return sorted(self.alive)

    async def kill_all(self) -> None:
        for session_id in list(self.alive):
            await self.kill(session_id)

    # --- Test helpers ---

    def output(self, session_id: str, data: str) -> None:
        self.wire.send_output(session_id, data)

    def exit(self, session_id: str, exit_code: int | None) -> None:
        """Simulate the process dying on its own."""
        self.alive.discard(session_id)
        self.wire.send_exit(session_id, exit_code)


class FakeSurface:
    """Records writes; flags any write that arrives after dispose()."""

    def __init__(self, rows: int = 24, cols: int = 80) -> None:
        self._rows = rows
        self._cols = cols
        self.viewport: tuple[int, int] | None = None
        self.written: list[str] = []
        self.writes_after_dispose: list[str] = []
        self.selection = ""
        self._listeners: list[Callable[[str], None]] = []
        self._disposed = False

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def text(self) -> str:
        return "".join(self.written)

    def write(self, text: str) -> None:
        if self._disposed:
            self.writes_after_dispose.append(text)
            return
        self.written.append(text)

    def on_data(self, callback: Callable[[str], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def feed(self, data: str) -> None:
        for listener in list(self._listeners):
            listener(data)

    def resize(self, rows: int, cols: int) -> None:
        self._rows, self._cols = rows, cols

    def fit(self) -> tuple[int, int]:
        if self.viewport is not None:
            self.resize(*self.viewport)
        return self._rows, self._cols

    def get_selection(self) -> str:
        return self.selection

    def clear_selection(self) -> None:
        self.selection = ""

    def dispose(self) -> None:
        self._disposed = True
        self._listeners.clear()


@pytest.fixture
def wire() -> Wire:
    return Wire()


@pytest.fixture
def backend(wire: Wire) -> FakeBackend:
    return FakeBackend(wire)


@pytest.fixture
async def router(wire: Wire):
    router = EventRouter(wire)
    router.start()
    yield router
    await router.stop()


@pytest.fixture
def lifecycle(backend: FakeBackend, router: EventRouter) -> LifecycleManager:
    return LifecycleManager(backend, router=router)


@pytest.fixture
def surface() -> FakeSurface:
    return FakeSurface()
