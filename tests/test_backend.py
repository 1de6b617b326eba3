"""Tests for termbridge.pty (PTYBackend, ShellType) against a real /bin/sh."""

from __future__ import annotations

import asyncio
import shutil
import sys

import pytest

from termbridge.pty.backend import PTYBackend, SessionNotFound
from termbridge.pty.types import ShellType
from termbridge.session.wire import EventType, Wire, WireEvent

posix_only = pytest.mark.skipif(
    sys.platform == "win32" or shutil.which("sh") is None,
    reason="needs a POSIX pty and sh",
)


async def collect(queue: asyncio.Queue, until, timeout: float = 5.0) -> list[WireEvent]:
    """Drain wire events until ``until(events)`` holds or the timeout passes."""
    events: list[WireEvent] = []
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not until(events):
        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        try:
            event = await asyncio.wait_for(queue.get(), timeout=remaining)
        except asyncio.TimeoutError:
            break
        if event is not None:
            events.append(event)
    return events


def output_of(events: list[WireEvent], session_id: str) -> str:
    return "".join(
        e.data["data"]
        for e in events
        if e.type == EventType.OUTPUT and e.session_id == session_id
    )


# ---------------------------------------------------------------------------
# ShellType
# ---------------------------------------------------------------------------


class TestShellType:
    def test_display_names(self) -> None:
        assert ShellType.BASH.display_name == "Bash"
        assert ShellType.CMD.display_name == "Command Prompt"

    def test_values(self) -> None:
        assert {s.value for s in ShellType} == {"bash", "zsh", "powershell", "cmd", "sh"}

    def test_missing_executable(self) -> None:
        with pytest.raises(FileNotFoundError):
            ShellType.BASH.resolve_command({"bash": ["definitely-not-a-shell-xyz"]})

    @posix_only
    def test_override_is_resolved(self) -> None:
        argv = ShellType.BASH.resolve_command({"bash": ["sh", "-i"]})
        assert argv[0] == shutil.which("sh")
        assert argv[1:] == ["-i"]


# ---------------------------------------------------------------------------
# PTYBackend
# ---------------------------------------------------------------------------


@posix_only
class TestPTYBackend:
    async def test_spawn_echo_and_exit_code(self, tmp_path) -> None:
        wire = Wire()
        queue = wire.subscribe()
        backend = PTYBackend(wire)
        sid = await backend.spawn(ShellType.SH, str(tmp_path))
        try:
            info = await backend.get_info(sid)
            assert info is not None and info.is_alive and info.pid > 0

            await backend.write(sid, "echo marker-$((40+2))\n")
            events = await collect(queue, lambda ev: "marker-42" in output_of(ev, sid))
            assert "marker-42" in output_of(events, sid)

            await backend.write(sid, "exit 3\n")
            events = await collect(
                queue, lambda ev: any(e.type == EventType.EXIT for e in ev)
            )
            exits = [e for e in events if e.type == EventType.EXIT]
            assert exits and exits[0].data == {"session_id": sid, "exit_code": 3}
            assert sid not in await backend.list_sessions()
        finally:
            await backend.kill_all()

    async def test_spawn_publishes_spawned(self) -> None:
        wire = Wire()
        queue = wire.subscribe()
        backend = PTYBackend(wire)
        sid = await backend.spawn(ShellType.SH)
        try:
            events = await collect(
                queue, lambda ev: any(e.type == EventType.SPAWNED for e in ev)
            )
            spawned = [e for e in events if e.type == EventType.SPAWNED]
            assert spawned[0].data == {"session_id": sid, "shell_type": "sh"}
        finally:
            await backend.kill_all()

    async def test_kill_is_idempotent_and_silent(self) -> None:
        wire = Wire()
        backend = PTYBackend(wire)
        sid = await backend.spawn(ShellType.SH)
        queue = wire.subscribe()
        await backend.kill(sid)
        await backend.kill(sid)
        events = await collect(queue, lambda ev: False, timeout=0.3)
        assert not any(e.type == EventType.EXIT for e in events)
        assert len(backend) == 0

    async def test_unknown_session(self) -> None:
        backend = PTYBackend(Wire())
        with pytest.raises(SessionNotFound):
            await backend.write("ghost", "x")
        assert await backend.get_info("ghost") is None

    async def test_resize_and_children(self) -> None:
        backend = PTYBackend(Wire())
        sid = await backend.spawn(ShellType.SH)
        try:
            await backend.resize(sid, 40, 100)
            assert await backend.kill_children(sid) == 0
            assert await backend.child_count(sid) == 0
        finally:
            await backend.kill_all()

    async def test_bad_override_fails_spawn(self) -> None:
        backend = PTYBackend(Wire(), shell_commands={"sh": ["no-such-shell-xyz"]})
        with pytest.raises(FileNotFoundError):
            await backend.spawn(ShellType.SH)
        assert len(backend) == 0
