"""Tests for termbridge.bridge.lifecycle (LifecycleManager)."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, patch

import pytest
from conftest import FakeBackend, settle

from termbridge.bridge.errors import BackendUnavailable, RespawnFailure, SpawnFailure
from termbridge.bridge.lifecycle import LifecycleManager
from termbridge.bridge.registry import SessionState
from termbridge.bridge.router import EventRouter
from termbridge.pty.types import ShellType
from termbridge.session.wire import EventType, Wire


# ---------------------------------------------------------------------------
# Spawn
# ---------------------------------------------------------------------------


class TestSpawn:
    async def test_spawn_registers_pending(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.ZSH, "/home/u", rows=30, cols=100)
        session = lifecycle.registry.get(sid)
        assert session is not None
        assert session.state == SessionState.PENDING
        assert session.shell_type == ShellType.ZSH
        assert session.working_directory == "/home/u"
        assert session.dimensions == (30, 100)
        assert session.title == "Zsh"
        assert backend.spawned[0][1:] == (ShellType.ZSH, "/home/u", 30, 100)

    async def test_activate(self, lifecycle: LifecycleManager) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        lifecycle.activate(sid)
        assert [s.id for s in lifecycle.registry.list_active()] == [sid]

    async def test_spawn_failure_carries_reason(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        backend.spawn_errors.append(FileNotFoundError("Zsh executable not found: zsh"))
        with pytest.raises(SpawnFailure) as exc_info:
            await lifecycle.spawn(ShellType.ZSH)
        assert "not found" in exc_info.value.reason
        assert exc_info.value.shell_type == "zsh"
        assert len(lifecycle.registry) == 0

    async def test_spawn_is_not_retried(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        backend.spawn_errors.append(OSError("no pty"))
        with pytest.raises(SpawnFailure):
            await lifecycle.spawn(ShellType.BASH)
        assert backend.spawned == []

    async def test_unavailable_backend_fails_fast(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        lifecycle.mark_unavailable()
        with pytest.raises(BackendUnavailable):
            await lifecycle.spawn(ShellType.BASH)
        assert backend.spawned == []
        assert not lifecycle.available

    async def test_unavailable_publishes_error_once(
        self, lifecycle: LifecycleManager, wire: Wire
    ) -> None:
        queue = wire.subscribe()
        lifecycle.mark_unavailable("no openpty")
        lifecycle.mark_unavailable("no openpty")
        event = queue.get_nowait()
        assert event.type == EventType.ERROR
        assert event.data == {"error": "no openpty"}
        assert queue.empty()


# ---------------------------------------------------------------------------
# Write / resize
# ---------------------------------------------------------------------------


class TestWriteResize:
    async def test_write_forwards(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        assert await lifecycle.write(sid, "ls\r") is True
        assert backend.writes == [(sid, "ls\r")]

    async def test_write_unknown_session_is_logged_not_raised(
        self, lifecycle: LifecycleManager, caplog
    ) -> None:
        with caplog.at_level(logging.WARNING):
            assert await lifecycle.write("ghost", "x") is False
        assert any("write to ghost" in r.getMessage() for r in caplog.records)

    async def test_write_io_error_is_swallowed(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        backend.write_error = OSError("EIO")
        assert await lifecycle.write(sid, "x") is False
        backend.write_error = None
        assert await lifecycle.write(sid, "y") is True

    async def test_resize_records_dimensions(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        assert await lifecycle.resize(sid, 50, 132) is True
        assert backend.resizes == [(sid, 50, 132)]
        session = lifecycle.registry.get(sid)
        assert session is not None and session.dimensions == (50, 132)

    async def test_resize_rejects_empty_size(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        assert await lifecycle.resize(sid, 0, 80) is False
        assert backend.resizes == []

    async def test_resize_unknown_session(self, lifecycle: LifecycleManager) -> None:
        assert await lifecycle.resize("ghost", 24, 80) is False


# ---------------------------------------------------------------------------
# Kill
# ---------------------------------------------------------------------------


class TestKill:
    async def test_kill_is_idempotent(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        await lifecycle.kill(sid)
        await lifecycle.kill(sid)
        assert sid not in lifecycle.registry
        assert sid not in backend.alive

    async def test_kill_retires_id_before_backend_call(
        self, lifecycle: LifecycleManager, backend: FakeBackend, router: EventRouter
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        seen: list[bool] = []
        original = backend.kill

        async def kill(session_id: str) -> None:
            seen.append(router.is_retired(session_id))
            await original(session_id)

        backend.kill = kill  # type: ignore[method-assign]
        await lifecycle.kill(sid)
        assert seen == [True]

    async def test_kill_unknown_is_noop(self, lifecycle: LifecycleManager) -> None:
        await lifecycle.kill("never-existed")

    async def test_force_kill_children(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        backend.children[sid] = 3
        assert await lifecycle.force_kill_children(sid) == 3
        assert sid in backend.alive
        session = lifecycle.registry.get(sid)
        assert session is not None and session.child_process_count == 0

    async def test_force_kill_children_none(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        assert await lifecycle.force_kill_children(sid) == 0

    async def test_force_kill_children_unknown(self, lifecycle: LifecycleManager) -> None:
        assert await lifecycle.force_kill_children("ghost") == 0

    async def test_refresh_child_count(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        backend.children[sid] = 2
        assert await lifecycle.refresh_child_count(sid) == 2
        session = lifecycle.registry.get(sid)
        assert session is not None and session.child_process_count == 2


# ---------------------------------------------------------------------------
# Respawn
# ---------------------------------------------------------------------------


class TestRespawn:
    async def test_respawn_uses_original_directory(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.ZSH, "/home/u")
        new_id = await lifecycle.respawn(sid, ShellType.BASH, "/somewhere/else")
        # Registry truth wins over caller-supplied values
        assert backend.spawned[-1][1:3] == (ShellType.ZSH, "/home/u")
        session = lifecycle.registry.get(new_id)
        assert session is not None
        assert session.working_directory == "/home/u"

    async def test_respawn_retires_old_id(
        self, lifecycle: LifecycleManager, router: EventRouter
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        new_id = await lifecycle.respawn(sid)
        assert new_id != sid
        assert sid not in lifecycle.registry
        assert router.is_retired(sid)
        assert not router.is_retired(new_id)

    async def test_respawn_keeps_dimensions(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        await lifecycle.resize(sid, 40, 120)
        await lifecycle.respawn(sid)
        assert backend.spawned[-1][3:] == (40, 120)

    async def test_respawn_publishes_event(
        self, lifecycle: LifecycleManager, wire: Wire
    ) -> None:
        q = wire.subscribe()
        sid = await lifecycle.spawn(ShellType.BASH)
        new_id = await lifecycle.respawn(sid)
        events = []
        while not q.empty():
            events.append(q.get_nowait())
        respawned = [e for e in events if e.type == EventType.RESPAWNED]
        assert len(respawned) == 1
        assert respawned[0].data == {"session_id": new_id, "previous_id": sid}

    async def test_respawn_failure_leaves_session_exited(
        self, lifecycle: LifecycleManager, backend: FakeBackend
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        backend.spawn_errors.append(OSError("out of ptys"))
        with pytest.raises(RespawnFailure) as exc_info:
            await lifecycle.respawn(sid)
        assert exc_info.value.previous_id == sid
        assert "out of ptys" in exc_info.value.reason
        session = lifecycle.registry.get(sid)
        assert session is not None and session.state == SessionState.EXITED

    async def test_respawn_unknown_needs_shell_type(
        self, lifecycle: LifecycleManager
    ) -> None:
        with pytest.raises(RespawnFailure):
            await lifecycle.respawn("ghost")


# ---------------------------------------------------------------------------
# Queries / shutdown
# ---------------------------------------------------------------------------


class TestQueries:
    async def test_get_info_and_list(self, lifecycle: LifecycleManager) -> None:
        sid = await lifecycle.spawn(ShellType.SH, "/tmp")
        info = await lifecycle.get_info(sid)
        assert info is not None
        assert info.working_directory == "/tmp"
        assert await lifecycle.list_sessions() == [sid]
        assert await lifecycle.get_info("ghost") is None

    async def test_shutdown_kills_everything(
        self, lifecycle: LifecycleManager, backend: FakeBackend, router: EventRouter
    ) -> None:
        a = await lifecycle.spawn(ShellType.BASH)
        b = await lifecycle.spawn(ShellType.BASH)
        await lifecycle.shutdown()
        await settle()
        assert backend.alive == set()
        assert len(lifecycle.registry) == 0
        assert router.is_retired(a) and router.is_retired(b)


# ---------------------------------------------------------------------------
# Backend errors (mocked backend)
# ---------------------------------------------------------------------------


class TestBackendErrors:
    async def test_kill_error_is_swallowed(self, lifecycle: LifecycleManager) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        with patch.object(
            lifecycle.backend, "kill", AsyncMock(side_effect=OSError("ESRCH"))
        ) as mock_kill:
            await lifecycle.kill(sid)
        mock_kill.assert_awaited_once_with(sid)
        assert sid not in lifecycle.registry

    async def test_resize_error_keeps_old_dimensions(
        self, lifecycle: LifecycleManager
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH, rows=24, cols=80)
        with patch.object(
            lifecycle.backend, "resize", AsyncMock(side_effect=OSError("EBADF"))
        ):
            assert await lifecycle.resize(sid, 30, 90) is False
        session = lifecycle.registry.get(sid)
        assert session is not None and session.dimensions == (24, 80)

    async def test_kill_children_error_returns_zero(
        self, lifecycle: LifecycleManager
    ) -> None:
        sid = await lifecycle.spawn(ShellType.BASH)
        with patch.object(
            lifecycle.backend,
            "kill_children",
            AsyncMock(side_effect=PermissionError("EPERM")),
        ):
            assert await lifecycle.force_kill_children(sid) == 0

    async def test_get_info_error_returns_none(self, lifecycle: LifecycleManager) -> None:
        with patch.object(
            lifecycle.backend, "get_info", AsyncMock(side_effect=RuntimeError("gone"))
        ):
            assert await lifecycle.get_info("s") is None

    async def test_spawn_error_without_message_uses_type_name(
        self, lifecycle: LifecycleManager
    ) -> None:
        with patch.object(lifecycle.backend, "spawn", AsyncMock(side_effect=OSError())):
            with pytest.raises(SpawnFailure) as exc_info:
                await lifecycle.spawn(ShellType.BASH)
        assert exc_info.value.reason == "OSError"
