"""Tests for termbridge.tui.restore (SessionSetStore)."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from termbridge.pty.types import ShellType
from termbridge.tui.restore import SavedTab, SessionSetStore


class TestSessionSetStore:
    async def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = SessionSetStore(tmp_path / "none.json")
        assert await store.load() == []

    async def test_save_then_load(self, tmp_path: Path) -> None:
        store = SessionSetStore(tmp_path / "nested" / "session.json")
        tabs = [
            SavedTab(ShellType.BASH, "/home/u"),
            SavedTab(ShellType.ZSH, None),
        ]
        await store.save(tabs)
        assert await store.load() == tabs

    async def test_file_format(self, tmp_path: Path) -> None:
        path = tmp_path / "session.json"
        await SessionSetStore(path).save([SavedTab(ShellType.SH, "/srv")])
        assert json.loads(path.read_text()) == [
            {"shell_type": "sh", "working_directory": "/srv"}
        ]

    async def test_malformed_file_is_ignored(self, tmp_path: Path, caplog) -> None:
        path = tmp_path / "session.json"
        path.write_text("{not json")
        with caplog.at_level(logging.WARNING):
            assert await SessionSetStore(path).load() == []
        assert any("malformed" in r.getMessage() for r in caplog.records)

    async def test_invalid_utf8_is_ignored(self, tmp_path: Path, caplog) -> None:
        path = tmp_path / "session.json"
        path.write_bytes(b"\xff\xfe[\x80]")
        with caplog.at_level(logging.WARNING):
            assert await SessionSetStore(path).load() == []
        assert any("malformed" in r.getMessage() for r in caplog.records)

    async def test_unreadable_path_is_ignored(self, tmp_path: Path) -> None:
        # A directory where the file should be fails at open()
        path = tmp_path / "session.json"
        path.mkdir()
        assert await SessionSetStore(path).load() == []

    async def test_non_list_is_ignored(self, tmp_path: Path) -> None:
        path = tmp_path / "session.json"
        path.write_text('{"shell_type": "bash"}')
        assert await SessionSetStore(path).load() == []

    async def test_unknown_shell_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "session.json"
        path.write_text(
            json.dumps(
                [
                    {"shell_type": "tcsh", "working_directory": "/a"},
                    {"shell_type": "bash", "working_directory": "/b"},
                    "garbage",
                ]
            )
        )
        assert await SessionSetStore(path).load() == [SavedTab(ShellType.BASH, "/b")]

    def test_path_expands_user(self) -> None:
        store = SessionSetStore("~/x/session.json")
        assert "~" not in str(store.path)
