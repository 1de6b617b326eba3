"""Tests for termbridge.config (TermbridgeConfig.load)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from termbridge.config import TermbridgeConfig
from termbridge.pty.types import ShellType

ENV_VARS = (
    "TERMBRIDGE_SHELL",
    "TERMBRIDGE_RESIZE_DEBOUNCE_MS",
    "TERMBRIDGE_DOUBLE_INTERRUPT_MS",
    "TERMBRIDGE_EARLY_OUTPUT_LIMIT",
    "TERMBRIDGE_CWD_DETECTION",
    "TERMBRIDGE_SESSION_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self) -> None:
        config = TermbridgeConfig.load()
        assert config.terminal.shell == ShellType.BASH
        assert config.terminal.scrollback == 10_000
        assert config.bridge.early_output_limit == 100
        assert config.bridge.resize_debounce_ms == 100
        assert config.bridge.double_interrupt_ms == 500
        assert config.bridge.cwd_detection == "all"
        assert config.session_file == "~/.termbridge/session.json"

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = TermbridgeConfig.load(str(tmp_path / "nope.json"))
        assert config.terminal.shell == ShellType.BASH


class TestConfigFile:
    def test_values_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "termbridge.json"
        path.write_text(
            json.dumps(
                {
                    "terminal": {
                        "shell": "zsh",
                        "shell_commands": {"zsh": ["/opt/zsh", "-l"]},
                    },
                    "bridge": {"early_output_limit": 20, "cwd_detection": "osc7"},
                }
            )
        )
        config = TermbridgeConfig.load(str(path))
        assert config.terminal.shell == ShellType.ZSH
        assert config.terminal.shell_commands == {"zsh": ["/opt/zsh", "-l"]}
        assert config.bridge.early_output_limit == 20
        assert config.bridge.cwd_detection == "osc7"

    def test_invalid_value_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "termbridge.json"
        path.write_text(json.dumps({"bridge": {"early_output_limit": 0}}))
        with pytest.raises(ValidationError):
            TermbridgeConfig.load(str(path))


class TestEnvOverrides:
    def test_env_beats_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "termbridge.json"
        path.write_text(json.dumps({"terminal": {"shell": "zsh"}}))
        monkeypatch.setenv("TERMBRIDGE_SHELL", "SH")
        monkeypatch.setenv("TERMBRIDGE_RESIZE_DEBOUNCE_MS", "250")
        monkeypatch.setenv("TERMBRIDGE_DOUBLE_INTERRUPT_MS", "300")
        monkeypatch.setenv("TERMBRIDGE_EARLY_OUTPUT_LIMIT", "42")
        monkeypatch.setenv("TERMBRIDGE_CWD_DETECTION", "OFF")
        monkeypatch.setenv("TERMBRIDGE_SESSION_FILE", "/tmp/tabs.json")
        config = TermbridgeConfig.load(str(path))
        assert config.terminal.shell == ShellType.SH
        assert config.bridge.resize_debounce_ms == 250
        assert config.bridge.double_interrupt_ms == 300
        assert config.bridge.early_output_limit == 42
        assert config.bridge.cwd_detection == "off"
        assert config.session_file == "/tmp/tabs.json"

    def test_unknown_cwd_mode_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TERMBRIDGE_CWD_DETECTION", "sometimes")
        with pytest.raises(ValidationError):
            TermbridgeConfig.load()

    def test_unknown_shell_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TERMBRIDGE_SHELL", "tcsh")
        with pytest.raises(ValidationError):
            TermbridgeConfig.load()
