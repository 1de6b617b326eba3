"""Configuration — Pydantic models for termbridge settings."""

from __future__ import annotations

import json
import os
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from termbridge.pty.types import ShellType


class TerminalConfig(BaseModel):
    """Shell and screen defaults for new panes."""

    shell: ShellType = Field(default=ShellType.BASH, description="Shell for new tabs")
    rows: int = Field(default=24, ge=1)
    cols: int = Field(default=80, ge=1)
    scrollback: int = Field(default=10_000, ge=0, description="Lines kept per pane")
    shell_commands: dict[str, list[str]] = Field(
        default_factory=dict,
        description=(
            "Per-shell argv overrides keyed by shell type, e.g. "
            '{"bash": ["/usr/local/bin/bash", "--login"]}'
        ),
    )


class BridgeConfig(BaseModel):
    """Session bridge tuning."""

    early_output_limit: int = Field(
        default=100,
        ge=1,
        description="Max events buffered per pane before its session id is known",
    )
    resize_debounce_ms: int = Field(default=100, ge=0)
    double_interrupt_ms: int = Field(
        default=500,
        ge=0,
        description="Window in which a second Ctrl+C kills child processes",
    )
    cwd_detection: Literal["all", "osc7", "off"] = Field(
        default="all",
        description=(
            "'all' uses OSC 7 and prompt heuristics, 'osc7' only the escape "
            "sequence, 'off' disables working-directory detection."
        ),
    )


class TermbridgeConfig(BaseModel):
    """Top-level termbridge configuration."""

    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    session_file: str = Field(
        default="~/.termbridge/session.json",
        description="Where the set of open tabs is saved between runs",
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> TermbridgeConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TERMBRIDGE_SHELL                - Shell type for new tabs (bash, zsh, ...)
            TERMBRIDGE_RESIZE_DEBOUNCE_MS   - Resize quiet period
            TERMBRIDGE_DOUBLE_INTERRUPT_MS  - Double Ctrl+C window
            TERMBRIDGE_EARLY_OUTPUT_LIMIT   - Early-output buffer bound
            TERMBRIDGE_CWD_DETECTION        - all / osc7 / off
            TERMBRIDGE_SESSION_FILE         - Saved tab set location
        """
        # .env values win over stale exported shell vars
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        terminal = config_data.get("terminal", {})
        env_shell = os.environ.get("TERMBRIDGE_SHELL")
        if env_shell:
            terminal["shell"] = env_shell.lower()
        if terminal:
            config_data["terminal"] = terminal

        bridge = config_data.get("bridge", {})
        env_debounce = os.environ.get("TERMBRIDGE_RESIZE_DEBOUNCE_MS")
        if env_debounce:
            bridge["resize_debounce_ms"] = int(env_debounce)

        env_double = os.environ.get("TERMBRIDGE_DOUBLE_INTERRUPT_MS")
        if env_double:
            bridge["double_interrupt_ms"] = int(env_double)

        env_limit = os.environ.get("TERMBRIDGE_EARLY_OUTPUT_LIMIT")
        if env_limit:
            bridge["early_output_limit"] = int(env_limit)

        env_cwd = os.environ.get("TERMBRIDGE_CWD_DETECTION")
        if env_cwd:
            bridge["cwd_detection"] = env_cwd.lower()
        if bridge:
            config_data["bridge"] = bridge

        env_session_file = os.environ.get("TERMBRIDGE_SESSION_FILE")
        if env_session_file:
            config_data["session_file"] = env_session_file

        return cls.model_validate(config_data)
