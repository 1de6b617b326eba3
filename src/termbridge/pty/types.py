"""PTY-related types shared by the backend and the bridge."""

from __future__ import annotations

import enum
import logging
import shutil
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class ShellType(enum.StrEnum):
    """The kind of shell a session runs.

    Two POSIX shells, two Windows shells and one minimal compatibility
    shell.  Each has a canonical display name used for pane titles.
    """

    BASH = "bash"
    ZSH = "zsh"
    POWERSHELL = "powershell"
    CMD = "cmd"
    SH = "sh"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def default_command(self) -> list[str]:
        return list(_DEFAULT_COMMANDS[self])

    def resolve_command(self, overrides: dict[str, list[str]] | None = None) -> list[str]:
        """Return the argv to launch this shell, with the executable resolved.

        ``overrides`` maps shell type values to a replacement argv (from the
        config file).  Raises ``FileNotFoundError`` when the executable is
        not on PATH.
        """
        argv = list((overrides or {}).get(self.value) or self.default_command)
        if not argv:
            raise FileNotFoundError(f"No command configured for {self.display_name}")
        resolved = shutil.which(argv[0])
        if resolved is None:
            raise FileNotFoundError(
                f"{self.display_name} executable not found: {argv[0]}"
            )
        logger.debug("Resolved %s to %s", self.value, resolved)
        return [resolved, *argv[1:]]


_DISPLAY_NAMES: dict[ShellType, str] = {
    ShellType.BASH: "Bash",
    ShellType.ZSH: "Zsh",
    ShellType.POWERSHELL: "PowerShell",
    ShellType.CMD: "Command Prompt",
    ShellType.SH: "POSIX sh",
}

_DEFAULT_COMMANDS: dict[ShellType, tuple[str, ...]] = {
    ShellType.BASH: ("bash", "-i"),
    ShellType.ZSH: ("zsh", "-i"),
    ShellType.POWERSHELL: ("pwsh", "-NoLogo"),
    ShellType.CMD: ("cmd.exe",),
    ShellType.SH: ("sh", "-i"),
}


@dataclass
class SpawnConfig:
    """Configuration for spawning a new PTY session."""

    shell_type: ShellType = ShellType.BASH
    working_directory: str | None = None
    rows: int = 24
    cols: int = 80
    command: list[str] | None = None  # Explicit argv, skips shell resolution


@dataclass(frozen=True)
class SessionInfo:
    """Backend-side information about a PTY session."""

    id: str
    shell_type: ShellType
    working_directory: str | None
    is_alive: bool
    pid: int = 0
