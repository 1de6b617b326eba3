"""Session-set persistence — remember which tabs were open between runs.

Only the shell type and the directory each tab was *first* spawned in are
stored; directories discovered from shell output are never persisted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

import aiofiles

from termbridge.pty.types import ShellType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SavedTab:
    shell_type: ShellType
    working_directory: str | None = None


class SessionSetStore:
    """Reads and writes the saved tab set as a JSON list."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    async def load(self) -> list[SavedTab]:
        """Return the saved tabs; a missing or malformed file yields []."""
        if not self.path.exists():
            return []

        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
            data = json.loads(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring malformed session file %s: %s", self.path, e)
            return []
        if not isinstance(data, list):
            logger.warning("Ignoring session file %s: expected a list", self.path)
            return []

        tabs: list[SavedTab] = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                shell_type = ShellType(item.get("shell_type", ""))
            except ValueError:
                logger.warning("Skipping saved tab with unknown shell %r", item)
                continue
            directory = item.get("working_directory")
            tabs.append(
                SavedTab(
                    shell_type=shell_type,
                    working_directory=directory if isinstance(directory, str) else None,
                )
            )
        return tabs

    async def save(self, tabs: list[SavedTab]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [
            {**asdict(tab), "shell_type": tab.shell_type.value} for tab in tabs
        ]
        async with aiofiles.open(self.path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
        logger.debug("Saved %d tab(s) to %s", len(tabs), self.path)
