"""Startup configuration — what the command line asked the first tab to do.

Read once when the UI starts and then cleared, so a later tab (or a
respawned shell) never re-applies it.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class StartupConfig(BaseModel):
    working_directory: str | None = None
    execute_command: str | None = None
    # Explicit startup args win over the saved tab set
    skip_session_restore: bool = False

    @classmethod
    def from_args(
        cls,
        directory: str | None = None,
        path: str | None = None,
        execute: str | None = None,
    ) -> StartupConfig:
        """Build from ``-d``, the positional path and ``-e``.

        ``-d`` is preferred over the positional path.  A file resolves to
        its parent directory; a path that does not exist is ignored with a
        warning.
        """
        has_args = directory is not None or path is not None or execute is not None
        return cls(
            working_directory=_validate_directory(directory or path),
            execute_command=execute,
            skip_session_restore=has_args,
        )


def _validate_directory(raw: str | None) -> str | None:
    if raw is None:
        return None
    path = Path(raw).expanduser()
    if not path.exists():
        logger.warning("Specified path does not exist: %s", raw)
        return None
    if path.is_dir():
        return str(path.resolve())
    if path.is_file():
        return str(path.resolve().parent)
    return None


class StartupConfigSlot:
    """Holds the startup config until it is taken."""

    def __init__(self, config: StartupConfig | None = None) -> None:
        self._config = config
        self._lock = threading.Lock()

    def take(self) -> StartupConfig | None:
        """Return the config and clear it.  Later calls return None."""
        with self._lock:
            config, self._config = self._config, None
        return config
