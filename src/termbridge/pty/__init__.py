"""PTY process management — the process-owning backend.

Shells run in managed PTY sessions with process group isolation; their
output and exit are published on the global Wire.
"""

from termbridge.pty.backend import PTYBackend, SessionNotFound
from termbridge.pty.process import PTYProcess, PTYStatus
from termbridge.pty.types import SessionInfo, ShellType, SpawnConfig

__all__ = [
    "PTYBackend",
    "PTYProcess",
    "PTYStatus",
    "SessionInfo",
    "SessionNotFound",
    "ShellType",
    "SpawnConfig",
]
