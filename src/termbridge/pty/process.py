"""PTY process — one shell running on a pseudo-terminal."""

from __future__ import annotations

import asyncio
import codecs
import enum
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
import uuid
from dataclasses import dataclass, field
from typing import Callable

import psutil

from termbridge.pty.types import ShellType, SpawnConfig

logger = logging.getLogger(__name__)

READ_CHUNK = 8192


class PTYStatus(enum.Enum):
    """Lifecycle states for a PTY process."""

    RUNNING = "running"
    KILLING = "killing"  # Kill requested, waiting for process to die
    KILLED = "killed"  # Killed by us (SIGKILL)
    EXITED = "exited"  # Process exited on its own


@dataclass
class PTYProcess:
    """A shell process attached to the slave end of a PTY.

    - Own session/process group (start_new_session) so the whole tree can
      be killed, and so descendants can be found with psutil
    - Output is decoded incrementally (UTF-8 split across reads is fine) and
      handed to ``on_output`` in read order
    - ``on_exit`` fires only when the process dies on its own, never after
      ``kill()``

    Uses subprocess.Popen (not os.fork) to avoid deadlocks when
    spawned from within an asyncio event loop on macOS.
    """

    config: SpawnConfig = field(default_factory=SpawnConfig)
    env: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    # Internal state
    _master_fd: int = field(default=-1, init=False)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _pid: int = field(default=0, init=False)
    _pgid: int = field(default=0, init=False)
    _reader_task: asyncio.Task | None = field(default=None, init=False)
    _status: PTYStatus = field(default=PTYStatus.RUNNING, init=False)
    _on_output: Callable[[PTYProcess, str], None] | None = field(
        default=None, init=False
    )
    _on_exit: Callable[[PTYProcess, int | None], None] | None = field(
        default=None, init=False
    )

    @property
    def shell_type(self) -> ShellType:
        return self.config.shell_type

    @property
    def working_directory(self) -> str | None:
        return self.config.working_directory

    def set_on_output(self, callback: Callable[[PTYProcess, str], None]) -> None:
        self._on_output = callback

    def set_on_exit(self, callback: Callable[[PTYProcess, int | None], None]) -> None:
        """Set a callback to be invoked when the process exits unexpectedly.

        The callback receives (process, exit_code). It is called from the
        reader task when the process dies on its own, NOT when killed via
        kill().
        """
        self._on_exit = callback

    async def start(self, argv: list[str]) -> None:
        """Spawn ``argv`` in a new PTY with its own process group."""
        master_fd, slave_fd = pty.openpty()
        self._master_fd = master_fd
        _set_winsize(slave_fd, self.config.rows, self.config.cols)

        env = {**os.environ, **self.env}
        env["TERM"] = "xterm-256color"
        env["COLORTERM"] = "truecolor"

        try:
            self._proc = subprocess.Popen(
                argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,  # Creates new process group
                env=env,
                cwd=self.config.working_directory or None,
            )
        except BaseException:
            os.close(master_fd)
            self._master_fd = -1
            raise
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        self._pid = self._proc.pid
        self._pgid = os.getpgid(self._pid)
        self._status = PTYStatus.RUNNING

        self._reader_task = asyncio.create_task(self._read_loop())

        logger.info(
            "PTY %s started: pid=%d pgid=%d cmd=%s",
            self.id[:8],
            self._pid,
            self._pgid,
            " ".join(argv),
        )

    async def _read_loop(self) -> None:
        """Continuously read output from the PTY master fd."""
        loop = asyncio.get_running_loop()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = self._master_fd
        try:
            while self._status == PTYStatus.RUNNING:
                try:
                    data = await loop.run_in_executor(None, os.read, fd, READ_CHUNK)
                except OSError:
                    break

                if not data:
                    break

                text = decoder.decode(data)
                if text and self._on_output and self._status == PTYStatus.RUNNING:
                    self._on_output(self, text)
        except Exception as e:
            logger.debug("PTY reader %s ended: %s", self.id[:8], e)
        finally:
            # Only transition to EXITED if we weren't already killing
            if self._status == PTYStatus.RUNNING:
                tail = decoder.decode(b"", final=True)
                if tail and self._on_output:
                    self._on_output(self, tail)
                exit_code = await self._reap(loop)
                self._status = PTYStatus.EXITED
                self._close_master()
                logger.info("PTY %s exited (code=%s)", self.id[:8], exit_code)
                if self._on_exit:
                    try:
                        self._on_exit(self, exit_code)
                    except Exception:
                        logger.exception(
                            "Error in on_exit callback for PTY %s", self.id[:8]
                        )

    async def _reap(self, loop: asyncio.AbstractEventLoop) -> int | None:
        if self._proc is None:
            return None
        try:
            return await loop.run_in_executor(None, self._proc.wait, 2)
        except subprocess.TimeoutExpired:
            return self._proc.poll()

    def write(self, data: str | bytes) -> None:
        """Write raw input to the shell. Raises OSError on I/O failure."""
        if self._status != PTYStatus.RUNNING:
            raise OSError(f"PTY {self.id[:8]} is not running")
        payload = data.encode("utf-8") if isinstance(data, str) else data
        view = memoryview(payload)
        while view:
            written = os.write(self._master_fd, view)
            view = view[written:]

    def resize(self, rows: int, cols: int) -> None:
        """Set the PTY window size; the kernel delivers SIGWINCH."""
        if self._status != PTYStatus.RUNNING:
            raise OSError(f"PTY {self.id[:8]} is not running")
        _set_winsize(self._master_fd, rows, cols)
        self.config.rows = rows
        self.config.cols = cols
        logger.debug("Resized PTY %s to %dx%d", self.id[:8], cols, rows)

    def children(self) -> list[psutil.Process]:
        """Descendant processes of the shell (not the shell itself)."""
        if not self._pid or self._status != PTYStatus.RUNNING:
            return []
        try:
            return psutil.Process(self._pid).children(recursive=True)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return []

    def kill_children(self, timeout: float = 1.0) -> int:
        """Terminate every descendant, leaving the shell alive.

        SIGTERM first, SIGKILL for whatever survives ``timeout``.
        Returns how many descendants were signalled.
        """
        children = self.children()
        if not children:
            return 0
        signalled: list[psutil.Process] = []
        for child in children:
            try:
                child.terminate()
                signalled.append(child)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass
        _gone, alive = psutil.wait_procs(signalled, timeout=timeout)
        for child in alive:
            try:
                child.kill()
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                pass
        logger.info("Killed %d child process(es) of PTY %s", len(signalled), self.id[:8])
        return len(signalled)

    def kill(self) -> None:
        """Kill the entire process tree."""
        if self._status not in (PTYStatus.RUNNING, PTYStatus.KILLING):
            return

        self._status = PTYStatus.KILLING
        try:
            os.killpg(self._pgid, signal.SIGKILL)
            logger.info("Killed PTY %s (pgid=%d)", self.id[:8], self._pgid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except OSError as e:
            logger.warning("Error killing PTY %s: %s", self.id[:8], e)

        # Wait for process to be reaped (avoids zombies)
        if self._proc is not None:
            try:
                self._proc.wait(timeout=2)
            except subprocess.TimeoutExpired:
                logger.warning("PTY %s did not exit after SIGKILL", self.id[:8])

        self._close_master()
        self._status = PTYStatus.KILLED

    def _close_master(self) -> None:
        if self._master_fd < 0:
            return
        try:
            os.close(self._master_fd)
        except OSError:
            pass
        self._master_fd = -1

    @property
    def pid(self) -> int:
        return self._pid

    @property
    def alive(self) -> bool:
        return self._status == PTYStatus.RUNNING

    @property
    def status(self) -> PTYStatus:
        return self._status

    def __del__(self) -> None:
        """Ensure cleanup on garbage collection."""
        if self._status in (PTYStatus.RUNNING, PTYStatus.KILLING) and self._pid:
            self.kill()


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    buf = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, buf)
