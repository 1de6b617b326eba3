"""Input classifier — control-key policies applied before default key handling.

Policies, highest priority first:

1. ``ctrl+shift+k``: kill the shell's child processes.
2. ``ctrl+shift+c``, or ``ctrl+c`` while text is selected: copy the
   selection to the clipboard and clear it.
3. ``ctrl+c``: send the interrupt byte.  A second press within the
   threshold kills child processes instead, and falls back to another
   interrupt byte if there were none.
4. ``ctrl+v`` / ``ctrl+shift+v``: paste the clipboard into the session.
5. Anything else passes through to the surface's default handling.
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_DOUBLE_INTERRUPT_MS = 500
INTERRUPT = "\x03"


class KeyDecision(enum.Enum):
    CONSUMED = "consumed"
    PASS = "pass"


@dataclass(frozen=True)
class KeyPress:
    """A key with its modifiers, independent of the UI toolkit."""

    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False

    @classmethod
    def from_textual(cls, key: str) -> KeyPress:
        """Parse a Textual key name such as ``ctrl+shift+k`` or ``ctrl+c``."""
        parts = key.split("+")
        name = parts[-1]
        mods = set(parts[:-1])
        # An upper-case letter carries shift
        shift = "shift" in mods or (len(name) == 1 and name.isupper())
        return cls(
            key=name.lower() if len(name) == 1 else name,
            ctrl="ctrl" in mods,
            shift=shift,
            alt="alt" in mods,
            meta="meta" in mods or "super" in mods,
        )

    def is_combo(self, key: str, *, ctrl: bool = False, shift: bool = False) -> bool:
        return (
            self.key == key
            and self.ctrl == ctrl
            and self.shift == shift
            and not self.alt
            and not self.meta
        )


class Clipboard(Protocol):
    async def read_text(self) -> str: ...

    async def write_text(self, text: str) -> None: ...


class Selection(Protocol):
    def get_selection(self) -> str: ...

    def clear_selection(self) -> None: ...


class InputTarget(Protocol):
    """The subset of the lifecycle manager the classifier drives."""

    async def write(self, session_id: str, data: str) -> bool: ...

    async def force_kill_children(self, session_id: str) -> int: ...


class InputClassifier:
    """Applies the control-key policies for one pane.

    The session id is read through ``session_id()`` on every key so input
    follows a respawned process.
    """

    def __init__(
        self,
        target: InputTarget,
        session_id: Callable[[], str | None],
        selection: Selection,
        clipboard: Clipboard,
        double_interrupt_ms: int = DEFAULT_DOUBLE_INTERRUPT_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._target = target
        self._session_id = session_id
        self._selection = selection
        self._clipboard = clipboard
        self.threshold = double_interrupt_ms / 1000
        self._clock = clock
        self._last_interrupt: float | None = None

    async def handle(self, key: KeyPress) -> KeyDecision:
        if key.is_combo("k", ctrl=True, shift=True):
            await self._kill_children()
            return KeyDecision.CONSUMED

        if key.is_combo("c", ctrl=True, shift=True):
            await self._copy()
            return KeyDecision.CONSUMED

        if key.is_combo("c", ctrl=True):
            if self._selection.get_selection():
                await self._copy()
            else:
                await self._interrupt()
            return KeyDecision.CONSUMED

        if key.is_combo("v", ctrl=True) or key.is_combo("v", ctrl=True, shift=True):
            await self.paste()
            return KeyDecision.CONSUMED

        return KeyDecision.PASS

    async def _kill_children(self) -> int:
        session_id = self._session_id()
        if session_id is None:
            return 0
        logger.info("Killing child processes of %s", session_id[:8])
        return await self._target.force_kill_children(session_id)

    async def _copy(self) -> None:
        text = self._selection.get_selection()
        if not text:
            return
        try:
            await self._clipboard.write_text(text)
        except Exception:
            logger.exception("Clipboard write failed")
        self._selection.clear_selection()

    async def _interrupt(self) -> None:
        session_id = self._session_id()
        if session_id is None:
            return
        now = self._clock()
        last = self._last_interrupt
        if last is not None and now - last < self.threshold:
            self._last_interrupt = None
            logger.debug("Double interrupt on %s, killing children", session_id[:8])
            killed = await self._target.force_kill_children(session_id)
            if killed == 0:
                await self._target.write(session_id, INTERRUPT)
            return
        self._last_interrupt = now
        await self._target.write(session_id, INTERRUPT)

    async def paste(self, text: str | None = None) -> None:
        """Write clipboard text (or ``text``, e.g. from a paste event)."""
        if text is None:
            try:
                text = await self._clipboard.read_text()
            except Exception:
                logger.exception("Clipboard read failed")
                return
        session_id = self._session_id()
        if text and session_id is not None:
            await self._target.write(session_id, text)
