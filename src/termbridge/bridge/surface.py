"""Display surface — where a session's output is rendered.

The bridge only needs a narrow contract from the surface (``DisplaySurface``).
``ScreenSurface`` implements it on top of pyte's in-memory VT100 screen, so
escape-sequence handling, scrollback and the title (OSC 0/2) come from pyte.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

import pyte

logger = logging.getLogger(__name__)

DEFAULT_SCROLLBACK = 10_000

DataCallback = Callable[[str], None]
ViewportProvider = Callable[[], "tuple[int, int] | None"]


class DisplaySurface(Protocol):
    """What the bridge needs from a rendering surface."""

    @property
    def rows(self) -> int: ...

    @property
    def cols(self) -> int: ...

    @property
    def disposed(self) -> bool: ...

    def write(self, text: str) -> None: ...

    def on_data(self, callback: DataCallback) -> Callable[[], None]: ...

    def resize(self, rows: int, cols: int) -> None: ...

    def fit(self) -> tuple[int, int]: ...

    def get_selection(self) -> str: ...

    def clear_selection(self) -> None: ...

    def dispose(self) -> None: ...


class ScreenSurface:
    """pyte-backed surface.

    ``viewport`` returns the (rows, cols) that fit the widget currently
    hosting the surface; ``fit()`` resizes the screen to it.  Input typed
    into the surface is delivered to ``on_data`` listeners via ``feed``.
    """

    def __init__(
        self,
        rows: int = 24,
        cols: int = 80,
        scrollback: int = DEFAULT_SCROLLBACK,
        viewport: ViewportProvider | None = None,
    ) -> None:
        self.screen = pyte.HistoryScreen(cols, rows, history=scrollback)
        self.screen.set_mode(pyte.modes.LNM)
        self.stream = pyte.Stream(self.screen)
        self.viewport = viewport
        self._listeners: list[DataCallback] = []
        self._selection = ""
        self._disposed = False
        self.on_change: Callable[[], None] | None = None

    @property
    def rows(self) -> int:
        return self.screen.lines

    @property
    def cols(self) -> int:
        return self.screen.columns

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def title(self) -> str:
        return self.screen.title

    def write(self, text: str) -> None:
        if self._disposed:
            logger.debug("Write of %d chars to disposed surface dropped", len(text))
            return
        self.stream.feed(text)
        if self.on_change is not None:
            self.on_change()

    def on_data(self, callback: DataCallback) -> Callable[[], None]:
        """Register an input listener; returns a function that removes it."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def feed(self, data: str) -> None:
        """Default key handling: hand encoded input to the listeners."""
        if self._disposed:
            return
        for listener in list(self._listeners):
            listener(data)

    def resize(self, rows: int, cols: int) -> None:
        if self._disposed or rows <= 0 or cols <= 0:
            return
        if (rows, cols) != (self.rows, self.cols):
            self.screen.resize(lines=rows, columns=cols)

    def fit(self) -> tuple[int, int]:
        """Resize to the hosting viewport and return the new (rows, cols)."""
        size = self.viewport() if self.viewport is not None else None
        if size is not None:
            self.resize(*size)
        return self.rows, self.cols

    def display(self) -> list[str]:
        return list(self.screen.display)

    def set_selection(self, text: str) -> None:
        self._selection = text

    def get_selection(self) -> str:
        return self._selection

    def clear_selection(self) -> None:
        self._selection = ""

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._listeners.clear()
        self._selection = ""
        self.on_change = None
