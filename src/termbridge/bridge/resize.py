"""Resize coordinator — debounce viewport changes into one backend resize."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 100

Fit = Callable[[], "tuple[int, int]"]
SessionIdGetter = Callable[[], "str | None"]
ResizeFn = Callable[[str, int, int], Awaitable[bool]]
TrackFn = Callable[[asyncio.TimerHandle], None]


class ResizeCoordinator:
    """Coalesce window and container resize triggers for one pane.

    Every ``on_viewport_change()`` restarts the quiet-period timer, and the
    new timer handle is passed to ``track`` if given.  When it fires, the
    surface is re-fitted and the session id is read *then*, so a resize
    racing a respawn targets the replacement process.
    """

    def __init__(
        self,
        fit: Fit,
        session_id: SessionIdGetter,
        resize: ResizeFn,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        track: TrackFn | None = None,
    ) -> None:
        self._fit = fit
        self._session_id = session_id
        self._resize = resize
        self._track = track
        self.debounce = debounce_ms / 1000
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def on_viewport_change(self) -> None:
        if self._closed:
            return
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.debounce, self._fire)
        if self._track is not None:
            self._track(self._handle)

    def _fire(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            # Already ran; marking it cancelled lets trackers prune it
            handle.cancel()
        if self._closed:
            return
        self._task = asyncio.ensure_future(self.fire_now())

    async def fire_now(self) -> bool:
        """Fit and resize immediately (font change, respawn)."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._closed:
            return False
        rows, cols = self._fit()
        session_id = self._session_id()
        if session_id is None:
            logger.debug("Resize skipped, no session yet")
            return False
        return await self._resize(session_id, rows, cols)

    def cancel(self) -> None:
        """Drop pending work and refuse any more.  Used on teardown."""
        self._closed = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
