"""TerminalView — a Textual widget that shows one pane's pyte screen."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich.style import Style
from rich.text import Text
from textual import events
from textual.widget import Widget

from termbridge.bridge.input import KeyDecision, KeyPress
from termbridge.bridge.surface import ScreenSurface
from termbridge.tui.keys import encode_key

if TYPE_CHECKING:
    from termbridge.bridge.terminal import Terminal

logger = logging.getLogger(__name__)

# pyte names the ANSI yellow "brown"
_PYTE_COLORS = {"brown": "yellow", "brightbrown": "bright_yellow"}


def _color(value: str) -> str | None:
    if not value or value == "default":
        return None
    if value in _PYTE_COLORS:
        return _PYTE_COLORS[value]
    if value.startswith("bright"):
        return "bright_" + value[len("bright") :]
    if len(value) == 6:
        try:
            int(value, 16)
        except ValueError:
            return value
        return "#" + value
    return value


def render_screen(surface: ScreenSurface, show_cursor: bool = True) -> Text:
    """Render the visible part of a pyte screen as rich Text."""
    screen = surface.screen
    cursor = screen.cursor
    text = Text(no_wrap=True, overflow="crop")
    for y in range(screen.lines):
        row = screen.buffer[y]
        for x in range(screen.columns):
            cell = row[x]
            style = Style(
                color=_color(cell.fg),
                bgcolor=_color(cell.bg),
                bold=cell.bold,
                italic=cell.italics,
                underline=cell.underscore,
                strike=cell.strikethrough,
                reverse=cell.reverse,
            )
            if show_cursor and not cursor.hidden and (y, x) == (cursor.y, cursor.x):
                style += Style(reverse=not cell.reverse)
            text.append(cell.data or " ", style)
        if y < screen.lines - 1:
            text.append("\n")
    return text


class TerminalView(Widget, can_focus=True):
    """Hosts a ScreenSurface and routes keys, pastes and resizes to a Terminal."""

    DEFAULT_CSS = """
    TerminalView {
        width: 1fr;
        height: 1fr;
        overflow: hidden;
    }
    """

    def __init__(self, surface: ScreenSurface, **kwargs) -> None:
        super().__init__(**kwargs)
        self.surface = surface
        self.terminal: Terminal | None = None
        self._select_from: int | None = None
        self._title = ""
        surface.viewport = self.viewport_size
        surface.on_change = self._on_surface_change

    def viewport_size(self) -> tuple[int, int] | None:
        if self.size.height <= 0 or self.size.width <= 0:
            return None
        return self.size.height, self.size.width

    def _on_surface_change(self) -> None:
        title = self.surface.title
        if title and title != self._title and self.terminal is not None:
            self._title = title
            if self.terminal.on_title_change is not None:
                self.terminal.on_title_change(title)
        self.refresh()

    def render(self) -> Text:
        return render_screen(self.surface, show_cursor=self.has_focus)

    # --- Input ---

    async def on_key(self, event: events.Key) -> None:
        if self.terminal is None:
            return
        event.stop()
        event.prevent_default()
        decision = await self.terminal.handle_key(KeyPress.from_textual(event.key))
        if decision == KeyDecision.CONSUMED:
            return
        data = encode_key(event.key, event.character)
        if data is not None:
            self.surface.feed(data)

    async def on_paste(self, event: events.Paste) -> None:
        if self.terminal is None:
            return
        event.stop()
        await self.terminal.paste(event.text)

    def on_resize(self, event: events.Resize) -> None:
        if self.terminal is not None:
            self.terminal.on_viewport_change()

    # --- Line selection ---

    def on_mouse_down(self, event: events.MouseDown) -> None:
        self._select_from = event.y
        self.surface.clear_selection()

    def on_mouse_up(self, event: events.MouseUp) -> None:
        if self._select_from is None:
            return
        start, end = sorted((self._select_from, event.y))
        self._select_from = None
        if start == end:
            return
        lines = self.surface.display()[start : end + 1]
        self.surface.set_selection("\n".join(line.rstrip() for line in lines))
        self.app.notify(f"Selected {end - start + 1} lines, Ctrl+C to copy")
