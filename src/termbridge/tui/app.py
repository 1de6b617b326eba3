"""Main Textual application for the termbridge TUI."""

from __future__ import annotations

import asyncio
import logging
import os

from rich.markup import escape
from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.css.query import NoMatches
from textual.widgets import Footer, Header, Static, TabbedContent, TabPane

from termbridge.bridge.lifecycle import Backend, LifecycleManager
from termbridge.bridge.router import EventRouter
from termbridge.bridge.surface import ScreenSurface
from termbridge.bridge.terminal import Terminal
from termbridge.config import TermbridgeConfig
from termbridge.config.startup import StartupConfigSlot
from termbridge.pty.backend import PTYBackend
from termbridge.pty.types import ShellType
from termbridge.session.wire import EventType, Wire, WireEvent
from termbridge.tui.restore import SavedTab, SessionSetStore
from termbridge.tui.view import TerminalView

logger = logging.getLogger(__name__)


class TUILogHandler(logging.Handler):
    """Logging handler that captures the last log message for the TUI status bar.

    Writing to stderr would corrupt the Textual display, so the most recent
    record is stored and the status bar is refreshed on the app's loop.
    """

    def __init__(self, app: TermbridgeApp) -> None:
        super().__init__()
        self._app = app
        self.last_message: str = ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.last_message = self.format(record)
            try:
                self._app.call_from_thread(self._app._update_status)
            except RuntimeError:
                # Already on the app's thread
                self._app.call_later(self._app._update_status)
        except Exception:
            # Never let a status-bar update fail the code that logged
            self.handleError(record)


class AppClipboard:
    """Clipboard backed by Textual (OSC 52 for writes, local copy for reads)."""

    def __init__(self, app: App) -> None:
        self._app = app

    async def read_text(self) -> str:
        return self._app.clipboard

    async def write_text(self, text: str) -> None:
        self._app.copy_to_clipboard(text)


class TermbridgeApp(App):
    """termbridge: tabbed terminal emulator."""

    TITLE = "termbridge"
    CSS = """
    #tabs {
        height: 1fr;
    }

    TabPane {
        padding: 0;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+t", "new_tab", "New tab", priority=True),
        Binding("ctrl+w", "close_tab", "Close tab", priority=True),
        Binding("ctrl+pagedown", "next_tab", "Next tab", priority=True),
        Binding("ctrl+pageup", "prev_tab", "Previous tab", priority=True),
        Binding("ctrl+q", "quit", "Quit", priority=True),
    ]

    def __init__(
        self,
        config: TermbridgeConfig,
        startup: StartupConfigSlot | None = None,
        shell: ShellType | None = None,
        backend: Backend | None = None,
        restore: bool = True,
    ) -> None:
        super().__init__()
        self.config = config
        self.shell = shell or config.terminal.shell
        self.wire = Wire()
        self.router = EventRouter(
            self.wire,
            early_output_limit=config.bridge.early_output_limit,
            cwd_detection=config.bridge.cwd_detection,
        )
        self.lifecycle = LifecycleManager(
            backend or PTYBackend(self.wire, config.terminal.shell_commands),
            router=self.router,
        )
        self.store = SessionSetStore(config.session_file)
        self._startup = startup or StartupConfigSlot()
        self._restore = restore
        self._terminals: dict[str, Terminal] = {}  # pane id -> terminal
        self._cwds: dict[str, str] = {}  # pane id -> last reported cwd
        self._pane_counter = 0
        self._log_handler: TUILogHandler | None = None
        self._error: str | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield TabbedContent(id="tabs")
        yield Static(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self._install_log_handler()
        self.router.start()
        self._listen_wire(self.wire.subscribe())
        if not hasattr(os, "openpty"):
            self.lifecycle.mark_unavailable("PTY support is unavailable on this platform")
        self._boot()
        self._update_status()

    def _install_log_handler(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        self._log_handler = TUILogHandler(self)
        self._log_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(self._log_handler)

    # --- Status bar ---

    def _update_status(self) -> None:
        try:
            status = self.query_one("#status-bar", Static)
        except NoMatches:
            return
        parts = [f"Tabs: {len(self._terminals)}"]
        pane_id, terminal = self._active()
        if terminal is not None:
            session = self.lifecycle.registry.get(terminal.session_id)
            if session is not None:
                parts.append(f"{session.title or session.shell_type.display_name}")
                parts.append(session.state.value)
            cwd = self._cwds.get(pane_id or "")
            if cwd:
                parts.append(escape(cwd))
        if self._error:
            parts.append(f"[bold red]{escape(self._error)}[/bold red]")
        last_log = ""
        if self._log_handler and self._log_handler.last_message:
            last_log = self._log_handler.last_message
            if len(last_log) > 80:
                last_log = last_log[:77] + "..."
        if last_log:
            parts.append(f"[dim]{escape(last_log)}[/dim]")
        status.update(" | ".join(parts))

    # --- Wire event loop ---

    @work(exclusive=True, group="wire")
    async def _listen_wire(self, queue: asyncio.Queue[WireEvent | None]) -> None:
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                self._handle_event(event)
        finally:
            self.wire.unsubscribe(queue)

    def _handle_event(self, event: WireEvent) -> None:
        if event.type in (EventType.SPAWNED, EventType.RESPAWNED, EventType.EXIT):
            self._update_status()
        elif event.type == EventType.ERROR:
            self._error = event.data.get("error", "Unknown error")
            self._update_status()

    # --- Tabs ---

    @work(exclusive=True, group="boot")
    async def _boot(self) -> None:
        startup = self._startup.take()
        tabs: list[SavedTab] = []
        if startup is not None and startup.skip_session_restore:
            tabs = [SavedTab(self.shell, startup.working_directory)]
        elif self._restore:
            tabs = await self.store.load()
        if not tabs:
            tabs = [SavedTab(self.shell, None)]

        command = startup.execute_command if startup is not None else None
        for i, tab in enumerate(tabs):
            # The startup command only ever goes to the first session
            await self.open_tab(
                tab.shell_type,
                tab.working_directory,
                startup_command=command if i == 0 else None,
            )

    async def open_tab(
        self,
        shell_type: ShellType,
        working_directory: str | None = None,
        startup_command: str | None = None,
    ) -> Terminal:
        self._pane_counter += 1
        pane_id = f"pane-{self._pane_counter}"
        surface = ScreenSurface(
            rows=self.config.terminal.rows,
            cols=self.config.terminal.cols,
            scrollback=self.config.terminal.scrollback,
        )
        view = TerminalView(surface, id=f"{pane_id}-view")
        terminal = Terminal(
            self.lifecycle,
            surface,
            shell_type,
            working_directory,
            clipboard=AppClipboard(self),
            startup_command=startup_command,
            resize_debounce_ms=self.config.bridge.resize_debounce_ms,
            double_interrupt_ms=self.config.bridge.double_interrupt_ms,
            on_ready=lambda session_id: self._on_ready(pane_id, session_id),
            on_title_change=lambda title: self._set_tab_title(pane_id, title),
            on_cwd_change=lambda cwd: self._on_cwd(pane_id, cwd),
            on_error=lambda reason: self._on_terminal_error(pane_id, reason),
        )
        view.terminal = terminal
        self._terminals[pane_id] = terminal

        tabs = self.query_one("#tabs", TabbedContent)
        await tabs.add_pane(TabPane(shell_type.display_name, view, id=pane_id))
        tabs.active = pane_id
        view.focus()

        await terminal.start()
        await self._save_tabs()
        return terminal

    def _active(self) -> tuple[str | None, Terminal | None]:
        try:
            tabs = self.query_one("#tabs", TabbedContent)
        except NoMatches:
            return None, None
        pane_id = tabs.active or None
        return pane_id, self._terminals.get(pane_id or "")

    def _on_ready(self, pane_id: str, session_id: str) -> None:
        active_id, _ = self._active()
        if active_id == pane_id:
            self.lifecycle.registry.focus(session_id)
        self._update_status()

    def _on_cwd(self, pane_id: str, cwd: str) -> None:
        self._cwds[pane_id] = cwd
        self._update_status()

    def _on_terminal_error(self, pane_id: str, reason: str) -> None:
        self.notify(reason, title="Shell failed", severity="error")
        self._update_status()

    def _set_tab_title(self, pane_id: str, title: str) -> None:
        try:
            tab = self.query_one("#tabs", TabbedContent).get_tab(pane_id)
        except (NoMatches, ValueError):
            return
        tab.label = title
        terminal = self._terminals.get(pane_id)
        if terminal is not None and terminal.session_id is not None:
            self.lifecycle.registry.update(terminal.session_id, title=title)

    def on_tabbed_content_tab_activated(
        self, event: TabbedContent.TabActivated
    ) -> None:
        pane_id = event.pane.id or ""
        terminal = self._terminals.get(pane_id)
        if terminal is None:
            return
        if terminal.session_id in self.lifecycle.registry:
            self.lifecycle.registry.focus(terminal.session_id)
        try:
            self.query_one(f"#{pane_id}-view", TerminalView).focus()
        except NoMatches:
            pass
        self._update_status()

    def on_resize(self) -> None:
        for terminal in self._terminals.values():
            terminal.on_viewport_change()

    async def _save_tabs(self) -> None:
        tabs = [
            SavedTab(t.shell_type, t.working_directory)
            for t in self._terminals.values()
        ]
        try:
            await self.store.save(tabs)
        except OSError as e:
            logger.warning("Could not save tab set: %s", e)

    # --- Actions ---

    async def action_new_tab(self) -> None:
        await self.open_tab(self.shell)

    async def action_close_tab(self) -> None:
        pane_id, terminal = self._active()
        if pane_id is None or terminal is None:
            return
        await terminal.close()
        del self._terminals[pane_id]
        self._cwds.pop(pane_id, None)
        await self.query_one("#tabs", TabbedContent).remove_pane(pane_id)
        await self._save_tabs()
        if not self._terminals:
            await self.action_quit()
            return
        self._update_status()

    def _cycle(self, step: int) -> None:
        tabs = self.query_one("#tabs", TabbedContent)
        ids = list(self._terminals)
        if not ids:
            return
        try:
            index = ids.index(tabs.active)
        except ValueError:
            index = 0
        tabs.active = ids[(index + step) % len(ids)]

    def action_next_tab(self) -> None:
        self._cycle(1)

    def action_prev_tab(self) -> None:
        self._cycle(-1)

    async def action_quit(self) -> None:
        await self._save_tabs()
        for terminal in list(self._terminals.values()):
            await terminal.close()
        self._terminals.clear()
        await self.router.stop()
        await self.lifecycle.shutdown()
        self.wire.close()
        self.exit()
