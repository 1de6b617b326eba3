"""CLI entry point for termbridge."""

from __future__ import annotations

import logging

import typer

from termbridge.config import TermbridgeConfig
from termbridge.config.startup import StartupConfig, StartupConfigSlot
from termbridge.pty.types import ShellType

app = typer.Typer(
    name="termbridge",
    help="A tabbed terminal emulator built around a PTY session bridge.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command("open")
def open_terminal(
    path: str | None = typer.Argument(
        None, help="Directory to open in (a file opens its parent directory)."
    ),
    directory: str | None = typer.Option(
        None, "--directory", "-d", help="Directory to open in; wins over PATH."
    ),
    execute: str | None = typer.Option(
        None, "--execute", "-e", help="Command to run in the first tab."
    ),
    shell: ShellType | None = typer.Option(
        None, "--shell", "-s", help="Shell for new tabs (overrides config)."
    ),
    no_restore: bool = typer.Option(
        False, "--no-restore", help="Do not reopen the tabs from the last run."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to a JSON config file."
    ),
) -> None:
    """Launch the terminal UI."""
    # No stderr handler here: it would corrupt the Textual display.  The
    # app installs its own handler that feeds the status bar.
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.INFO)

    config = TermbridgeConfig.load(config_file)
    startup = StartupConfig.from_args(directory=directory, path=path, execute=execute)

    from termbridge.tui.app import TermbridgeApp

    tui_app = TermbridgeApp(
        config,
        startup=StartupConfigSlot(startup),
        shell=shell,
        restore=not no_restore,
    )
    tui_app.run()


@app.command()
def shells(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Path to a JSON config file."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
) -> None:
    """List the supported shells and whether each can be launched."""
    setup_logging(verbose)
    config = TermbridgeConfig.load(config_file)
    overrides = config.terminal.shell_commands

    for shell_type in ShellType:
        marker = "*" if shell_type == config.terminal.shell else " "
        try:
            argv = shell_type.resolve_command(overrides)
        except FileNotFoundError as e:
            typer.echo(f"{marker} {shell_type.value:<11} {shell_type.display_name:<15} -- {e}")
            continue
        typer.echo(
            f"{marker} {shell_type.value:<11} {shell_type.display_name:<15} {' '.join(argv)}"
        )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
