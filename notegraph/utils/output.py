"""Terminal output for notegraph: themed consoles, message helpers, paging."""

from __future__ import annotations

import io
import os
import shlex
import shutil
import subprocess
import sys
from dataclasses import dataclass
from typing import Any

from rich.console import Console, RenderableType
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.theme import Theme

THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "node.id": "dim",
        "node.page": "bold",
        "node.daily": "magenta",
        "node.parent": "dim italic",
        "progress.description": "bold blue",
    }
)

# Results and summaries go to stdout; warnings, errors, progress and logs
# go to stderr.
console = Console(theme=THEME, stderr=False)
error_console = Console(theme=THEME, stderr=True)


@dataclass
class _OutputSettings:
    verbose: bool = False
    debug: bool = False
    pager: bool | None = None  # None = auto


_settings = _OutputSettings()


def set_verbosity(*, verbose: bool = False, debug: bool = False) -> None:
    """Configure verbosity; ``debug`` implies ``verbose``.

    Called from the CLI entry point after argument parsing.
    """
    _settings.verbose = verbose or debug
    _settings.debug = debug


def set_color(enabled: bool) -> None:
    console.no_color = not enabled
    error_console.no_color = not enabled


def set_pager(mode: bool | None) -> None:
    """Force paging on (True) or off (False), or detect it (None)."""
    _settings.pager = mode


def _pager_command() -> list[str]:
    return shlex.split(os.environ.get("PAGER", "")) or ["less", "-RFS"]


def pager_print(content: str) -> None:
    """Write already-rendered content, through a pager when it helps.

    In auto mode the pager is used only when stdout is a terminal and the
    content is taller than it.
    """
    use_pager = _settings.pager
    if use_pager is None:
        use_pager = (
            sys.stdout.isatty() and content.count("\n") > shutil.get_terminal_size().lines
        )

    if use_pager:
        env = {**os.environ, "LESSCHARSET": os.environ.get("LESSCHARSET", "utf-8")}
        try:
            proc = subprocess.Popen(
                _pager_command(),
                stdin=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
                env=env,
            )
            proc.communicate(input=content)
            return
        except (OSError, subprocess.SubprocessError):
            pass  # no usable pager

    sys.stdout.write(content)
    sys.stdout.flush()


def print_paged(renderable: RenderableType, min_width: int = 120) -> None:
    """Render a rich object off-screen at a usable width, then page it.

    Wide tables are rendered at ``min_width`` even on narrow terminals
    and left to the pager to scroll.
    """
    buf = io.StringIO()
    Console(
        file=buf,
        theme=THEME,
        force_terminal=not console.no_color,
        no_color=console.no_color,
        width=max(console.width, min_width),
    ).print(renderable)
    pager_print(buf.getvalue())


def info(message: str) -> None:
    console.print(f"[info]{message}[/info]")


def success(message: str) -> None:
    console.print(f"[success]{message}[/success]")


def warning(message: str) -> None:
    error_console.print(f"[warning]Warning:[/warning] {message}")


def error(message: str, hint: str | None = None) -> None:
    """Print an error, and optionally how to fix it, to stderr."""
    error_console.print(f"[error]Error:[/error] {message}")
    if hint:
        error_console.print(f"  [info]Hint:[/info] {hint}")


def verbose(message: str) -> None:
    if _settings.verbose:
        error_console.print(f"[info]{message}[/info]")


def debug(message: str) -> None:
    if _settings.debug:
        error_console.print(f"[warning]\\[DEBUG][/warning] {message}")


def create_progress() -> Progress:
    """A transient stderr spinner for work without a known total."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=error_console,
        transient=True,
    )


def create_table(title: str | None = None, **kwargs: Any) -> Table:
    return Table(title=title, **kwargs)
