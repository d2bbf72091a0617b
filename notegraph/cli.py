"""Command-line interface for notegraph."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import click
from rich.logging import RichHandler

from notegraph import __version__
from notegraph.config import Config, load_config
from notegraph.exceptions import ConfigError
from notegraph.utils.output import (
    error,
    error_console,
    set_color,
    set_pager,
    set_verbosity,
    warning,
)


@dataclass
class Context:
    """State shared by every subcommand through ``pass_context``."""

    config: Config | None = None
    verbose: bool = False
    debug: bool = False
    quiet: bool = False
    pager: bool | None = None  # None = auto


pass_context = click.make_pass_decorator(Context, ensure=True)


def _configure_logging(debug: bool) -> None:
    # Search warnings reach the user through the progress reporter
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.ERROR,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=error_console, show_path=False)],
        force=True,
    )


def _color_enabled(no_color: bool, config: Config | None) -> bool:
    if no_color or "NO_COLOR" in os.environ:
        return False
    return config is None or config.colored_output


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to config file (default: ~/.config/notegraph/config.toml)",
)
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the graph database (overrides config)",
)
@click.option("--no-color", is_flag=True, default=False, help="Disable colored output")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Report search branches")
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Log queries and timings (implies --verbose)",
)
@click.option("--quiet", "-q", is_flag=True, default=False, help="Suppress non-error output")
@click.option(
    "--pager/--no-pager",
    default=None,
    help="Force pager on/off (default: auto-detect)",
)
@click.version_option(version=__version__, prog_name="notegraph")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Path | None,
    db_path: Path | None,
    no_color: bool,
    verbose: bool,
    debug: bool,
    quiet: bool,
    pager: bool | None,
) -> None:
    """notegraph: Structural search over an outliner note graph.

    Loads a Roam Research JSON export into a local database and answers
    queries that combine text, page references and regular expressions
    with hierarchy operators such as "parent > child".

    Configuration is read from ~/.config/notegraph/config.toml unless
    --config points elsewhere.

    Examples:

        # Build the graph database from an export
        notegraph load ~/Downloads/my-graph.json

        # Blocks mentioning "risk" with a direct child mentioning "mitigation"
        notegraph search "risk > mitigation"
    """
    app_ctx = ctx.ensure_object(Context)
    app_ctx.verbose = verbose or debug
    app_ctx.debug = debug
    app_ctx.quiet = quiet
    app_ctx.pager = pager

    set_verbosity(verbose=verbose, debug=debug)
    set_pager(pager)
    _configure_logging(debug)
    set_color(_color_enabled(no_color, None))

    try:
        config, warnings = load_config(config_path)
    except (ConfigError, OSError) as e:
        error(str(e), hint="Check the file or recreate it with: notegraph init-config --force")
        ctx.exit(1)

    if db_path is not None:
        config.graph_db = db_path.expanduser().resolve()
    app_ctx.config = config
    set_color(_color_enabled(no_color, config))

    if not quiet:
        for message in warnings:
            # About the configured path, which --db replaces
            if db_path is not None and message.startswith("Graph database not found"):
                continue
            warning(message)


@cli.command("help")
@click.argument("command", required=False, nargs=-1)
@click.pass_context
def help_cmd(ctx: click.Context, command: tuple[str, ...]) -> None:
    """Show help for notegraph or one of its commands."""
    target: click.Command = cli
    for name in command:
        sub = target.get_command(ctx, name) if isinstance(target, click.Group) else None
        if sub is None:
            error(f"Unknown command: {' '.join(command)}")
            ctx.exit(1)
        target = sub
    click.echo(target.get_help(ctx))


def register_commands() -> None:
    """Attach every command found in :mod:`notegraph.commands`."""
    from notegraph.commands import discover_commands

    for command in discover_commands():
        cli.add_command(command)


register_commands()
