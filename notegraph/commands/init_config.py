"""Write the documented example configuration."""

from __future__ import annotations

from importlib import resources
from pathlib import Path

import click

from notegraph.cli import Context, pass_context
from notegraph.config import get_default_config_path
from notegraph.utils.fileops import secure_mkdir, write_private
from notegraph.utils.output import error, info, success


def _load_example_config() -> str:
    return resources.files("notegraph").joinpath("config.example.toml").read_text()


@click.command("init-config")
@click.option("--force", "-f", is_flag=True, default=False, help="Replace an existing file")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Where to write the file (default: ~/.config/notegraph/config.toml)",
)
@click.option(
    "--print",
    "print_only",
    is_flag=True,
    default=False,
    help="Print the example configuration instead of writing it",
)
@pass_context
def cli(ctx: Context, force: bool, output: Path | None, print_only: bool) -> None:
    """Write an example configuration file.

    Every setting is listed with its default value and a short note.

    \b
    Examples:
      notegraph init-config
      notegraph init-config --output ./notegraph.toml --force
      notegraph init-config --print > notegraph.toml
    """
    example = _load_example_config()
    if print_only:
        click.echo(example, nl=False)
        return

    target = (output or get_default_config_path()).expanduser().resolve()
    if target.exists() and not force:
        error(f"{target} already exists", hint="Pass --force to replace it")
        raise SystemExit(1)

    try:
        secure_mkdir(target.parent)
        write_private(target, example)
    except OSError as e:
        error(f"Cannot write {target}: {e}")
        raise SystemExit(1)

    if not ctx.quiet:
        success(f"Wrote {target}")
        info("Set paths.graph_db, then run: notegraph load EXPORT.json")
