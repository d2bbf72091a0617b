"""Build the graph database from a Roam Research JSON export."""

from __future__ import annotations

from pathlib import Path

import click
from sqlalchemy.exc import SQLAlchemyError

from notegraph.cli import Context, pass_context
from notegraph.exceptions import DatabaseError, GraphImportError
from notegraph.store.builder import load_export
from notegraph.store.session import get_graph_session
from notegraph.utils.output import create_progress, error, info, success

EXIT_SUCCESS = 0
EXIT_IMPORT_ERROR = 1
EXIT_DATABASE_ERROR = 2


@click.command("load")
@click.argument(
    "export",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@pass_context
def cli(ctx: Context, export: Path) -> None:
    """Load EXPORT (a Roam JSON export) into the graph database.

    Existing contents of the database are replaced.  The database
    location comes from the config file or the global --db option.

    \b
    Example:
      notegraph --db ./graph.db load ~/Downloads/my-graph.json
    """
    config = ctx.config
    if config is None:
        error("Configuration not loaded")
        raise SystemExit(EXIT_DATABASE_ERROR)

    db_path = config.graph_db
    try:
        with get_graph_session(db_path, create=True) as session:
            with create_progress() as progress:
                progress.add_task(f"Loading {export.name}...", total=None)
                stats = load_export(session, export)
    except GraphImportError as e:
        error(str(e))
        raise SystemExit(EXIT_IMPORT_ERROR)
    except (DatabaseError, SQLAlchemyError) as e:
        error(f"Database error: {e}")
        raise SystemExit(EXIT_DATABASE_ERROR)

    if not ctx.quiet:
        success(f"Loaded {stats.pages} pages and {stats.blocks} blocks into {db_path}")
        info(f"{stats.refs} references indexed")
        if stats.skipped:
            info(f"{stats.skipped} duplicate or malformed nodes skipped")
    raise SystemExit(EXIT_SUCCESS)
