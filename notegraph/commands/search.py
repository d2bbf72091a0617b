"""Search the note graph with hierarchical query expressions."""

from __future__ import annotations

import json
import os
from datetime import datetime, time

import click
from rich.markup import escape
from sqlalchemy.exc import SQLAlchemyError

from notegraph.cli import Context, pass_context
from notegraph.config import VALID_EXPANSION_STRATEGIES, VALID_SORT_MODES, Config
from notegraph.exceptions import (
    DatabaseError,
    DatabaseNotFoundError,
    ExpansionError,
    ParseError,
    RegexError,
    SearchError,
    SearchTimeoutError,
    ValidationError,
)
from notegraph.expansion import HttpExpander, ThesaurusExpander
from notegraph.search.ast_nodes import HierarchyOperator
from notegraph.search.conditions import ExpansionStrategy
from notegraph.search.engine import SearchEngine
from notegraph.search.protocols import TermExpander
from notegraph.search.results import (
    CombineMode,
    MatchResult,
    SearchOptions,
    SearchScope,
    SortMode,
)
from notegraph.store.query import SqlGraphStore
from notegraph.store.session import open_graph_engine
from notegraph.utils.output import (
    create_table,
    debug,
    error,
    info,
    print_paged,
    verbose,
    warning,
)

EXIT_SUCCESS = 0
EXIT_PARSE_ERROR = 1
EXIT_STORE_ERROR = 2
EXIT_NO_DATABASE = 3
EXIT_TIMEOUT = 4

_CONTENT_WIDTH = 80


class ConsoleProgress:
    """Reports search branches on the terminal."""

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet

    def branch_started(self, name: str) -> None:
        debug(f"Branch {name} started")

    def branch_finished(self, name: str, count: int) -> None:
        verbose(f"Branch {name}: {count} results")

    def warning(self, message: str) -> None:
        if not self.quiet:
            warning(message)


def build_expander(config: Config) -> TermExpander | None:
    """Pick the configured expansion service, preferring a local thesaurus."""
    if config.thesaurus is not None:
        try:
            return ThesaurusExpander.from_file(config.thesaurus, config.expansion_fuzzy_threshold)
        except ExpansionError as e:
            warning(f"{e}; term expansion disabled")
            return None
    if config.expansion_endpoint_url:
        return HttpExpander(
            config.expansion_endpoint_url,
            config.expansion_model,
            os.environ.get(config.expansion_api_key_env),
        )
    return None


def _date_bound(value: datetime | None, end_of_day: bool) -> datetime | None:
    if value is None:
        return None
    return datetime.combine(value.date(), time.max if end_of_day else time.min)


def _clip(value: str, width: int) -> str:
    value = " ".join(value.split())
    if len(value) <= width:
        return value
    return value[: width - 1] + "…"


@click.command("search")
@click.argument("expression", nargs=-1, required=True)
@click.option(
    "--also",
    "-a",
    multiple=True,
    help="Additional expression evaluated as a separate branch (repeatable)",
)
@click.option(
    "--combine",
    type=click.Choice([mode.value for mode in CombineMode]),
    default=CombineMode.UNION.value,
    show_default=True,
    help="How results of EXPRESSION and --also branches are combined",
)
@click.option("--limit", "-l", type=int, default=None, help="Maximum results (0 = no limit)")
@click.option(
    "--sort",
    "-s",
    type=click.Choice(VALID_SORT_MODES),
    default=None,
    help="Result order (default from config: relevance)",
)
@click.option("--depth", "-d", type=int, default=None, help="Depth for all hierarchy operators")
@click.option(
    "--children/--no-children",
    default=True,
    help="Attach each result's descendant tree",
)
@click.option("--child-depth", type=int, default=None, help="Levels of descendants to attach")
@click.option(
    "--parents/--no-parents",
    default=True,
    help="Attach each result's ancestor chain",
)
@click.option("--parent-depth", type=int, default=None, help="Levels of ancestors to attach")
@click.option(
    "--secure",
    is_flag=True,
    default=False,
    help="Return identifiers and structure only, never block content",
)
@click.option(
    "--page",
    "-p",
    "pages",
    multiple=True,
    help="Only search blocks on this page (repeatable)",
)
@click.option(
    "--daily/--no-daily",
    default=None,
    help="Include blocks on daily-note pages (default from config)",
)
@click.option(
    "--since",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Only blocks modified on or after this date (YYYY-MM-DD)",
)
@click.option(
    "--until",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Only blocks modified on or before this date (YYYY-MM-DD)",
)
@click.option(
    "--expand",
    "-e",
    is_flag=True,
    default=False,
    help="Expand every text and page term with the configured expansion service",
)
@click.option(
    "--strategy",
    type=click.Choice(VALID_EXPANSION_STRATEGIES),
    default=None,
    help="Expansion strategy for --expand (default from config: synonyms)",
)
@click.option("--timeout", type=float, default=None, help="Seconds before the search is aborted")
@click.option("--workers", "-j", type=int, default=None, help="Concurrent search branches")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json", "ids"]),
    default="table",
    help="Output format (default: table)",
)
@pass_context
def cli(
    ctx: Context,
    expression: tuple[str, ...],
    also: tuple[str, ...],
    combine: str,
    limit: int | None,
    sort: str | None,
    depth: int | None,
    children: bool,
    child_depth: int | None,
    parents: bool,
    parent_depth: int | None,
    secure: bool,
    pages: tuple[str, ...],
    daily: bool | None,
    since: datetime | None,
    until: datetime | None,
    expand: bool,
    strategy: str | None,
    timeout: float | None,
    workers: int | None,
    output_format: str,
) -> None:
    """Search blocks with a hierarchical query EXPRESSION.

    Multiple arguments are joined with spaces.  Terms combine with
    "+" (AND) and "|" (OR); one hierarchy operator may join two operands.

    \b
    Operators:
      A > B      A has a direct child matching B
      A >> B     A has a descendant matching B (default depth 3)
      A => B     one block matches both, else A has a child matching B
      A <=> B    A above B, B above A, or one block with both
      A <<=>> B  like <=> over descendants (default depth 5)

    \b
    Terms:
      risk               text (case-insensitive substring)
      "risk management"  quoted phrase
      ref:Project        reference to a page ([[Project]], #Project, Project::)
      block:abc123       reference to a block
      regex:/^todo/i     regular expression
      risk~  risk~all    expand with synonyms / every strategy

    \b
    Examples:
      notegraph search "risk > mitigation"
      notegraph search "ref:Project + deadline >> regex:/\\d{4}/"
      notegraph search alpha --also beta --combine intersection
    """
    config = ctx.config
    if config is None:
        error("Configuration not loaded")
        raise SystemExit(EXIT_STORE_ERROR)

    expression_string = " ".join(expression)
    try:
        scope = SearchScope(
            container_titles=frozenset(pages) if pages else None,
            include_date_nodes=config.include_daily_notes if daily is None else daily,
            date_from=_date_bound(since, end_of_day=False),
            date_to=_date_bound(until, end_of_day=True),
        )
        options = SearchOptions(
            max_depth=depth,
            limit=config.default_limit if limit is None else limit,
            sort=SortMode(sort or config.default_sort),
            scope=scope,
            include_children=children,
            child_depth=config.child_depth if child_depth is None else child_depth,
            include_parents=parents,
            parent_depth=config.parent_depth if parent_depth is None else parent_depth,
            secure=secure,
            timeout=config.timeout if timeout is None else timeout,
            max_workers=config.max_workers if workers is None else workers,
            expansion=(
                ExpansionStrategy.parse(strategy or config.expansion_strategy) if expand else ()
            ),
            max_expansion_terms=config.expansion_max_terms,
        )
    except ValidationError as e:
        error(str(e))
        raise SystemExit(EXIT_PARSE_ERROR)

    try:
        db_engine = open_graph_engine(config.graph_db)
    except DatabaseNotFoundError as e:
        error(str(e), hint="Build it first with: notegraph load EXPORT.json")
        raise SystemExit(EXIT_NO_DATABASE)
    except (DatabaseError, SQLAlchemyError) as e:
        error(f"Database error: {e}")
        raise SystemExit(EXIT_STORE_ERROR)

    store = SqlGraphStore(db_engine)
    engine = SearchEngine(
        store,
        store,
        build_expander(config),
        default_depths={
            HierarchyOperator.DEEP_STRICT: config.deep_strict_depth,
            HierarchyOperator.DEEP_BIDIRECTIONAL: config.deep_bidirectional_depth,
        },
    )
    progress = ConsoleProgress(quiet=ctx.quiet)

    try:
        if also:
            results = engine.run_many(
                [expression_string, *also], CombineMode(combine), options, progress
            )
        else:
            results = engine.run_hierarchical(expression_string, options, progress)
    except (ParseError, RegexError, ValidationError) as e:
        error(str(e))
        raise SystemExit(EXIT_PARSE_ERROR)
    except SearchTimeoutError as e:
        error(str(e), hint="Raise --timeout or narrow the query")
        raise SystemExit(EXIT_TIMEOUT)
    except SearchError as e:
        error(f"Search failed: {e}")
        raise SystemExit(EXIT_STORE_ERROR)
    finally:
        db_engine.dispose()

    if output_format == "json":
        _print_json(results)
    elif output_format == "ids":
        _print_ids(results)
    elif not results:
        if not ctx.quiet:
            info(f"No results for: {expression_string}")
    else:
        _print_table(results, expression_string)

    raise SystemExit(EXIT_SUCCESS)


def _print_table(results: list[MatchResult], expression_string: str) -> None:
    """Print results as a Rich table, using pager when appropriate."""
    info(f"Search: {expression_string} ({len(results)} results)")

    table = create_table(show_header=True, header_style="bold")
    table.add_column("Block", style="node.id", no_wrap=True)
    table.add_column("Page", style="node.page")
    table.add_column("Content")
    table.add_column("Context", style="node.parent")
    table.add_column("Modified", justify="right", no_wrap=True)

    for result in results:
        page = escape(result.container_title or "")
        if result.is_date_node:
            page = f"[node.daily]{page}[/node.daily]"
        content = "" if result.content is None else escape(_clip(result.content, _CONTENT_WIDTH))
        context_parts = []
        if result.parents:
            context_parts.append(f"{len(result.parents)} up")
        if result.children:
            context_parts.append(
                f"{len(result.children)} children, depth {result.hierarchy_depth}"
            )
        modified = result.modified_at.strftime("%Y-%m-%d") if result.modified_at else ""
        table.add_row(escape(result.id), page, content, ", ".join(context_parts), modified)

    print_paged(table)


def _print_ids(results: list[MatchResult]) -> None:
    """Print one block id per line."""
    for result in results:
        click.echo(result.id)


def _print_json(results: list[MatchResult]) -> None:
    """Print results as a JSON array."""
    click.echo(json.dumps([result.to_dict() for result in results], indent=2))
