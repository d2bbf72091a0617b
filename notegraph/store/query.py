"""Lower search conditions to SQL and answer them from the graph database."""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import and_, case, false, func, literal, not_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased, sessionmaker

from notegraph.exceptions import StoreError
from notegraph.search.conditions import (
    Combine,
    Condition,
    ConditionKind,
    MatchMode,
    is_evaluable,
    python_regex_flags,
)
from notegraph.search.protocols import NodeRecord, ParentChildMatch
from notegraph.search.results import DateField, SearchScope
from notegraph.store.models import GraphNode, NodeRef

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement, Engine
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Separator for aggregated child uids; Roam uids never contain it
_UID_SEP = "\x1f"


# ---------------------------------------------------------------------------
# Condition lowering
# ---------------------------------------------------------------------------


def _ref_clause(node, kind: str, target: str) -> ColumnElement[bool]:
    refs = select(NodeRef.source_uid).where(NodeRef.kind == kind, NodeRef.target == target)
    return node.uid.in_(refs)


def _variant_clause(node, condition: Condition) -> ColumnElement[bool]:
    """Clause for a single variant, ignoring negation and alternatives."""
    kind = condition.kind
    if kind is ConditionKind.TEXT:
        if condition.match_mode is MatchMode.EXACT:
            return func.casefold(func.trim(node.content)) == condition.pattern.strip().casefold()
        if condition.match_mode is MatchMode.CONTAINS:
            return func.instr(func.casefold(node.content), condition.pattern.casefold()) > 0
        return _regex_clause(node, condition)
    if kind is ConditionKind.PAGE_REF:
        return _ref_clause(node, "page", condition.pattern.strip().casefold())
    if kind is ConditionKind.BLOCK_REF:
        return _ref_clause(node, "block", condition.pattern.strip())
    if kind is ConditionKind.REGEX:
        return _regex_clause(node, condition)
    raise ValueError(f"Unhandled condition kind: {kind}")


def _regex_clause(node, condition: Condition) -> ColumnElement[bool]:
    # SQLite REGEXP runs Python's re.search, so flags travel inline
    flags = python_regex_flags(condition.regex_flags)
    pattern = f"(?{flags}){condition.pattern}" if flags else condition.pattern
    return node.content.regexp_match(pattern)


def condition_clause(node, condition: Condition) -> ColumnElement[bool]:
    """Lower one condition, alternatives included, to a SQL clause.

    Mirrors ``condition_matches``: variants with an invalid regex are
    dropped, and a condition left without variants matches nothing.
    """
    variants = [v for v in condition.variants() if is_evaluable(v)]
    if not variants:
        return false()
    clause = or_(*(_variant_clause(node, v) for v in variants))
    if condition.negate:
        return not_(func.coalesce(clause, False))
    return clause


def conditions_clause(node, conditions: list[Condition], combine: Combine) -> ColumnElement[bool]:
    if not conditions:
        return false()
    clauses = [condition_clause(node, c) for c in conditions]
    return and_(*clauses) if combine is Combine.AND else or_(*clauses)


def scope_clauses(node, scope: SearchScope | None) -> list[ColumnElement[bool]]:
    """Clauses restricting ``node`` to the scope; blocks only."""
    clauses: list[ColumnElement[bool]] = [node.is_page.is_(False)]
    if scope is None:
        return clauses
    if scope.node_ids is not None:
        clauses.append(node.uid.in_(sorted(scope.node_ids)))
    if scope.container_ids is not None:
        clauses.append(node.page_uid.in_(sorted(scope.container_ids)))
    if scope.container_titles is not None:
        titles = sorted({t.casefold() for t in scope.container_titles})
        clauses.append(func.casefold(node.page_title).in_(titles))
    if not scope.include_date_nodes:
        clauses.append(node.is_daily.is_(False))
    column = node.created_at if scope.date_field is DateField.CREATED else node.modified_at
    if scope.date_from is not None:
        clauses.append(column >= scope.date_from)
    if scope.date_to is not None:
        clauses.append(column <= scope.date_to)
    if scope.exclude_ids:
        clauses.append(node.uid.notin_(sorted(scope.exclude_ids)))
    return clauses


def to_record(node: GraphNode, level: int = 0) -> NodeRecord:
    return NodeRecord(
        id=node.uid,
        content=node.content,
        container_id=node.page_uid,
        container_title=node.page_title,
        created_at=node.created_at,
        modified_at=node.modified_at,
        is_container=node.is_page,
        is_date_node=node.is_daily,
        parent_id=node.parent_uid,
        order=node.order,
        level=level,
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlGraphStore:
    """Content graph store and hierarchy reader over the SQLite graph.

    Every call opens its own session, so one store can serve concurrent
    branches from worker threads.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine)

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            raise StoreError(f"Graph database query failed: {e}") from e
        finally:
            session.close()

    def query(
        self,
        conditions: list[Condition],
        combine: Combine,
        scope: SearchScope | None = None,
    ) -> list[NodeRecord]:
        """Return blocks matching ``conditions`` in a single SELECT."""
        stmt = (
            select(GraphNode)
            .where(
                conditions_clause(GraphNode, conditions, combine),
                *scope_clauses(GraphNode, scope),
            )
            .order_by(GraphNode.modified_at.desc(), GraphNode.uid)
        )
        with self._session() as session:
            nodes = session.scalars(stmt).all()
            records = [to_record(node) for node in nodes]
        logger.debug(
            "Store query (%s, %d conditions): %d rows", combine.value, len(conditions), len(records)
        )
        return records

    def query_parent_child(
        self,
        parent_conditions: list[Condition],
        parent_combine: Combine,
        child_conditions: list[Condition],
        child_combine: Combine,
        scope: SearchScope | None = None,
    ) -> list[ParentChildMatch]:
        """Join parents matching the left side to direct children matching the right.

        With AND and several child conditions, each condition needs some
        direct child satisfying it, not necessarily the same one.  The
        scope restricts the parent side only.
        """
        child = aliased(GraphNode)
        distributed = child_combine is Combine.AND and len(child_conditions) > 1
        child_clauses = [condition_clause(child, c) for c in child_conditions]
        if distributed:
            child_filter = or_(*child_clauses)
        else:
            child_filter = conditions_clause(child, child_conditions, child_combine)

        stmt = (
            select(GraphNode, func.group_concat(child.uid, _UID_SEP))
            .join(child, child.parent_uid == GraphNode.uid)
            .where(
                conditions_clause(GraphNode, parent_conditions, parent_combine),
                *scope_clauses(GraphNode, scope),
                child_filter,
            )
            .group_by(GraphNode.uid)
            .order_by(GraphNode.modified_at.desc(), GraphNode.uid)
        )
        if distributed:
            stmt = stmt.having(
                and_(*(func.max(case((clause, 1), else_=0)) == 1 for clause in child_clauses))
            )

        with self._session() as session:
            rows = session.execute(stmt).all()
            matches = [
                ParentChildMatch(
                    parent=to_record(node),
                    child_ids=tuple(dict.fromkeys((child_ids or "").split(_UID_SEP))),
                )
                for node, child_ids in rows
            ]
        logger.debug("Store parent/child join: %d parents", len(matches))
        return matches

    def descendants(self, ids: Iterable[str], depth: int) -> dict[str, list[NodeRecord]]:
        """Descendants of every id up to ``depth`` levels, via one recursive CTE.

        Each list is ordered by level, then sibling order.
        """
        return self._walk(ids, depth, downward=True)

    def ancestors(self, ids: Iterable[str], depth: int) -> dict[str, list[NodeRecord]]:
        """Ancestors of every id up to ``depth`` levels, nearest first."""
        return self._walk(ids, depth, downward=False)

    def _walk(
        self, ids: Iterable[str], depth: int, *, downward: bool
    ) -> dict[str, list[NodeRecord]]:
        roots = list(dict.fromkeys(ids))
        result: dict[str, list[NodeRecord]] = {root: [] for root in roots}
        if depth <= 0 or not roots:
            return result

        seed = select(
            GraphNode.uid.label("root"),
            GraphNode.uid.label("uid"),
            GraphNode.parent_uid.label("parent_uid"),
            literal(0).label("level"),
        ).where(GraphNode.uid.in_(roots))
        tree = seed.cte("tree", recursive=True)
        prev = tree.alias()

        step = aliased(GraphNode)
        if downward:
            link = step.parent_uid == prev.c.uid
        else:
            link = step.uid == prev.c.parent_uid
        tree = tree.union_all(
            select(prev.c.root, step.uid, step.parent_uid, prev.c.level + 1)
            .join(step, link)
            .where(prev.c.level < depth)
        )

        stmt = (
            select(tree.c.root, tree.c.level, GraphNode)
            .join(GraphNode, GraphNode.uid == tree.c.uid)
            .where(tree.c.level > 0)
            .order_by(tree.c.root, tree.c.level, GraphNode.order, GraphNode.uid)
        )
        with self._session() as session:
            for root, level, node in session.execute(stmt):
                result[root].append(to_record(node, level))
        return result
