"""Search engine entry points.

Each call is one invocation: it parses, runs the strategy branches,
merges, enriches, ranks, truncates and (in secure mode) redacts.  No
state is shared between invocations; the expansion cache and deadline
live and die with the call.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from notegraph.exceptions import StoreError
from notegraph.search.ast_nodes import (
    Expression,
    Hierarchical,
    HierarchyOperator,
    flatten_operand,
)
from notegraph.search.conditions import Combine, Condition
from notegraph.search.flat import ConditionExpander, FlatSearchExecutor
from notegraph.search.hierarchy import HierarchyAdapter
from notegraph.search.merge import combine_branches
from notegraph.search.parser import parse_expression
from notegraph.search.progress import NullProgress, ProgressSink
from notegraph.search.protocols import ContentGraphStore, HierarchyReader, TermExpander
from notegraph.search.ranking import rank_results
from notegraph.search.results import CombineMode, MatchResult, SearchOptions
from notegraph.search.strategies import Branch, BranchRunner, StrategyExecutor

logger = logging.getLogger(__name__)


@dataclass
class _Invocation:
    """Per-call collaborators."""

    options: SearchOptions
    runner: BranchRunner
    flat: FlatSearchExecutor
    strategies: StrategyExecutor
    hierarchy: HierarchyAdapter


def expression_conditions(expression: Expression) -> list[Condition]:
    """All conditions of an expression, for relevance scoring."""
    if isinstance(expression, Hierarchical):
        return flatten_operand(expression.left)[0] + flatten_operand(expression.right)[0]
    return flatten_operand(expression)[0]


class SearchEngine:
    """Evaluates simple and hierarchical searches against a content graph.

    Args:
        store: Content queries (flat and parent/child).
        hierarchy: Batched descendant/ancestor lookups.  Usually the
            same object as ``store``.
        expander: Optional term-expansion service.
        default_depths: Per-operator depth defaults overriding the
            built-in ones (3 for ``>>``, 5 for ``<<=>>``).
    """

    def __init__(
        self,
        store: ContentGraphStore,
        hierarchy: HierarchyReader | None = None,
        expander: TermExpander | None = None,
        *,
        default_depths: Mapping[HierarchyOperator, int] | None = None,
    ) -> None:
        self.store = store
        self.hierarchy = hierarchy if hierarchy is not None else store
        self.expander = expander
        self.default_depths = dict(default_depths or {})

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run_simple(
        self,
        conditions: list[Condition],
        combine: Combine = Combine.AND,
        options: SearchOptions | None = None,
        progress: ProgressSink | None = None,
    ) -> list[MatchResult]:
        """Flat search over the graph; no structural constraint."""
        inv = self._start(options, progress)
        results = inv.runner.run(
            [
                Branch(
                    "flat",
                    lambda: inv.flat.search(list(conditions), combine, inv.options.scope),
                )
            ]
        )[0]
        return self._finish(inv, results, conditions)

    def run_hierarchical(
        self,
        expression: str,
        options: SearchOptions | None = None,
        progress: ProgressSink | None = None,
    ) -> list[MatchResult]:
        """Parse and evaluate one query expression.

        An expression without a hierarchy operator is a flat search on
        its flattened conditions, exactly as :meth:`run_simple`.

        Raises:
            ParseError: If the expression is malformed.
            SearchTimeoutError: If the deadline passes.
            StoreError: If the store fails on a branch that cannot be skipped.
        """
        options = options or SearchOptions()
        parsed = self._parse(expression, options)
        if not isinstance(parsed, Hierarchical):
            conditions, combine = flatten_operand(parsed)
            return self.run_simple(conditions, combine, options, progress)

        inv = self._start(options, progress)
        results = inv.strategies.execute(parsed)
        return self._finish(inv, results, expression_conditions(parsed))

    def run_many(
        self,
        expressions: Sequence[str],
        mode: CombineMode = CombineMode.UNION,
        options: SearchOptions | None = None,
        progress: ProgressSink | None = None,
    ) -> list[MatchResult]:
        """Evaluate several expressions as independent branches and combine them.

        Every expression is parsed before any branch runs.  Under
        ``union`` a branch failing with ``StoreError`` is skipped with a
        warning; the other modes need every branch.
        """
        options = options or SearchOptions()
        parsed = [self._parse(expression, options) for expression in expressions]
        if not parsed:
            return []

        inv = self._start(options, progress)
        optional = mode is CombineMode.UNION and len(parsed) > 1
        branches = [
            Branch(f"expression-{i + 1}", self._evaluator(inv, expression), optional=optional)
            for i, expression in enumerate(parsed)
        ]
        combined = combine_branches(inv.runner.run(branches), mode)

        conditions: list[Condition] = []
        for expression in parsed:
            conditions.extend(expression_conditions(expression))
        return self._finish(inv, combined, conditions)

    @staticmethod
    def combine_many_branches(
        branches: Sequence[list[MatchResult]], mode: CombineMode
    ) -> list[MatchResult]:
        """Combine already-computed result sets; see :func:`combine_branches`."""
        return combine_branches(branches, mode)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _parse(self, expression: str, options: SearchOptions) -> Expression:
        return parse_expression(
            expression, max_depth=options.max_depth, default_depths=self.default_depths
        )

    def _start(self, options: SearchOptions | None, progress: ProgressSink | None) -> _Invocation:
        options = options or SearchOptions()
        progress = progress or NullProgress()
        deadline = time.monotonic() + options.timeout if options.timeout else None
        runner = BranchRunner(
            max_workers=options.max_workers,
            deadline=deadline,
            timeout=options.timeout,
            progress=progress,
        )
        expander = None
        if self.expander is not None:
            expander = ConditionExpander(
                self.expander,
                default_strategies=options.expansion,
                max_terms=options.max_expansion_terms,
                progress=progress,
            )
        flat = FlatSearchExecutor(self.store, expander)
        hierarchy = HierarchyAdapter(self.hierarchy)
        strategies = StrategyExecutor(flat, hierarchy, runner, options.scope)
        return _Invocation(options, runner, flat, strategies, hierarchy)

    @staticmethod
    def _evaluator(inv: _Invocation, expression: Expression):
        def evaluate() -> list[MatchResult]:
            if isinstance(expression, Hierarchical):
                return inv.strategies.execute(expression)
            conditions, combine = flatten_operand(expression)
            return inv.flat.search(conditions, combine, inv.options.scope)

        return evaluate

    def _enrich(self, inv: _Invocation, results: list[MatchResult]) -> None:
        options = inv.options
        branches: list[Branch] = []
        if options.include_children and options.child_depth > 0:
            branches.append(
                Branch(
                    "children",
                    lambda: inv.hierarchy.attach_children(results, options.child_depth) or [],
                    optional=True,
                )
            )
        if options.include_parents and options.parent_depth > 0:
            branches.append(
                Branch(
                    "parents",
                    lambda: inv.hierarchy.attach_parents(results, options.parent_depth) or [],
                    optional=True,
                )
            )
        if not branches:
            return
        try:
            inv.runner.run(branches)
        except StoreError as e:
            # Unenriched results are still valid results
            logger.warning("Could not load hierarchy context: %s", e)
            inv.runner.progress.warning(f"Could not load hierarchy context: {e}")

    def _finish(
        self,
        inv: _Invocation,
        results: list[MatchResult],
        conditions: Sequence[Condition],
    ) -> list[MatchResult]:
        options = inv.options
        results = [result.copy() for result in results]
        if results:
            self._enrich(inv, results)
        # Expansion alternatives carry their reduced weight into scoring
        ranked = rank_results(results, options.sort, inv.flat.prepare(list(conditions)))
        if options.limit:
            ranked = ranked[: options.limit]
        if options.secure:
            ranked = [result.redacted() for result in ranked]
        logger.info("Search returned %d of %d results", len(ranked), len(results))
        return ranked
