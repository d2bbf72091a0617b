"""Execution strategies for the five hierarchy operators.

Every strategy is a handful of independent branches (flat searches and
batched hierarchy lookups) whose results are merged by id.  Branches of
one strategy run on a thread pool; with ``max_workers=1`` they run in
order on the calling thread.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass

from notegraph.exceptions import SearchTimeoutError, StoreError, ValidationError
from notegraph.search.ast_nodes import Hierarchical, HierarchyOperator, flatten_operand
from notegraph.search.conditions import Combine, Condition
from notegraph.search.flat import FlatSearchExecutor
from notegraph.search.hierarchy import HierarchyAdapter
from notegraph.search.merge import merge_bidirectional, merge_prioritized
from notegraph.search.progress import NullProgress, ProgressSink
from notegraph.search.results import MatchResult, SearchScope

logger = logging.getLogger(__name__)


@dataclass
class Branch:
    """One independently runnable piece of work.

    An optional branch that fails with ``StoreError`` contributes an empty
    result and a warning instead of failing the invocation.
    """

    name: str
    run: Callable[[], list[MatchResult]]
    optional: bool = False


class BranchRunner:
    """Runs branches concurrently under one invocation deadline."""

    def __init__(
        self,
        *,
        max_workers: int = 4,
        deadline: float | None = None,
        timeout: float | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self.max_workers = max_workers
        self.deadline = deadline
        self.timeout = timeout
        self.progress = progress or NullProgress()

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def check_deadline(self) -> None:
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise SearchTimeoutError(self.timeout or 0.0)

    def _call(self, branch: Branch) -> list[MatchResult]:
        self.progress.branch_started(branch.name)
        results = branch.run()
        self.progress.branch_finished(branch.name, len(results))
        logger.debug("Branch %s returned %d results", branch.name, len(results))
        return results

    def run(self, branches: Sequence[Branch]) -> list[list[MatchResult]]:
        """Run branches and return their results in branch order.

        Raises:
            SearchTimeoutError: If the deadline passes before all finish.
            StoreError: If a required branch fails, or every branch fails.
        """
        self.check_deadline()
        if self.max_workers == 1 or (len(branches) == 1 and self.deadline is None):
            outcomes = self._run_serial(branches)
        else:
            outcomes = self._run_pooled(branches)
        self.check_deadline()
        return self._settle(branches, outcomes)

    def _run_serial(self, branches: Sequence[Branch]) -> list[list[MatchResult] | Exception]:
        outcomes: list[list[MatchResult] | Exception] = []
        for branch in branches:
            self.check_deadline()
            try:
                outcomes.append(self._call(branch))
            except StoreError as e:
                if not branch.optional:
                    raise
                outcomes.append(e)
        return outcomes

    def _run_pooled(self, branches: Sequence[Branch]) -> list[list[MatchResult] | Exception]:
        executor = ThreadPoolExecutor(max_workers=min(self.max_workers, len(branches)))
        try:
            futures = [executor.submit(self._call, branch) for branch in branches]
            done, pending = wait(futures, timeout=self.remaining(), return_when=FIRST_EXCEPTION)
            # Keep waiting past optional failures; stop early on anything fatal
            while pending and not any(self._is_fatal(f, b) for f, b in zip(futures, branches)):
                more, pending = wait(pending, timeout=self.remaining(), return_when=FIRST_EXCEPTION)
                if not more:
                    break
                done |= more

            for future, branch in zip(futures, branches):
                if self._is_fatal(future, branch):
                    raise future.exception()
            if pending:
                for future in pending:
                    future.cancel()
                raise SearchTimeoutError(self.timeout or 0.0)

            return [
                future.exception() if future.exception() else future.result()
                for future in futures
            ]
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _is_fatal(future, branch: Branch) -> bool:
        if not future.done() or future.cancelled() or future.exception() is None:
            return False
        return not (branch.optional and isinstance(future.exception(), StoreError))

    def _settle(
        self,
        branches: Sequence[Branch],
        outcomes: list[list[MatchResult] | Exception],
    ) -> list[list[MatchResult]]:
        failures = [o for o in outcomes if isinstance(o, Exception)]
        if failures and len(failures) == len(outcomes):
            raise failures[0]

        settled: list[list[MatchResult]] = []
        for branch, outcome in zip(branches, outcomes):
            if isinstance(outcome, Exception):
                message = f"Branch '{branch.name}' failed and was skipped: {outcome}"
                logger.warning(message)
                self.progress.warning(message)
                settled.append([])
            else:
                settled.append(outcome)
        return settled


def fold_operand(conditions: list[Condition], combine: Combine) -> list[Condition]:
    """Express an operand as conditions that must all hold on one node.

    An OR list folds into a single condition whose alternatives are the
    other members.
    """
    if combine is Combine.AND or len(conditions) <= 1:
        return list(conditions)
    if any(condition.negate for condition in conditions):
        raise ValidationError(
            "conditions",
            [c.pattern for c in conditions],
            "a negated alternative cannot be combined with another operand",
        )
    first, *rest = conditions
    extra = tuple(variant for condition in rest for variant in condition.variants())
    return [first.with_alternatives(extra)]


class StrategyExecutor:
    """Evaluates one parsed hierarchical expression.

    ``scope`` applies to every flat search; hierarchy lookups see the
    whole graph, so a descendant outside the scope can still satisfy the
    right operand of a parent inside it.
    """

    def __init__(
        self,
        flat: FlatSearchExecutor,
        hierarchy: HierarchyAdapter,
        runner: BranchRunner,
        scope: SearchScope | None = None,
    ) -> None:
        self.flat = flat
        self.hierarchy = hierarchy
        self.runner = runner
        self.scope = scope

    def execute(self, node: Hierarchical) -> list[MatchResult]:
        left, left_combine = flatten_operand(node.left)
        right, right_combine = flatten_operand(node.right)
        operator = node.operator
        logger.debug(
            "Executing %s: %d left (%s), %d right (%s), depth %d",
            operator.value, len(left), left_combine.value,
            len(right), right_combine.value, node.levels,
        )

        if operator is HierarchyOperator.STRICT:
            return self.strict(left, left_combine, right, right_combine)
        if operator is HierarchyOperator.DEEP_STRICT:
            return self.deep_strict(left, left_combine, right, right_combine, node.levels)
        if operator is HierarchyOperator.FLEXIBLE:
            return self.flexible(left, left_combine, right, right_combine, node.max_depth)
        if operator is HierarchyOperator.BIDIRECTIONAL:
            return self.bidirectional(left, left_combine, right, right_combine, deep_levels=None)
        if operator is HierarchyOperator.DEEP_BIDIRECTIONAL:
            return self.bidirectional(
                left, left_combine, right, right_combine, deep_levels=node.levels
            )
        raise ValueError(f"Unhandled operator: {operator}")

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def same_node(
        self,
        left: list[Condition],
        left_combine: Combine,
        right: list[Condition],
        right_combine: Combine,
    ) -> list[MatchResult]:
        """Nodes satisfying both operands themselves."""
        conditions = fold_operand(left, left_combine) + fold_operand(right, right_combine)
        return self.flat.search(conditions, Combine.AND, self.scope)

    def strict(
        self,
        left: list[Condition],
        left_combine: Combine,
        right: list[Condition],
        right_combine: Combine,
    ) -> list[MatchResult]:
        """Parents matching ``left`` with a direct child matching ``right``."""
        branch = Branch(
            "parent-child",
            lambda: self.flat.search_parent_child(
                left, left_combine, right, right_combine, self.scope
            ),
        )
        return self.runner.run([branch])[0]

    def _descendant_matches(
        self,
        left: list[Condition],
        left_combine: Combine,
        right: list[Condition],
        right_combine: Combine,
        levels: int,
    ) -> list[MatchResult]:
        candidates = self.flat.search(left, left_combine, self.scope)
        if not candidates:
            return []
        self.runner.check_deadline()
        found = self.hierarchy.matching_descendants(
            (c.id for c in candidates), levels, self.flat.prepare(right), right_combine
        )
        results: list[MatchResult] = []
        for candidate in candidates:
            if candidate.id in found:
                candidate.matched_child_ids = found[candidate.id]
                results.append(candidate)
        return results

    def deep_strict(
        self,
        left: list[Condition],
        left_combine: Combine,
        right: list[Condition],
        right_combine: Combine,
        levels: int,
    ) -> list[MatchResult]:
        """Nodes matching ``left`` with a descendant within ``levels`` matching ``right``."""
        branch = Branch(
            "descendants",
            lambda: self._descendant_matches(left, left_combine, right, right_combine, levels),
        )
        return self.runner.run([branch])[0]

    # ------------------------------------------------------------------
    # Multi-branch strategies
    # ------------------------------------------------------------------

    def flexible(
        self,
        left: list[Condition],
        left_combine: Combine,
        right: list[Condition],
        right_combine: Combine,
        levels: int,
    ) -> list[MatchResult]:
        """Same-node matches first, then descendant matches within ``levels``."""
        same, nested = self.runner.run(
            [
                Branch(
                    "same-node",
                    lambda: self.same_node(left, left_combine, right, right_combine),
                    optional=True,
                ),
                Branch(
                    "descendants",
                    lambda: self._descendant_matches(
                        left, left_combine, right, right_combine, levels
                    ),
                    optional=True,
                ),
            ]
        )
        return merge_prioritized([same, nested])

    def bidirectional(
        self,
        left: list[Condition],
        left_combine: Combine,
        right: list[Condition],
        right_combine: Combine,
        deep_levels: int | None,
    ) -> list[MatchResult]:
        """Same-node, forward and reverse matches, merged with coverage rules.

        With ``deep_levels`` set the forward and reverse branches look at
        descendants within that many levels instead of direct children.
        """
        if deep_levels is None:
            def forward() -> list[MatchResult]:
                return self.flat.search_parent_child(
                    left, left_combine, right, right_combine, self.scope
                )

            def reverse() -> list[MatchResult]:
                return self.flat.search_parent_child(
                    right, right_combine, left, left_combine, self.scope
                )
        else:
            def forward() -> list[MatchResult]:
                return self._descendant_matches(
                    left, left_combine, right, right_combine, deep_levels
                )

            def reverse() -> list[MatchResult]:
                return self._descendant_matches(
                    right, right_combine, left, left_combine, deep_levels
                )

        same, forward_results, reverse_results = self.runner.run(
            [
                Branch(
                    "same-node",
                    lambda: self.same_node(left, left_combine, right, right_combine),
                    optional=True,
                ),
                Branch("forward", forward, optional=True),
                Branch("reverse", reverse, optional=True),
            ]
        )
        return merge_bidirectional(same, forward_results, reverse_results)
