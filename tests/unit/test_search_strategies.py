"""Unit tests for hierarchy-operator strategies and the branch runner."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import pytest

from notegraph.exceptions import SearchTimeoutError, StoreError, ValidationError
from notegraph.search.conditions import Combine, Condition
from notegraph.search.flat import ConditionExpander, FlatSearchExecutor
from notegraph.search.hierarchy import HierarchyAdapter
from notegraph.search.parser import parse_expression
from notegraph.search.progress import RecordingProgress
from notegraph.search.results import MatchResult, SearchScope
from notegraph.search.strategies import Branch, BranchRunner, StrategyExecutor, fold_operand
from notegraph.store.query import SqlGraphStore


def _executor(
    store: SqlGraphStore,
    *,
    max_workers: int = 1,
    scope: SearchScope | None = None,
    expander: ConditionExpander | None = None,
) -> StrategyExecutor:
    runner = BranchRunner(max_workers=max_workers)
    flat = FlatSearchExecutor(store, expander)
    return StrategyExecutor(flat, HierarchyAdapter(store), runner, scope)


def _run(store: SqlGraphStore, query: str, **kwargs) -> list[MatchResult]:
    max_depth = kwargs.pop("max_depth", None)
    return _executor(store, **kwargs).execute(parse_expression(query, max_depth=max_depth))


def _ids(results: list[MatchResult]) -> set[str]:
    return {result.id for result in results}


def _ok(*ids: str):
    return lambda: [MatchResult(id=i, content=i) for i in ids]


def _fail(message: str = "backend down"):
    def run() -> list[MatchResult]:
        raise StoreError(message)

    return run


# ---------------------------------------------------------------------------
# BranchRunner
# ---------------------------------------------------------------------------


class TestBranchRunnerSerial:
    def test_results_in_branch_order(self) -> None:
        progress = RecordingProgress()
        runner = BranchRunner(max_workers=1, progress=progress)
        results = runner.run([Branch("one", _ok("a")), Branch("two", _ok("b", "c"))])
        assert [[r.id for r in rs] for rs in results] == [["a"], ["b", "c"]]
        assert progress.counts == {"one": 1, "two": 2}

    def test_optional_failure_becomes_warning(self) -> None:
        progress = RecordingProgress()
        runner = BranchRunner(max_workers=1, progress=progress)
        results = runner.run([Branch("bad", _fail(), optional=True), Branch("good", _ok("a"))])
        assert results[0] == []
        assert [r.id for r in results[1]] == ["a"]
        assert len(progress.warnings) == 1
        assert "bad" in progress.warnings[0]

    def test_required_failure_raises(self) -> None:
        runner = BranchRunner(max_workers=1)
        with pytest.raises(StoreError):
            runner.run([Branch("good", _ok("a")), Branch("bad", _fail())])

    def test_all_branches_failing_raises(self) -> None:
        runner = BranchRunner(max_workers=1)
        with pytest.raises(StoreError, match="first"):
            runner.run(
                [
                    Branch("one", _fail("first"), optional=True),
                    Branch("two", _fail("second"), optional=True),
                ]
            )

    def test_expired_deadline(self) -> None:
        runner = BranchRunner(max_workers=1, deadline=time.monotonic() - 1, timeout=5)
        with pytest.raises(SearchTimeoutError):
            runner.run([Branch("one", _ok("a"))])


class TestBranchRunnerPooled:
    def test_results_in_branch_order(self) -> None:
        runner = BranchRunner(max_workers=3)
        results = runner.run([Branch(str(i), _ok(f"n{i}")) for i in range(5)])
        assert [rs[0].id for rs in results] == [f"n{i}" for i in range(5)]

    def test_optional_failure_becomes_warning(self) -> None:
        progress = RecordingProgress()
        runner = BranchRunner(max_workers=3, progress=progress)
        results = runner.run(
            [
                Branch("good", _ok("a"), optional=True),
                Branch("bad", _fail(), optional=True),
                Branch("also-good", _ok("b"), optional=True),
            ]
        )
        assert [[r.id for r in rs] for rs in results] == [["a"], [], ["b"]]
        assert len(progress.warnings) == 1

    def test_required_failure_raises(self) -> None:
        runner = BranchRunner(max_workers=2)
        with pytest.raises(StoreError):
            runner.run([Branch("good", _ok("a"), optional=True), Branch("bad", _fail())])

    def test_unexpected_errors_are_not_swallowed(self) -> None:
        def broken() -> list[MatchResult]:
            raise RuntimeError("bug")

        runner = BranchRunner(max_workers=2)
        with pytest.raises(RuntimeError):
            runner.run(
                [Branch("good", _ok("a"), optional=True), Branch("bug", broken, optional=True)]
            )

    def test_deadline_aborts_slow_branch(self) -> None:
        release = threading.Event()

        def slow() -> list[MatchResult]:
            release.wait(5)
            return []

        runner = BranchRunner(max_workers=2, deadline=time.monotonic() + 0.1, timeout=0.1)
        try:
            with pytest.raises(SearchTimeoutError):
                runner.run([Branch("fast", _ok("a")), Branch("slow", slow)])
        finally:
            release.set()


# ---------------------------------------------------------------------------
# Operand folding
# ---------------------------------------------------------------------------


class TestFoldOperand:
    def test_and_unchanged(self) -> None:
        conditions = [Condition.text("a"), Condition.text("b")]
        assert fold_operand(conditions, Combine.AND) == conditions

    def test_or_becomes_alternatives(self) -> None:
        folded = fold_operand([Condition.text("a"), Condition.text("b")], Combine.OR)
        assert len(folded) == 1
        assert [v.pattern for v in folded[0].variants()] == ["a", "b"]

    def test_negated_alternative_rejected(self) -> None:
        with pytest.raises(ValidationError):
            fold_operand([Condition.text("a"), Condition.text("b", negate=True)], Combine.OR)


# ---------------------------------------------------------------------------
# Strategies on the sample graph
# ---------------------------------------------------------------------------


class TestStrict:
    def test_direct_child(self, graph_store: SqlGraphStore) -> None:
        results = _run(graph_store, "risk > mitigation")
        assert _ids(results) == {"b1", "d1"}
        assert {r.id: r.matched_child_ids for r in results}["b1"] == ("b2",)

    def test_scope_applies_to_parent(self, graph_store: SqlGraphStore) -> None:
        scope = SearchScope(include_date_nodes=False)
        results = _run(graph_store, "risk > mitigation", scope=scope)
        assert _ids(results) == {"b1"}

    def test_grandchild_is_not_a_child(self, graph_store: SqlGraphStore) -> None:
        assert _run(graph_store, "register > ref:Alice + deadline") == []


class TestDeepStrict:
    def test_descendant_within_depth(self, graph_store: SqlGraphStore) -> None:
        results = _run(graph_store, "risk >> deadline")
        assert _ids(results) == {"b1"}
        assert results[0].matched_child_ids == ("b4",)

    def test_depth_limit(self, graph_store: SqlGraphStore) -> None:
        assert _run(graph_store, "risk >> deadline", max_depth=1) == []

    def test_and_may_be_met_by_different_descendants(self, graph_store: SqlGraphStore) -> None:
        results = _run(graph_store, "register >> ref:Alice + deadline")
        assert _ids(results) == {"b1"}
        assert set(results[0].matched_child_ids) == {"b3", "b4"}

    def test_no_left_candidates(self, graph_store: SqlGraphStore) -> None:
        assert _run(graph_store, "nonexistent >> deadline") == []


class TestFlexible:
    def test_same_node_before_descendants(self, graph_store: SqlGraphStore) -> None:
        results = _run(graph_store, "risk => mitigation")
        assert [r.id for r in results] == ["b2", "d1", "b1"]

    def test_or_operand(self, graph_store: SqlGraphStore) -> None:
        results = _run(graph_store, "alpha | launch => beta")
        assert _ids(results) == {"b5", "p1", "p2", "b6"}

    def test_pooled_matches_serial(self, graph_store: SqlGraphStore) -> None:
        serial = _run(graph_store, "risk => mitigation")
        pooled = _run(graph_store, "risk => mitigation", max_workers=4)
        assert [r.id for r in pooled] == [r.id for r in serial]


class TestBidirectional:
    def test_both_directions_and_same_node(self, graph_store: SqlGraphStore) -> None:
        results = _run(graph_store, "alpha <=> beta")
        assert _ids(results) == {"b5", "b6", "p1"}

    def test_deep(self, graph_store: SqlGraphStore) -> None:
        results = _run(graph_store, "alpha <<=>> beta", max_workers=3)
        assert _ids(results) == {"b5", "b6", "p1"}

    def test_deep_reaches_beyond_children(self, graph_store: SqlGraphStore) -> None:
        assert _run(graph_store, "deadline <=> register") == []
        results = _run(graph_store, "deadline <<=>> register")
        assert _ids(results) == {"b1"}


class TestExpansionOnDescendants:
    @staticmethod
    def _expander() -> ConditionExpander:
        service = MagicMock()
        service.expand.side_effect = lambda term, strategy, max_terms: (
            ["details"] if term == "checklist" else []
        )
        return ConditionExpander(service)

    def test_strict_expands_child_side(self, graph_store: SqlGraphStore) -> None:
        results = _run(graph_store, "alpha > checklist~", expander=self._expander())
        assert _ids(results) == {"b6", "p2"}

    def test_deep_strict_agrees_with_strict(self, graph_store: SqlGraphStore) -> None:
        strict = _run(graph_store, "alpha > checklist~", expander=self._expander())
        deep = _run(graph_store, "alpha >> checklist~", expander=self._expander())
        assert _ids(strict) <= _ids(deep)
        assert {r.id: r.matched_child_ids for r in deep}["b6"] == ("b7",)

    def test_flexible_and_deep_bidirectional(self, graph_store: SqlGraphStore) -> None:
        flexible = _run(graph_store, "alpha => checklist~", expander=self._expander())
        assert _ids(flexible) == {"b6", "p2"}
        both = _run(graph_store, "alpha <<=>> checklist~", expander=self._expander())
        assert _ids(both) == {"b6", "p2"}

    def test_unexpanded_descendant_side(self, graph_store: SqlGraphStore) -> None:
        assert _ids(_run(graph_store, "alpha >> checklist")) == {"p2"}


class TestBranchFailures:
    class FlakyStore:
        """Delegates to a real store but fails parent/child joins."""

        def __init__(self, store: SqlGraphStore) -> None:
            self._store = store

        def query(self, conditions, combine, scope=None):
            return self._store.query(conditions, combine, scope)

        def query_parent_child(self, *args, **kwargs):
            raise StoreError("join failed")

    def test_bidirectional_degrades(self, graph_store: SqlGraphStore) -> None:
        store = self.FlakyStore(graph_store)
        progress = RecordingProgress()
        runner = BranchRunner(max_workers=1, progress=progress)
        executor = StrategyExecutor(
            FlatSearchExecutor(store), HierarchyAdapter(graph_store), runner
        )
        results = executor.execute(parse_expression("alpha <=> beta"))
        assert _ids(results) == {"b5"}
        assert len(progress.warnings) == 2

    def test_strict_fails(self, graph_store: SqlGraphStore) -> None:
        store = self.FlakyStore(graph_store)
        executor = StrategyExecutor(
            FlatSearchExecutor(store), HierarchyAdapter(graph_store), BranchRunner(max_workers=1)
        )
        with pytest.raises(StoreError):
            executor.execute(parse_expression("risk > mitigation"))
