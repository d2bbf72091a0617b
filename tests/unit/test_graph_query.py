"""Unit tests for the SQL-backed graph store."""

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import create_engine

from notegraph.exceptions import StoreError
from notegraph.search.conditions import Combine, Condition, MatchMode
from notegraph.search.results import DateField, SearchScope
from notegraph.store.query import SqlGraphStore


def _ids(records) -> set[str]:
    return {record.id for record in records}


# ---------------------------------------------------------------------------
# Flat queries
# ---------------------------------------------------------------------------


class TestQuery:
    def test_text_is_case_insensitive(self, graph_store: SqlGraphStore) -> None:
        records = graph_store.query([Condition.text("RISK")], Combine.AND)
        assert _ids(records) == {"b1", "b2", "d1"}

    def test_pages_are_never_returned(self, graph_store: SqlGraphStore) -> None:
        records = graph_store.query([Condition.text("Project Alpha")], Combine.AND)
        assert records == []

    def test_and(self, graph_store: SqlGraphStore) -> None:
        conditions = [Condition.text("alpha"), Condition.text("beta")]
        assert _ids(graph_store.query(conditions, Combine.AND)) == {"b5"}

    def test_or(self, graph_store: SqlGraphStore) -> None:
        conditions = [Condition.text("deadline"), Condition.text("checklist")]
        assert _ids(graph_store.query(conditions, Combine.OR)) == {"b4", "p3"}

    def test_negation(self, graph_store: SqlGraphStore) -> None:
        conditions = [Condition.text("beta"), Condition.text("alpha", negate=True)]
        assert _ids(graph_store.query(conditions, Combine.AND)) == {"b7", "p1", "p3"}

    def test_exact(self, graph_store: SqlGraphStore) -> None:
        condition = Condition.text("risk register", match_mode=MatchMode.EXACT)
        assert _ids(graph_store.query([condition], Combine.AND)) == {"b1"}

    def test_alternatives(self, graph_store: SqlGraphStore) -> None:
        condition = Condition.text("deadline").with_alternatives((Condition.text("launch"),))
        assert _ids(graph_store.query([condition], Combine.AND)) == {"b4", "p1"}

    def test_page_ref(self, graph_store: SqlGraphStore) -> None:
        assert _ids(graph_store.query([Condition.page_ref("alice")], Combine.AND)) == {"b3"}
        assert _ids(graph_store.query([Condition.page_ref("Meeting")], Combine.AND)) == {"d1"}

    def test_block_ref(self, graph_store: SqlGraphStore) -> None:
        assert _ids(graph_store.query([Condition.block_ref("b2")], Combine.AND)) == {"d2"}

    def test_regex(self, graph_store: SqlGraphStore) -> None:
        records = graph_store.query([Condition.regex(r"\d{4}-\d{2}")], Combine.AND)
        assert _ids(records) == {"b4"}

    def test_regex_default_ignores_case(self, graph_store: SqlGraphStore) -> None:
        records = graph_store.query([Condition.regex("^RISK")], Combine.AND)
        assert _ids(records) == {"b1", "d1"}

    def test_invalid_regex_matches_nothing(self, graph_store: SqlGraphStore) -> None:
        records = graph_store.query([Condition.regex("(unclosed", negate=True)], Combine.AND)
        assert records == []

    def test_empty_conditions(self, graph_store: SqlGraphStore) -> None:
        assert graph_store.query([], Combine.AND) == []

    def test_newest_first(self, graph_store: SqlGraphStore) -> None:
        records = graph_store.query([Condition.text("risk")], Combine.AND)
        assert [r.id for r in records] == ["d1", "b2", "b1"]

    def test_record_fields(self, graph_store: SqlGraphStore) -> None:
        (record,) = graph_store.query([Condition.text("risk review")], Combine.AND)
        assert record.container_id == "01-02-2024"
        assert record.container_title == "January 2nd, 2024"
        assert record.is_date_node
        assert not record.is_container
        assert record.parent_id == "01-02-2024"
        assert record.modified_at == datetime(2024, 1, 9)


class TestScope:
    def test_exclude_daily_notes(self, graph_store: SqlGraphStore) -> None:
        scope = SearchScope(include_date_nodes=False)
        records = graph_store.query([Condition.text("risk")], Combine.AND, scope)
        assert _ids(records) == {"b1", "b2"}

    def test_container_titles(self, graph_store: SqlGraphStore) -> None:
        scope = SearchScope(container_titles=frozenset({"beta program"}))
        records = graph_store.query([Condition.text("alpha")], Combine.AND, scope)
        assert _ids(records) == {"p2"}

    def test_container_ids(self, graph_store: SqlGraphStore) -> None:
        scope = SearchScope(container_ids=frozenset({"page-alpha"}))
        records = graph_store.query([Condition.text("beta")], Combine.AND, scope)
        assert _ids(records) == {"b5", "b7"}

    def test_node_ids_and_exclusions(self, graph_store: SqlGraphStore) -> None:
        scope = SearchScope(node_ids=frozenset({"b1", "b2", "b5"}), exclude_ids=frozenset({"b2"}))
        records = graph_store.query([Condition.text("risk")], Combine.AND, scope)
        assert _ids(records) == {"b1"}

    def test_modified_range(self, graph_store: SqlGraphStore) -> None:
        scope = SearchScope(date_from=datetime(2024, 1, 3), date_to=datetime(2024, 1, 8, 23, 59))
        records = graph_store.query([Condition.text("risk")], Combine.AND, scope)
        assert _ids(records) == {"b2"}

    def test_created_field(self, graph_store: SqlGraphStore) -> None:
        scope = SearchScope(date_from=datetime(2024, 1, 9), date_field=DateField.CREATED)
        records = graph_store.query([Condition.text("risk")], Combine.AND, scope)
        assert _ids(records) == {"d1"}


# ---------------------------------------------------------------------------
# Parent/child joins
# ---------------------------------------------------------------------------


class TestQueryParentChild:
    def test_direct_children(self, graph_store: SqlGraphStore) -> None:
        matches = graph_store.query_parent_child(
            [Condition.text("risk")], Combine.AND, [Condition.text("mitigation")], Combine.AND
        )
        assert {m.parent.id: m.child_ids for m in matches} == {"b1": ("b2",), "d1": ("d2",)}

    def test_grandchildren_do_not_count(self, graph_store: SqlGraphStore) -> None:
        matches = graph_store.query_parent_child(
            [Condition.text("risk")], Combine.AND, [Condition.text("deadline")], Combine.AND
        )
        assert matches == []

    def test_scope_restricts_parent(self, graph_store: SqlGraphStore) -> None:
        matches = graph_store.query_parent_child(
            [Condition.text("risk")],
            Combine.AND,
            [Condition.text("mitigation")],
            Combine.AND,
            SearchScope(include_date_nodes=False),
        )
        assert [m.parent.id for m in matches] == ["b1"]

    def test_and_children_may_differ(self, graph_store: SqlGraphStore) -> None:
        matches = graph_store.query_parent_child(
            [Condition.text("register")],
            Combine.AND,
            [Condition.text("mitigation"), Condition.page_ref("Alice")],
            Combine.AND,
        )
        assert len(matches) == 1
        assert matches[0].parent.id == "b1"
        assert set(matches[0].child_ids) == {"b2", "b3"}

    def test_and_needs_every_condition(self, graph_store: SqlGraphStore) -> None:
        matches = graph_store.query_parent_child(
            [Condition.text("register")],
            Combine.AND,
            [Condition.text("mitigation"), Condition.text("launch")],
            Combine.AND,
        )
        assert matches == []

    def test_or_children(self, graph_store: SqlGraphStore) -> None:
        matches = graph_store.query_parent_child(
            [Condition.text("register")],
            Combine.AND,
            [Condition.text("mitigation"), Condition.text("launch")],
            Combine.OR,
        )
        assert [(m.parent.id, m.child_ids) for m in matches] == [("b1", ("b2",))]

    def test_negated_child_condition(self, graph_store: SqlGraphStore) -> None:
        matches = graph_store.query_parent_child(
            [Condition.text("register")],
            Combine.AND,
            [Condition.text("mitigation", negate=True)],
            Combine.AND,
        )
        assert [(m.parent.id, m.child_ids) for m in matches] == [("b1", ("b3",))]


# ---------------------------------------------------------------------------
# Hierarchy walks
# ---------------------------------------------------------------------------


class TestWalks:
    def test_descendants_with_levels(self, graph_store: SqlGraphStore) -> None:
        found = graph_store.descendants(["b1"], 3)
        assert [(r.id, r.level) for r in found["b1"]] == [("b2", 1), ("b3", 1), ("b4", 2)]

    def test_descendants_depth_bound(self, graph_store: SqlGraphStore) -> None:
        found = graph_store.descendants(["b1"], 1)
        assert [r.id for r in found["b1"]] == ["b2", "b3"]

    def test_descendants_batched(self, graph_store: SqlGraphStore) -> None:
        found = graph_store.descendants(["b6", "p1", "b5"], 5)
        assert [r.id for r in found["b6"]] == ["b7"]
        assert [r.id for r in found["p1"]] == ["p2", "p3"]
        assert found["b5"] == []

    def test_unknown_id(self, graph_store: SqlGraphStore) -> None:
        assert graph_store.descendants(["missing"], 2) == {"missing": []}

    def test_zero_depth(self, graph_store: SqlGraphStore) -> None:
        assert graph_store.descendants(["b1"], 0) == {"b1": []}

    def test_ancestors_nearest_first(self, graph_store: SqlGraphStore) -> None:
        found = graph_store.ancestors(["b4"], 2)
        assert [(r.id, r.level) for r in found["b4"]] == [("b3", 1), ("b1", 2)]

    def test_ancestors_reach_page(self, graph_store: SqlGraphStore) -> None:
        found = graph_store.ancestors(["b2"], 5)
        assert [r.id for r in found["b2"]] == ["b1", "page-alpha"]
        assert found["b2"][-1].is_container


class TestStoreErrors:
    def test_missing_tables_raise_store_error(self) -> None:
        engine = create_engine("sqlite:///:memory:")
        store = SqlGraphStore(engine)
        with pytest.raises(StoreError):
            store.query([Condition.text("risk")], Combine.AND)
