"""Batched descendant/ancestor lookups and result enrichment."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from notegraph.search.conditions import Combine, Condition, condition_matches
from notegraph.search.protocols import HierarchyReader, NodeRecord
from notegraph.search.results import MatchResult

logger = logging.getLogger(__name__)


def build_tree(root_id: str, records: list[NodeRecord]) -> tuple[list[MatchResult], int]:
    """Assemble level-tagged descendant records into a nested child tree.

    Returns the root's children and the depth of the deepest level
    present.  Every node's ``hierarchy_depth`` is set relative to itself.
    Records whose parent is missing from the batch are dropped.
    """
    ordered = sorted(records, key=lambda r: (r.level, r.order, r.id))
    nodes: dict[str, MatchResult] = {}
    parent_of: dict[str, str] = {}
    top: list[MatchResult] = []

    for record in ordered:
        node = record.to_result()
        if record.parent_id == root_id:
            top.append(node)
        elif record.parent_id in nodes:
            nodes[record.parent_id].children.append(node)
        else:
            logger.debug("Dropping orphan record %s below %s", record.id, root_id)
            continue
        nodes[record.id] = node
        parent_of[record.id] = record.parent_id

    # Deepest levels first, so each parent sees its children's final depth
    depth = 0
    for record in reversed(ordered):
        node = nodes.get(record.id)
        if node is None:
            continue
        if parent_of[record.id] == root_id:
            depth = max(depth, node.hierarchy_depth + 1)
        else:
            parent = nodes[parent_of[record.id]]
            parent.hierarchy_depth = max(parent.hierarchy_depth, node.hierarchy_depth + 1)
    return top, depth


class HierarchyAdapter:
    """Wraps a hierarchy reader so every lookup is batched and depth-bounded."""

    def __init__(self, reader: HierarchyReader) -> None:
        self._reader = reader

    def descendants(self, ids: Iterable[str], depth: int) -> dict[str, list[NodeRecord]]:
        ids = list(dict.fromkeys(ids))
        if depth <= 0 or not ids:
            return {node_id: [] for node_id in ids}
        found = self._reader.descendants(ids, depth)
        return {node_id: [r for r in found.get(node_id, []) if r.level <= depth] for node_id in ids}

    def ancestors(self, ids: Iterable[str], depth: int) -> dict[str, list[NodeRecord]]:
        ids = list(dict.fromkeys(ids))
        if depth <= 0 or not ids:
            return {node_id: [] for node_id in ids}
        found = self._reader.ancestors(ids, depth)
        return {node_id: [r for r in found.get(node_id, []) if r.level <= depth] for node_id in ids}

    def matching_descendants(
        self,
        ids: Iterable[str],
        depth: int,
        conditions: list[Condition],
        combine: Combine,
    ) -> dict[str, tuple[str, ...]]:
        """Find, per id, the descendants within ``depth`` that satisfy the conditions.

        With AND each condition may be met by a different descendant; an
        id is only returned when all of them are met somewhere in its
        subtree.  The returned ids are those meeting at least one
        condition.
        """
        matches: dict[str, tuple[str, ...]] = {}
        for node_id, records in self.descendants(ids, depth).items():
            hits = [
                [condition_matches(condition, record.content) for condition in conditions]
                for record in records
            ]
            if combine is Combine.AND:
                satisfied = bool(hits) and all(
                    any(row[i] for row in hits) for i in range(len(conditions))
                )
            else:
                satisfied = any(any(row) for row in hits)
            if satisfied:
                matches[node_id] = tuple(
                    record.id for record, row in zip(records, hits) if any(row)
                )
        return matches

    def attach_children(self, results: list[MatchResult], depth: int) -> None:
        """Replace each result's children with its descendant tree."""
        found = self.descendants((r.id for r in results), depth)
        for result in results:
            records = found.get(result.id, [])
            result.children, result.hierarchy_depth = build_tree(result.id, records)

    def attach_parents(self, results: list[MatchResult], depth: int) -> None:
        """Replace each result's parents with its ancestor chain, nearest first."""
        found = self.ancestors((r.id for r in results), depth)
        for result in results:
            chain = sorted(found.get(result.id, []), key=lambda r: r.level)
            result.parents = [record.to_result() for record in chain]
