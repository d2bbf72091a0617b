"""Deduplicating merges of result sets, keyed by node id."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from notegraph.search.results import CombineMode, MatchResult


def merge_prioritized(result_sets: Sequence[list[MatchResult]]) -> list[MatchResult]:
    """Union result sets; an id keeps the entry from the earliest set holding it."""
    merged: dict[str, MatchResult] = {}
    for results in result_sets:
        for result in results:
            merged.setdefault(result.id, result)
    return list(merged.values())


def merge_bidirectional(
    same_node: list[MatchResult],
    forward: list[MatchResult],
    reverse: list[MatchResult],
) -> list[MatchResult]:
    """Merge the three branches of a bidirectional strategy.

    Priority is same-node, then forward, then reverse.  The descendants a
    forward match was found through (its ``matched_child_ids``) are
    covered: a reverse match with a covered id is redundant and skipped.
    A reverse match whose matched descendants include a forward match
    replaces that forward entry, since the higher node wins.
    """
    merged: dict[str, MatchResult] = {}
    for result in same_node:
        merged.setdefault(result.id, result)

    forward_ids: set[str] = set()
    covered: set[str] = set()
    for result in forward:
        covered.update(result.matched_child_ids)
        if result.id not in merged:
            merged[result.id] = result
            forward_ids.add(result.id)

    for result in reverse:
        if result.id in covered:
            continue
        superseded = [child_id for child_id in result.matched_child_ids if child_id in forward_ids]
        for child_id in superseded:
            del merged[child_id]
            forward_ids.discard(child_id)
        merged.setdefault(result.id, result)

    return list(merged.values())


def combine_branches(
    branches: Sequence[list[MatchResult]], mode: CombineMode
) -> list[MatchResult]:
    """Combine independent branch results as sets of ids.

    ``difference`` keeps ids of the first branch found in no other;
    ``symmetric_difference`` keeps ids found in exactly one branch.  The
    kept entry is the one from the earliest branch, in branch order.
    """
    if not branches:
        return []
    if mode is CombineMode.UNION:
        return merge_prioritized(branches)

    branch_ids = [{result.id for result in results} for results in branches]

    if mode is CombineMode.INTERSECTION:
        common = set.intersection(*branch_ids)
        return [r for r in merge_prioritized(branches[:1]) if r.id in common]

    if mode is CombineMode.DIFFERENCE:
        excluded = set().union(*branch_ids[1:])
        return [r for r in merge_prioritized(branches[:1]) if r.id not in excluded]

    if mode is CombineMode.SYMMETRIC_DIFFERENCE:
        occurrences = Counter(node_id for ids in branch_ids for node_id in ids)
        return [r for r in merge_prioritized(branches) if occurrences[r.id] == 1]

    raise ValueError(f"Unhandled combine mode: {mode}")
