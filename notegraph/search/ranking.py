"""Relevance scoring and result ordering."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime

from notegraph.search.conditions import Condition, ConditionKind, MatchMode
from notegraph.search.results import MatchResult, SortMode

EXACT_MATCH_SCORE = 10.0
WHOLE_WORD_SCORE = 5.0
SUBSTRING_SCORE = 2.0
DEPTH_SCORE = 0.5
CONTEXT_BONUS = 1.0


def text_match_score(pattern: str, content: str) -> float:
    """Score one text pattern against content, before weighting."""
    needle = pattern.strip().casefold()
    haystack = content.casefold()
    if not needle or needle not in haystack:
        return 0.0
    if haystack.strip() == needle:
        return EXACT_MATCH_SCORE
    if re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack):
        return WHOLE_WORD_SCORE
    return SUBSTRING_SCORE


def relevance_score(result: MatchResult, conditions: Sequence[Condition]) -> float:
    """Text-match quality of the text conditions plus structural context.

    Each condition contributes its best-scoring variant (expansion terms
    carry reduced weight); negated and non-text conditions contribute
    nothing.
    """
    content = result.content or ""
    score = 0.0
    for condition in conditions:
        if condition.negate:
            continue
        best = 0.0
        for variant in condition.variants():
            if variant.kind is not ConditionKind.TEXT or variant.match_mode is MatchMode.REGEX:
                continue
            best = max(best, text_match_score(variant.pattern, content) * variant.weight)
        score += best
    score += DEPTH_SCORE * result.hierarchy_depth
    if result.children and result.parents:
        score += CONTEXT_BONUS
    return score


def _modified(result: MatchResult) -> datetime:
    return result.modified_at or datetime.min


def rank_results(
    results: list[MatchResult],
    sort: SortMode,
    conditions: Sequence[Condition] = (),
) -> list[MatchResult]:
    """Order results; every mode is a stable sort."""
    if sort is SortMode.RECENT:
        return sorted(results, key=_modified, reverse=True)
    if sort is SortMode.CONTAINER_TITLE:
        return sorted(
            results,
            key=lambda r: (r.container_title is None, (r.container_title or "").casefold()),
        )
    if sort is SortMode.HIERARCHY_DEPTH:
        return sorted(results, key=lambda r: r.hierarchy_depth, reverse=True)
    if sort is SortMode.RELEVANCE:
        scores = {id(r): relevance_score(r, conditions) for r in results}
        return sorted(results, key=lambda r: (scores[id(r)], _modified(r)), reverse=True)
    raise ValueError(f"Unhandled sort mode: {sort}")
