"""Flat search: one store query per call, with optional term expansion."""

from __future__ import annotations

import logging
import threading

from notegraph.exceptions import ExpansionError
from notegraph.search.conditions import (
    EXPANSION_WEIGHT_FACTOR,
    Combine,
    Condition,
    ConditionKind,
    ExpansionStrategy,
)
from notegraph.search.progress import NullProgress, ProgressSink
from notegraph.search.protocols import ContentGraphStore, TermExpander
from notegraph.search.results import MatchResult, SearchScope

logger = logging.getLogger(__name__)

_EXPANDABLE_KINDS = (ConditionKind.TEXT, ConditionKind.PAGE_REF)


class ConditionExpander:
    """Adds expansion-service terms to conditions as weighted alternatives.

    Lives for one invocation; the term cache is shared by that
    invocation's branches and discarded with it.
    """

    def __init__(
        self,
        expander: TermExpander | None,
        *,
        default_strategies: tuple[ExpansionStrategy, ...] = (),
        max_terms: int = 5,
        progress: ProgressSink | None = None,
    ) -> None:
        self._expander = expander
        self._default_strategies = default_strategies
        self._max_terms = max_terms
        self._progress = progress or NullProgress()
        self._cache: dict[tuple[str, ExpansionStrategy], list[str]] = {}
        self._lock = threading.Lock()

    def _terms(self, term: str, strategy: ExpansionStrategy) -> list[str]:
        key = (term.casefold(), strategy)
        with self._lock:
            if key in self._cache:
                return self._cache[key]
        try:
            terms = self._expander.expand(term, strategy, self._max_terms)
        except ExpansionError as e:
            logger.warning("%s; searching without expansion", e)
            self._progress.warning(str(e))
            terms = []
        with self._lock:
            self._cache[key] = terms
        return terms

    def _extra_variants(self, variant: Condition, negate: bool) -> list[Condition]:
        strategies = variant.expand or self._default_strategies
        if (
            self._expander is None
            or not strategies
            or negate
            or variant.kind not in _EXPANDABLE_KINDS
            or variant.is_regex
        ):
            return []

        seen = {variant.pattern.casefold()}
        extra: list[Condition] = []
        for strategy in strategies:
            for term in self._terms(variant.pattern, strategy):
                term = term.strip()
                if not term or term.casefold() in seen:
                    continue
                seen.add(term.casefold())
                extra.append(
                    Condition(
                        variant.kind,
                        term,
                        match_mode=variant.match_mode,
                        weight=variant.weight * EXPANSION_WEIGHT_FACTOR,
                    )
                )
                if len(extra) >= self._max_terms:
                    return extra
        return extra

    def expand(self, condition: Condition) -> Condition:
        extra: list[Condition] = []
        for variant in condition.variants():
            extra.extend(self._extra_variants(variant, condition.negate))
        if not extra:
            return condition
        logger.debug("Expanded '%s' with %s", condition.pattern, [c.pattern for c in extra])
        return condition.with_alternatives(tuple(extra))

    def expand_all(self, conditions: list[Condition]) -> list[Condition]:
        return [self.expand(condition) for condition in conditions]


class FlatSearchExecutor:
    """Issues flat content queries against the store.

    Store failures propagate as ``StoreError``; whether a failed branch is
    fatal is the caller's decision.
    """

    def __init__(
        self,
        store: ContentGraphStore,
        expander: ConditionExpander | None = None,
    ) -> None:
        self._store = store
        self._expander = expander

    def prepare(self, conditions: list[Condition]) -> list[Condition]:
        """Return ``conditions`` with expansion terms added as alternatives."""
        if self._expander is None:
            return list(conditions)
        return self._expander.expand_all(conditions)

    def search(
        self,
        conditions: list[Condition],
        combine: Combine,
        scope: SearchScope | None = None,
    ) -> list[MatchResult]:
        """Return nodes matching ``conditions`` combined per ``combine``."""
        records = self._store.query(self.prepare(conditions), combine, scope)
        return [record.to_result() for record in records]

    def search_parent_child(
        self,
        parent_conditions: list[Condition],
        parent_combine: Combine,
        child_conditions: list[Condition],
        child_combine: Combine,
        scope: SearchScope | None = None,
    ) -> list[MatchResult]:
        """Return parents that have a direct child matching the child side.

        Each result lists the matching children in ``matched_child_ids``.
        """
        matches = self._store.query_parent_child(
            self.prepare(parent_conditions),
            parent_combine,
            self.prepare(child_conditions),
            child_combine,
            scope,
        )
        results: list[MatchResult] = []
        for match in matches:
            result = match.parent.to_result()
            result.matched_child_ids = match.child_ids
            results.append(result)
        return results
