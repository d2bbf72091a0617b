"""Contracts for the collaborators the search engine talks to.

The engine only depends on these protocols; ``notegraph.store`` and
``notegraph.expansion`` provide the concrete implementations.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from notegraph.search.results import MatchResult

if TYPE_CHECKING:
    from notegraph.search.conditions import Combine, Condition, ExpansionStrategy
    from notegraph.search.results import SearchScope


@dataclass(frozen=True)
class NodeRecord:
    """One node as returned by the content graph store.

    ``level`` is the distance from the node a hierarchy lookup started
    at (0 for flat queries).
    """

    id: str
    content: str | None
    container_id: str | None = None
    container_title: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    is_container: bool = False
    is_date_node: bool = False
    parent_id: str | None = None
    order: int = 0
    level: int = 0

    def to_result(self) -> MatchResult:
        return MatchResult(
            id=self.id,
            content=self.content,
            container_id=self.container_id,
            container_title=self.container_title,
            created_at=self.created_at,
            modified_at=self.modified_at,
            is_date_node=self.is_date_node,
            is_container=self.is_container,
            level=self.level,
        )


@dataclass(frozen=True)
class ParentChildMatch:
    """A parent satisfying the left operand and its direct children satisfying the right."""

    parent: NodeRecord
    child_ids: tuple[str, ...]


class ContentGraphStore(Protocol):
    def query(
        self,
        conditions: list[Condition],
        combine: Combine,
        scope: SearchScope | None = None,
    ) -> list[NodeRecord]:
        """Return nodes matching ``conditions`` combined per ``combine``.

        Raises:
            StoreError: If the backend fails.
        """
        ...

    def query_parent_child(
        self,
        parent_conditions: list[Condition],
        parent_combine: Combine,
        child_conditions: list[Condition],
        child_combine: Combine,
        scope: SearchScope | None = None,
    ) -> list[ParentChildMatch]:
        """Return parents with a direct child matching the child side, in one query.

        With AND on the child side and several conditions, each condition
        may be satisfied by a different direct child.
        """
        ...


class HierarchyReader(Protocol):
    def descendants(self, ids: Iterable[str], depth: int) -> dict[str, list[NodeRecord]]:
        """Map each id to its descendants up to ``depth`` levels, with levels set."""
        ...

    def ancestors(self, ids: Iterable[str], depth: int) -> dict[str, list[NodeRecord]]:
        """Map each id to its ancestors up to ``depth`` levels, nearest first."""
        ...


class TermExpander(Protocol):
    def expand(self, term: str, strategy: ExpansionStrategy, max_terms: int) -> list[str]:
        """Return up to ``max_terms`` terms related to ``term``.

        Raises:
            ExpansionError: If the service fails.
        """
        ...
