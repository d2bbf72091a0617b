"""Result and option types shared by the search components."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime

from notegraph.exceptions import ValidationError
from notegraph.search.conditions import ExpansionStrategy


class SortMode(enum.Enum):
    RELEVANCE = "relevance"
    RECENT = "recent"
    CONTAINER_TITLE = "container_title"
    HIERARCHY_DEPTH = "hierarchy_depth"


class CombineMode(enum.Enum):
    """How independent branch result sets are combined."""

    UNION = "union"
    INTERSECTION = "intersection"
    DIFFERENCE = "difference"
    SYMMETRIC_DIFFERENCE = "symmetric_difference"


class DateField(enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"


@dataclass
class MatchResult:
    """A located content node.

    Attributes:
        id: Node identifier (block or page uid).
        content: Raw text; None in secure mode.
        container_id: Uid of the owning page.
        container_title: Title of the owning page.
        created_at: Creation time, if known.
        modified_at: Last edit time, if known.
        is_date_node: Whether the owning page is a daily note.
        children: Descendants as a tree, bounded by the enrichment depth.
        parents: Ancestors, nearest first.
        hierarchy_depth: Depth of the deepest populated child level.
        is_container: True for a page-level match.
        level: Distance from the node a hierarchy lookup started at.
        matched_child_ids: Descendant ids that satisfied the other operand
            of a hierarchical strategy.
    """

    id: str
    content: str | None
    container_id: str | None = None
    container_title: str | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    is_date_node: bool = False
    children: list[MatchResult] = field(default_factory=list)
    parents: list[MatchResult] = field(default_factory=list)
    hierarchy_depth: int = 0
    is_container: bool = False
    level: int = 0
    matched_child_ids: tuple[str, ...] = ()

    def copy(self) -> MatchResult:
        return replace(self, children=list(self.children), parents=list(self.parents))

    def redacted(self) -> MatchResult:
        """Return a copy without content, recursively."""
        return replace(
            self,
            content=None,
            children=[child.redacted() for child in self.children],
            parents=[parent.redacted() for parent in self.parents],
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "container_id": self.container_id,
            "container_title": self.container_title,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "modified_at": self.modified_at.isoformat() if self.modified_at else None,
            "is_date_node": self.is_date_node,
            "is_container": self.is_container,
            "hierarchy_depth": self.hierarchy_depth,
            "level": self.level,
            "children": [child.to_dict() for child in self.children],
            "parents": [parent.to_dict() for parent in self.parents],
        }


@dataclass(frozen=True)
class SearchScope:
    """Restrictions applied to every store query of an invocation."""

    node_ids: frozenset[str] | None = None
    container_ids: frozenset[str] | None = None
    container_titles: frozenset[str] | None = None
    include_date_nodes: bool = True
    date_from: datetime | None = None
    date_to: datetime | None = None
    date_field: DateField = DateField.MODIFIED
    exclude_ids: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValidationError(
                "date range", (self.date_from, self.date_to), "start is after end"
            )


@dataclass(frozen=True)
class SearchOptions:
    """Per-invocation options for the engine entry points.

    ``max_depth`` overrides the per-operator depth defaults.  ``limit``
    and ``timeout`` of None or 0 mean unlimited.  ``max_workers`` of 1
    runs every branch serially.
    """

    max_depth: int | None = None
    limit: int | None = 50
    sort: SortMode = SortMode.RELEVANCE
    scope: SearchScope = field(default_factory=SearchScope)
    include_children: bool = True
    child_depth: int = 3
    include_parents: bool = True
    parent_depth: int = 2
    secure: bool = False
    timeout: float | None = None
    max_workers: int = 4
    expansion: tuple[ExpansionStrategy, ...] = ()
    max_expansion_terms: int = 5

    def __post_init__(self) -> None:
        if self.max_depth is not None and self.max_depth < 1:
            raise ValidationError("max_depth", self.max_depth, "must be at least 1")
        if self.limit is not None and self.limit < 0:
            raise ValidationError("limit", self.limit, "must not be negative")
        if self.child_depth < 0 or self.parent_depth < 0:
            raise ValidationError(
                "enrichment depth", (self.child_depth, self.parent_depth), "must not be negative"
            )
        if self.max_workers < 1:
            raise ValidationError("max_workers", self.max_workers, "must be at least 1")
        if self.max_expansion_terms < 1:
            raise ValidationError(
                "max_expansion_terms", self.max_expansion_terms, "must be at least 1"
            )
