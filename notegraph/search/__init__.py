"""Hierarchical query parsing and evaluation over a content graph."""

from notegraph.search.ast_nodes import (
    Compound,
    Hierarchical,
    HierarchyOperator,
    Term,
    flatten_operand,
)
from notegraph.search.conditions import (
    Combine,
    Condition,
    ConditionKind,
    ExpansionStrategy,
    MatchMode,
)
from notegraph.search.engine import SearchEngine
from notegraph.search.parser import parse_expression
from notegraph.search.progress import NullProgress, ProgressSink, RecordingProgress
from notegraph.search.results import (
    CombineMode,
    DateField,
    MatchResult,
    SearchOptions,
    SearchScope,
    SortMode,
)

__all__ = [
    "Combine",
    "CombineMode",
    "Compound",
    "Condition",
    "ConditionKind",
    "DateField",
    "ExpansionStrategy",
    "Hierarchical",
    "HierarchyOperator",
    "MatchMode",
    "MatchResult",
    "NullProgress",
    "ProgressSink",
    "RecordingProgress",
    "SearchEngine",
    "SearchOptions",
    "SearchScope",
    "SortMode",
    "Term",
    "flatten_operand",
    "parse_expression",
]
