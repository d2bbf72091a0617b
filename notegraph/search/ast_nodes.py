"""AST data classes for parsed hierarchical query expressions."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Union

from notegraph.search.conditions import (
    Combine,
    Condition,
    ConditionKind,
    ExpansionStrategy,
    MatchMode,
)

logger = logging.getLogger(__name__)


class HierarchyOperator(enum.Enum):
    """The five structural operators, named by their token."""

    STRICT = ">"
    DEEP_STRICT = ">>"
    FLEXIBLE = "=>"
    BIDIRECTIONAL = "<=>"
    DEEP_BIDIRECTIONAL = "<<=>>"

    @property
    def is_deep(self) -> bool:
        return self in (HierarchyOperator.DEEP_STRICT, HierarchyOperator.DEEP_BIDIRECTIONAL)

    @property
    def default_depth(self) -> int:
        if self is HierarchyOperator.DEEP_STRICT:
            return 3
        if self is HierarchyOperator.DEEP_BIDIRECTIONAL:
            return 5
        return 1


@dataclass(frozen=True)
class Term:
    """A leaf operand: raw text plus its inferred search kind.

    For regex terms ``text`` is the pattern body and ``regex_flags`` the
    trailing flags of the ``regex:/body/flags`` form.
    """

    text: str
    kind: ConditionKind = ConditionKind.TEXT
    regex_flags: str | None = None
    expand: tuple[ExpansionStrategy, ...] = ()

    def to_condition(self) -> Condition:
        if self.kind is ConditionKind.REGEX:
            return Condition.regex(self.text, self.regex_flags)
        return Condition(self.kind, self.text, match_mode=MatchMode.CONTAINS, expand=self.expand)


@dataclass(frozen=True)
class Compound:
    """Operands joined by ``+`` (AND) or ``|`` (OR)."""

    operator: Combine
    operands: tuple[Operand, ...]


@dataclass(frozen=True)
class Hierarchical:
    """``left OPERATOR right``; operands are never Hierarchical themselves."""

    operator: HierarchyOperator
    left: Operand
    right: Operand
    max_depth: int

    @property
    def levels(self) -> int:
        """Traversal depth used by the strategy: maxDepth for deep operators, else 1."""
        return self.max_depth if self.operator.is_deep else 1


Operand = Union[Term, Compound]
Expression = Union[Term, Compound, Hierarchical]


def _leaves(operand: Operand) -> list[Term]:
    if isinstance(operand, Term):
        return [operand]
    leaves: list[Term] = []
    for child in operand.operands:
        leaves.extend(_leaves(child))
    return leaves


def _has_and_group(operand: Compound) -> bool:
    return any(
        isinstance(child, Compound) and child.operator is Combine.AND for child in operand.operands
    )


def _grouped_condition(operand: Compound) -> Condition:
    """Fold an OR group into one condition carrying alternatives."""
    leaves = _leaves(operand)
    if _has_and_group(operand):
        logger.warning(
            "AND group nested inside OR inside AND cannot be searched exactly; "
            "treating its terms as alternatives"
        )
    first, *rest = [leaf.to_condition() for leaf in leaves]
    return first.with_alternatives(tuple(rest))


def flatten_operand(operand: Operand) -> tuple[list[Condition], Combine]:
    """Reduce an operand to a flat condition list and its combine rule.

    A bare term or an AND compound combines with AND, an OR compound with
    OR.  Same-operator nesting is flattened exactly.  An OR group inside
    an AND compound becomes a single condition whose alternatives are the
    group's terms, so ``(a | b) + c`` stays exact.  Deeper mixing cannot be
    expressed as one flat query and is flattened leaf-wise with a warning.
    """
    if isinstance(operand, Term):
        return [operand.to_condition()], Combine.AND

    if operand.operator is Combine.OR:
        if _has_and_group(operand):
            logger.warning(
                "AND group nested inside OR cannot be searched exactly; "
                "treating its terms as alternatives"
            )
        return [leaf.to_condition() for leaf in _leaves(operand)], Combine.OR

    conditions: list[Condition] = []
    for child in operand.operands:
        if isinstance(child, Term):
            conditions.append(child.to_condition())
        elif child.operator is Combine.AND:
            conditions.extend(flatten_operand(child)[0])
        else:
            conditions.append(_grouped_condition(child))
    return conditions, Combine.AND
