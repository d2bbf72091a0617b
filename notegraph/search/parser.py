"""Parse hierarchical query expressions into an AST.

Operators are detected on the raw string by the lexer.  A
``regex:/body/flags`` literal may contain ``+``, ``|`` and parentheses,
but a ``>`` in its body is still read as an operator
(``regex:/a>b/`` splits into ``regex:/a`` and ``b/``).  Double-quote such
a term to keep it intact: ``"regex:/a>b/"``.  The flag-less
``regex:pattern`` form ends at the first combinator.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from importlib import resources
from typing import Any

from lark import Lark, Token, Transformer, UnexpectedCharacters, UnexpectedInput, UnexpectedToken
from lark.exceptions import VisitError

from notegraph.exceptions import NotegraphError, ParseError, ValidationError
from notegraph.search.ast_nodes import (
    Compound,
    Expression,
    Hierarchical,
    HierarchyOperator,
    Operand,
    Term,
)
from notegraph.search.conditions import Combine, ConditionKind, ExpansionStrategy

PAGE_REF_PREFIX = "ref:"
BLOCK_REF_PREFIX = "block:"
REGEX_PREFIX = "regex:"

_REGEX_LITERAL = re.compile(r"/(?P<body>.*)/(?P<flags>[a-z]*)", re.DOTALL)
_QUOTES = ('"', "'")


def _load_grammar() -> str:
    """Load the Lark grammar from the package resources."""
    return resources.files("notegraph.search").joinpath("grammar.lark").read_text()


_GRAMMAR_TEXT = _load_grammar()

_parser = Lark(
    _GRAMMAR_TEXT,
    parser="lalr",
)


def strip_quotes(text: str) -> str:
    """Strip matching outer quote layers until none remain.

    Guards against callers that quote an already quoted term.
    """
    text = text.strip()
    while len(text) >= 2 and text[0] in _QUOTES and text[-1] == text[0]:
        text = text[1:-1].strip()
    return text


def _split_expand_suffix(text: str) -> tuple[str, tuple[ExpansionStrategy, ...]]:
    if text.endswith("~all") and len(text) > 4:
        return text[:-4].rstrip(), tuple(ExpansionStrategy)
    if text.endswith("~") and len(text) > 1:
        return text[:-1].rstrip(), (ExpansionStrategy.SYNONYMS,)
    return text, ()


def parse_term(raw: str, query: str = "") -> Term:
    """Build a leaf term from its source text.

    Recognizes the ``ref:``, ``block:`` and ``regex:`` prefixes and the
    ``~`` / ``~all`` expansion suffixes on text and page-reference terms.

    Raises:
        ParseError: If nothing is left after quote stripping.
    """
    text = strip_quotes(raw)
    if not text:
        raise ParseError(query or raw, "empty term")

    if text.startswith(REGEX_PREFIX):
        body = text[len(REGEX_PREFIX) :].strip()
        match = _REGEX_LITERAL.fullmatch(body)
        if match:
            pattern, flags = match.group("body"), match.group("flags") or None
        else:
            pattern, flags = strip_quotes(body), None
        if not pattern:
            raise ParseError(query or raw, "empty regex pattern")
        return Term(pattern, kind=ConditionKind.REGEX, regex_flags=flags)

    if text.startswith(BLOCK_REF_PREFIX):
        uid = strip_quotes(text[len(BLOCK_REF_PREFIX) :])
        if uid.startswith("((") and uid.endswith("))"):
            uid = uid[2:-2].strip()
        if not uid:
            raise ParseError(query or raw, "empty block reference")
        return Term(uid, kind=ConditionKind.BLOCK_REF)

    kind = ConditionKind.TEXT
    if text.startswith(PAGE_REF_PREFIX):
        kind = ConditionKind.PAGE_REF
        text = strip_quotes(text[len(PAGE_REF_PREFIX) :])

    text, expand = _split_expand_suffix(text)
    if kind is ConditionKind.PAGE_REF:
        text = strip_quotes(text)
        if text.startswith("[[") and text.endswith("]]"):
            text = text[2:-2].strip()
    if not text:
        raise ParseError(query or raw, "empty term")
    return Term(text, kind=kind, expand=expand)


def _compound(operator: Combine, items: list[Any]) -> Compound:
    operands: list[Operand] = []
    for item in items:
        # (a | b) | c is the same group as a | b | c
        if isinstance(item, Compound) and item.operator is operator:
            operands.extend(item.operands)
        else:
            operands.append(item)
    return Compound(operator=operator, operands=tuple(operands))


class _ExpressionTransformer(Transformer):
    """Transform the Lark parse tree into AST data classes."""

    def __init__(self, source: str, depths: Mapping[HierarchyOperator, int]) -> None:
        super().__init__()
        self._source = source
        self._depths = depths

    def simple(self, items: list[Any]) -> Expression:
        return items[0]

    def hierarchical(self, items: list[Any]) -> Hierarchical:
        left, op_token, right = items
        operator = HierarchyOperator(str(op_token))
        return Hierarchical(
            operator=operator,
            left=left,
            right=right,
            max_depth=self._depths.get(operator, operator.default_depth),
        )

    def any_of(self, items: list[Any]) -> Compound:
        return _compound(Combine.OR, items)

    def all_of(self, items: list[Any]) -> Compound:
        return _compound(Combine.AND, items)

    def term(self, items: list[Token]) -> Term:
        raw = self._source[items[0].start_pos : items[-1].end_pos]
        return parse_term(raw, self._source)


def _describe(e: UnexpectedInput) -> str:
    """Turn a Lark error into a message about the query, not the grammar."""
    if isinstance(e, UnexpectedToken):
        token = e.token
        if token.type == "$END":
            return "unexpected end of expression (empty operand or unclosed parenthesis)"
        if token.type == "HIER_OP":
            if token.start_pos == 0:
                return f"operator '{token}' has an empty left operand"
            return (
                f"unexpected operator '{token}' at position {token.start_pos}: "
                "only one hierarchical operator is allowed and it cannot be nested"
            )
        if token.type == "RPAR":
            return f"unmatched ')' at position {token.start_pos}"
        return f"unexpected '{token}' at position {token.start_pos}"
    if isinstance(e, UnexpectedCharacters):
        return (
            f"unknown operator or character '{e.char}' at position {e.pos_in_stream}; "
            "supported operators are >, >>, =>, <=> and <<=>>"
        )
    return str(e)


def parse_expression(
    query: str,
    *,
    max_depth: int | None = None,
    default_depths: Mapping[HierarchyOperator, int] | None = None,
) -> Expression:
    """Parse a hierarchical query string into an expression tree.

    Args:
        query: The query text, e.g. ``"risk + ref:Project > mitigation"``.
        max_depth: Depth for the operator found, overriding every default.
        default_depths: Per-operator depth defaults (``>>`` 3, ``<<=>>`` 5,
            1 for the direct operators when absent).

    Returns:
        A Term or Compound for a simple search, or a Hierarchical node.

    Raises:
        ParseError: If the query is empty or malformed.
        ValidationError: If ``max_depth`` is below 1.
    """
    query = query.strip()
    if not query:
        raise ParseError(query, "query is empty")

    depths: dict[HierarchyOperator, int] = dict(default_depths or {})
    if max_depth is not None:
        if max_depth < 1:
            raise ValidationError("max_depth", max_depth, "must be at least 1")
        depths = {operator: max_depth for operator in HierarchyOperator}

    try:
        tree = _parser.parse(query)
    except UnexpectedInput as e:
        raise ParseError(query, _describe(e)) from e

    try:
        return _ExpressionTransformer(query, depths).transform(tree)
    except VisitError as e:
        # Lark wraps errors raised inside transformer callbacks
        if isinstance(e.orig_exc, NotegraphError):
            raise e.orig_exc from None
        raise
