"""Matchable predicates and their in-process evaluation.

A :class:`Condition` is the unit every search is built from: the flat
search executor lowers a list of them into one store query, and the
hierarchy strategies evaluate them directly against node content when
checking descendant subtrees.  Both paths must agree, so the matching
rules live here and the SQL lowering in ``notegraph.store.query``
mirrors them.
"""

from __future__ import annotations

import enum
import logging
import math
import re
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Any

from notegraph.exceptions import RegexError, ValidationError

logger = logging.getLogger(__name__)

# Weight factor applied to terms produced by the expansion service
EXPANSION_WEIGHT_FACTOR = 0.8

# JavaScript-style flag letters accepted in ``regex:/pattern/flags``
_REGEX_FLAGS: dict[str, re.RegexFlag] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}
# Accepted for compatibility, no effect on a search
_IGNORED_REGEX_FLAGS = frozenset("guy")


class ConditionKind(enum.Enum):
    TEXT = "text"
    PAGE_REF = "page_ref"
    BLOCK_REF = "block_ref"
    REGEX = "regex"


class MatchMode(enum.Enum):
    """How a text condition compares against content."""

    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"


class Combine(enum.Enum):
    AND = "and"
    OR = "or"


class ExpansionStrategy(enum.Enum):
    SYNONYMS = "synonyms"
    RELATED = "related"
    BROADER = "broader"

    @classmethod
    def parse(cls, value: str) -> tuple[ExpansionStrategy, ...]:
        """Parse a strategy name, where ``all`` selects every strategy."""
        if value == "all":
            return tuple(cls)
        try:
            return (cls(value),)
        except ValueError:
            raise ValidationError("expansion strategy", value, "unknown strategy") from None


@dataclass(frozen=True)
class Condition:
    """A single matchable predicate.

    ``alternatives`` are OR-ed sub-conditions evaluated together with the
    primary one; they come from term expansion or from an OR group nested
    inside an AND operand.  ``negate`` applies to the whole group.
    """

    kind: ConditionKind
    pattern: str
    match_mode: MatchMode = MatchMode.CONTAINS
    weight: float = 1.0
    negate: bool = False
    regex_flags: str | None = None
    expand: tuple[ExpansionStrategy, ...] = ()
    alternatives: tuple[Condition, ...] = ()

    def __post_init__(self) -> None:
        if not self.pattern or not self.pattern.strip():
            raise ValidationError("condition pattern", self.pattern, "must not be empty")
        if not math.isfinite(self.weight) or self.weight < 0:
            raise ValidationError(
                "condition weight", self.weight, "must be finite and non-negative"
            )

    @classmethod
    def text(cls, pattern: str, **kwargs: Any) -> Condition:
        return cls(ConditionKind.TEXT, pattern, **kwargs)

    @classmethod
    def page_ref(cls, title: str, **kwargs: Any) -> Condition:
        return cls(ConditionKind.PAGE_REF, title, **kwargs)

    @classmethod
    def block_ref(cls, uid: str, **kwargs: Any) -> Condition:
        return cls(ConditionKind.BLOCK_REF, uid, **kwargs)

    @classmethod
    def regex(cls, pattern: str, flags: str | None = None, **kwargs: Any) -> Condition:
        return cls(
            ConditionKind.REGEX, pattern, match_mode=MatchMode.REGEX, regex_flags=flags, **kwargs
        )

    @property
    def is_regex(self) -> bool:
        return self.kind is ConditionKind.REGEX or (
            self.kind is ConditionKind.TEXT and self.match_mode is MatchMode.REGEX
        )

    def variants(self) -> tuple[Condition, ...]:
        """Return the primary predicate followed by its alternatives."""
        return (replace(self, alternatives=(), negate=False), *self.alternatives)

    def with_alternatives(self, extra: tuple[Condition, ...]) -> Condition:
        return replace(self, alternatives=self.alternatives + extra)


@lru_cache(maxsize=256)
def compile_regex(pattern: str, flags: str | None = None) -> re.Pattern[str]:
    """Compile a user-supplied regex with JavaScript-style flags.

    A pattern without flags is case-insensitive.

    Raises:
        RegexError: If the pattern or a flag is invalid.
    """
    if not flags:
        flags = "i"
    re_flags = 0
    for letter in flags:
        if letter in _REGEX_FLAGS:
            re_flags |= _REGEX_FLAGS[letter]
        elif letter not in _IGNORED_REGEX_FLAGS:
            raise RegexError(pattern, f"unknown flag '{letter}'")
    try:
        return re.compile(pattern, re_flags)
    except re.error as e:
        raise RegexError(pattern, str(e)) from e


def python_regex_flags(flags: str | None) -> str:
    """Translate JavaScript-style flags into inline Python flag letters."""
    if not flags:
        return "i"
    return "".join(letter for letter in flags if letter in _REGEX_FLAGS)


def page_ref_pattern(title: str) -> re.Pattern[str]:
    """Regex matching a reference to page ``title`` in block content.

    Recognized forms: ``[[title]]``, ``#[[title]]``, ``#title`` and the
    attribute form ``title::``.
    """
    escaped = re.escape(title)
    return re.compile(
        rf"\[\[{escaped}\]\]|#{escaped}(?![\w-])|^\s*{escaped}::",
        re.IGNORECASE | re.MULTILINE,
    )


def _matches_variant(condition: Condition, content: str) -> bool:
    kind = condition.kind
    if kind is ConditionKind.TEXT:
        if condition.match_mode is MatchMode.EXACT:
            return content.strip().casefold() == condition.pattern.strip().casefold()
        if condition.match_mode is MatchMode.REGEX:
            return _regex_search(condition, content)
        return condition.pattern.casefold() in content.casefold()
    if kind is ConditionKind.PAGE_REF:
        return page_ref_pattern(condition.pattern).search(content) is not None
    if kind is ConditionKind.BLOCK_REF:
        return f"(({condition.pattern}))" in content
    if kind is ConditionKind.REGEX:
        return _regex_search(condition, content)
    raise ValueError(f"Unhandled condition kind: {kind}")


def _regex_search(condition: Condition, content: str) -> bool:
    return compile_regex(condition.pattern, condition.regex_flags).search(content) is not None


@lru_cache(maxsize=256)
def _regex_is_valid(pattern: str, flags: str | None) -> bool:
    try:
        compile_regex(pattern, flags)
    except RegexError as e:
        logger.warning("%s; the condition will not match", e)
        return False
    return True


def is_evaluable(condition: Condition) -> bool:
    """Return False for a regex condition whose pattern does not compile."""
    if not condition.is_regex:
        return True
    return _regex_is_valid(condition.pattern, condition.regex_flags)


def condition_matches(condition: Condition, content: str | None) -> bool:
    """Evaluate ``condition`` (and its alternatives) against node content.

    Variants with an invalid regex are dropped; when nothing valid is
    left the condition does not match, negated or not.
    """
    text = content or ""
    variants = [v for v in condition.variants() if is_evaluable(v)]
    if not variants:
        return False
    hit = any(_matches_variant(variant, text) for variant in variants)
    return hit != condition.negate


def all_match(conditions: list[Condition], combine: Combine, content: str | None) -> bool:
    """Evaluate a condition list under ``combine`` against one node."""
    if not conditions:
        return False
    if combine is Combine.AND:
        return all(condition_matches(c, content) for c in conditions)
    return any(condition_matches(c, content) for c in conditions)
