"""Thesaurus-file term expansion.

A thesaurus maps headwords to term lists, one table per headword::

    [risk]
    synonyms = ["hazard", "danger"]
    related = ["mitigation", "exposure"]
    broader = ["uncertainty"]

The same structure is accepted as a JSON object.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any

from rapidfuzz import fuzz, process

from notegraph.exceptions import ExpansionError
from notegraph.search.conditions import ExpansionStrategy

logger = logging.getLogger(__name__)

_STRATEGY_KEYS = {
    ExpansionStrategy.SYNONYMS: "synonyms",
    ExpansionStrategy.RELATED: "related",
    ExpansionStrategy.BROADER: "broader",
}


def _normalize(value: str) -> str:
    return " ".join(value.casefold().split())


def load_thesaurus(path: Path) -> dict[str, dict[str, list[str]]]:
    """Read a TOML or JSON thesaurus file, keyed by normalized headword.

    Raises:
        ExpansionError: If the file cannot be read or has the wrong shape.
    """
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(path.read_text(encoding="utf-8"))
        else:
            with open(path, "rb") as f:
                data = tomllib.load(f)
    except (OSError, json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
        raise ExpansionError(str(path), f"cannot read thesaurus: {e}") from e

    if not isinstance(data, dict):
        raise ExpansionError(str(path), "thesaurus must be a table of headwords")

    entries: dict[str, dict[str, list[str]]] = {}
    for headword, entry in data.items():
        if not isinstance(entry, dict):
            raise ExpansionError(headword, f"entry in {path} must be a table")
        lists: dict[str, list[str]] = {}
        for key in _STRATEGY_KEYS.values():
            terms = entry.get(key, [])
            if not isinstance(terms, list) or not all(isinstance(t, str) for t in terms):
                raise ExpansionError(headword, f"'{key}' in {path} must be a list of strings")
            lists[key] = terms
        entries[_normalize(headword)] = lists

    logger.debug("Loaded %d thesaurus entries from %s", len(entries), path)
    return entries


class ThesaurusExpander:
    """Looks terms up in a thesaurus, falling back to the closest headword.

    Args:
        entries: Headword table as returned by :func:`load_thesaurus`.
        fuzzy_threshold: Minimum rapidfuzz ratio (0-100) for a fuzzy
            headword match; 100 disables fuzzy lookup.
    """

    def __init__(self, entries: dict[str, dict[str, list[str]]], fuzzy_threshold: int = 85) -> None:
        self._entries = {_normalize(k): v for k, v in entries.items()}
        self.fuzzy_threshold = fuzzy_threshold

    @classmethod
    def from_file(cls, path: Path, fuzzy_threshold: int = 85) -> ThesaurusExpander:
        return cls(load_thesaurus(path), fuzzy_threshold)

    def _lookup(self, term: str) -> dict[str, Any] | None:
        key = _normalize(term)
        if key in self._entries:
            return self._entries[key]
        if not self._entries or self.fuzzy_threshold >= 100:
            return None

        match = process.extractOne(
            key, self._entries.keys(), scorer=fuzz.ratio, score_cutoff=self.fuzzy_threshold
        )
        if match is None:
            return None
        headword, score, _ = match
        logger.debug("Thesaurus: '%s' matched headword '%s' (score %.0f)", term, headword, score)
        return self._entries[headword]

    def expand(self, term: str, strategy: ExpansionStrategy, max_terms: int) -> list[str]:
        entry = self._lookup(term)
        if entry is None:
            return []
        original = _normalize(term)
        terms = [t for t in entry.get(_STRATEGY_KEYS[strategy], []) if _normalize(t) != original]
        return terms[:max_terms]
