"""Term expansion through an OpenAI-compatible chat-completions endpoint."""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

import requests

from notegraph import __version__
from notegraph.exceptions import ExpansionError
from notegraph.search.conditions import ExpansionStrategy

logger = logging.getLogger(__name__)

_USER_AGENT = f"notegraph/{__version__}"
_REQUEST_TIMEOUT = 30
_MAX_RETRIES = 3
_BACKOFF_BASE = 1.0  # seconds
_MAX_TERM_LENGTH = 50

_JSON_LIST_RE = re.compile(r"\[.*\]", re.DOTALL)

_STRATEGY_PROMPTS = {
    ExpansionStrategy.SYNONYMS: (
        'Generate synonyms and alternative terms for: "{term}". Include words with '
        "similar meanings and common morphological variations."
    ),
    ExpansionStrategy.RELATED: (
        'Generate related concepts for: "{term}". Go beyond synonyms: include terms '
        "from the same semantic domain and commonly co-occurring concepts."
    ),
    ExpansionStrategy.BROADER: (
        'Generate broader, higher-level terms that encompass: "{term}". Think of parent '
        "categories and umbrella concepts."
    ),
}

_REQUIREMENTS = (
    'Respond in the same language as "{term}". Return at most {count} terms as a JSON '
    "array of strings and nothing else. Prefer single words over phrases, avoid generic "
    'words, and do not repeat "{term}" itself.'
)


def build_prompt(term: str, strategy: ExpansionStrategy, max_terms: int) -> str:
    return (
        _STRATEGY_PROMPTS[strategy].format(term=term)
        + "\n\n"
        + _REQUIREMENTS.format(term=term, count=max_terms)
    )


def parse_terms(text: str, term: str, max_terms: int) -> list[str]:
    """Extract the term list from a model reply.

    A JSON array is preferred; a plain one-term-per-line reply is
    accepted as well.  The original term, duplicates and overlong lines
    are dropped.
    """
    candidates: list[Any]
    match = _JSON_LIST_RE.search(text)
    try:
        candidates = json.loads(match.group(0)) if match else []
    except json.JSONDecodeError:
        candidates = []
    if not candidates:
        candidates = [line.strip().lstrip("-*").strip() for line in text.splitlines()]
        candidates = [line for line in candidates if not re.match(r"^\d+\.", line)]

    original = term.casefold()
    seen: set[str] = set()
    terms: list[str] = []
    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        candidate = candidate.strip()
        key = candidate.casefold()
        if not candidate or len(candidate) >= _MAX_TERM_LENGTH or key == original or key in seen:
            continue
        seen.add(key)
        terms.append(candidate)
    return terms[:max_terms]


class HttpExpander:
    """Asks a language model for expansion terms.

    Args:
        endpoint_url: Base URL of an OpenAI-compatible API
            (``/chat/completions`` is appended).
        model: Model name sent with every request.
        api_key: Bearer token, if the endpoint needs one.
    """

    def __init__(self, endpoint_url: str, model: str, api_key: str | None = None) -> None:
        self.endpoint_url = endpoint_url.rstrip("/") + "/chat/completions"
        self.model = model
        self._session = requests.Session()
        self._session.headers.update({"User-Agent": _USER_AGENT})
        if api_key:
            self._session.headers.update({"Authorization": f"Bearer {api_key}"})

    def _post(self, term: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST with retry and exponential backoff on transient failures.

        Raises:
            ExpansionError: On a non-retryable status or after the last retry.
        """
        for attempt in range(_MAX_RETRIES):
            try:
                resp = self._session.post(self.endpoint_url, json=payload, timeout=_REQUEST_TIMEOUT)
            except requests.RequestException as e:
                if attempt == _MAX_RETRIES - 1:
                    raise ExpansionError(
                        term, f"request failed after {_MAX_RETRIES} attempts: {e}"
                    ) from e
                wait = _BACKOFF_BASE * (2**attempt)
                logger.warning("Expansion request failed, retrying in %.1fs: %s", wait, e)
                time.sleep(wait)
                continue

            if resp.status_code in (429, 500, 502, 503):
                if attempt == _MAX_RETRIES - 1:
                    raise ExpansionError(
                        term, f"endpoint unavailable (HTTP {resp.status_code})"
                    )
                wait = _BACKOFF_BASE * (2**attempt)
                logger.warning(
                    "Expansion endpoint returned HTTP %d, waiting %.1fs...",
                    resp.status_code,
                    wait,
                )
                time.sleep(wait)
                continue

            if resp.status_code >= 400:
                raise ExpansionError(term, f"endpoint returned HTTP {resp.status_code}")
            try:
                return resp.json()
            except ValueError as e:
                raise ExpansionError(term, "endpoint returned invalid JSON") from e

        raise ExpansionError(term, f"request failed after {_MAX_RETRIES} attempts")

    def expand(self, term: str, strategy: ExpansionStrategy, max_terms: int) -> list[str]:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": build_prompt(term, strategy, max_terms)}],
            "temperature": 0.2,
        }
        data = self._post(term, payload)
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExpansionError(term, "unexpected response shape") from e
        if not isinstance(text, str):
            raise ExpansionError(term, "unexpected response shape")

        terms = parse_terms(text, term, max_terms)
        logger.debug("Expansion (%s) of '%s': %s", strategy.value, term, terms)
        return terms
