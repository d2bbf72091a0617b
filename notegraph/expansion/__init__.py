"""Term-expansion services: a local thesaurus and an HTTP language-model endpoint."""

from notegraph.expansion.client import HttpExpander
from notegraph.expansion.thesaurus import ThesaurusExpander, load_thesaurus

__all__ = [
    "HttpExpander",
    "ThesaurusExpander",
    "load_thesaurus",
]
