"""Relevance scoring between a query context and a memory's text.

Scorers are swappable behind the ``RelevanceScorer`` protocol so an
embedding-backed implementation can replace lexical overlap without
touching retrieval or prompt assembly.
"""

import re
from typing import Protocol, runtime_checkable

_TOKEN_SPLIT = re.compile(r"\W+")
_MIN_TOKEN_LENGTH = 3


def tokenize(text: str) -> set[str]:
    """Lowercased word tokens longer than two characters."""
    return {
        token
        for token in _TOKEN_SPLIT.split((text or "").lower())
        if len(token) >= _MIN_TOKEN_LENGTH
    }


@runtime_checkable
class RelevanceScorer(Protocol):
    """Protocol that all relevance scorers must satisfy."""

    @property
    def name(self) -> str:
        """Unique scorer identifier (e.g. 'jaccard')."""
        ...

    def score(self, query: str, content: str) -> float:
        """Return a similarity in [0, 1]."""
        ...


class JaccardScorer:
    """Token-set overlap: |query ∩ content| / |query ∪ content|."""

    @property
    def name(self) -> str:
        return "jaccard"

    def score(self, query: str, content: str) -> float:
        query_tokens = tokenize(query)
        content_tokens = tokenize(content)
        union = query_tokens | content_tokens
        if not union:
            return 0.0
        return len(query_tokens & content_tokens) / len(union)


_SCORERS: dict[str, type] = {
    "jaccard": JaccardScorer,
}


def get_scorer(name: str = "jaccard") -> RelevanceScorer:
    """Build the scorer registered under *name*. Raises ValueError if unknown."""
    try:
        return _SCORERS[name.strip().lower()]()
    except KeyError:
        msg = f"Unknown relevance scorer '{name}'"
        raise ValueError(msg) from None
