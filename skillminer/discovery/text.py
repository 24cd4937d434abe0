"""Lexical helpers shared by deduplication, novelty and cluster naming."""

from __future__ import annotations

import re

STOPWORDS = frozenset(
    {
        "the", "and", "for", "with", "this", "that", "from", "into", "when", "use",
        "using", "are", "was", "were", "will", "can", "you", "your", "our", "all",
        "any", "but", "not", "its", "it's", "has", "have", "had", "then", "than",
        "them", "they", "there", "what", "which", "who", "how", "why", "where",
        "also", "just", "like", "some", "should", "would", "could", "make", "let",
        "please", "need", "want", "get", "via", "per", "about", "over", "out",
        "these", "those", "each", "more", "most", "other", "such", "only", "own",
        "same", "too", "very", "does", "did", "doing", "been", "being", "here",
        "guides", "workflow",
    }
)  # fmt: skip

_TOKEN = re.compile(r"[a-z0-9][a-z0-9_-]*")


def extract_keywords(text: str) -> list[str]:
    """Lowercase keywords longer than two chars, minus stopwords, in first-seen order."""
    seen: dict[str, None] = {}
    for token in _TOKEN.findall(text.lower()):
        token = token.strip("_-")
        if len(token) > 2 and token not in STOPWORDS:
            seen.setdefault(token, None)
    return list(seen)


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    """|A ∩ B| / |A ∪ B|; two empty sets are not similar."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def keyword_similarity(a: str, b: str) -> float:
    return jaccard_similarity(set(extract_keywords(a)), set(extract_keywords(b)))
