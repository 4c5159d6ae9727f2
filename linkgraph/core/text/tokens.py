"""
Lexical helpers: tokenization, hashtag extraction and title picking.

Used for the lexical similarity fallback and for enriching tag sets.
"""

import math
import re
from collections import Counter

STOPWORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "if", "in",
        "into", "is", "it", "no", "not", "of", "on", "or", "such", "that", "the",
        "their", "then", "there", "these", "they", "this", "to", "was", "will",
        "with", "we", "you", "i", "should", "ensure", "include", "including",
        "includes", "using", "use", "used", "based",
    }
)

_HASHTAG_RE = re.compile(r"(?<![\w#])#([A-Za-z0-9_-]+)")
_NON_TOKEN_RE = re.compile(r"[^a-z0-9\s]")


def normalize_token(token: str) -> str:
    """Crude singularization so "databases" and "database" match."""
    if len(token) <= 3:
        return token
    if token.endswith("ies") and len(token) > 4:
        return token[:-3] + "y"
    if (
        token.endswith("s")
        and len(token) > 4
        and not token.endswith(("ss", "us", "is"))
    ):
        return token[:-1]
    return token


def tokenize(text: str) -> Counter:
    """
    Count normalized, stop-word filtered tokens.

    Args:
        text: Free text

    Returns:
        Counter mapping token to occurrence count
    """
    normalized = _NON_TOKEN_RE.sub(" ", text.lower())
    tokens = (
        normalize_token(token)
        for token in normalized.split()
        if len(token) >= 2 and token not in STOPWORDS
    )
    return Counter(tokens)


def token_cosine(a: Counter, b: Counter) -> float:
    """Cosine similarity between two token-count vectors."""
    if not a or not b:
        return 0.0
    dot = sum(count * b.get(token, 0) for token, count in a.items())
    if dot == 0:
        return 0.0
    mag_a = math.sqrt(sum(count * count for count in a.values()))
    mag_b = math.sqrt(sum(count * count for count in b.values()))
    return dot / (mag_a * mag_b)


def extract_hashtags(text: str) -> list[str]:
    """Return `#tags` found in text, lower-cased and de-duplicated in order."""
    seen: dict[str, None] = {}
    for match in _HASHTAG_RE.finditer(text):
        seen.setdefault(match.group(1).lower(), None)
    return list(seen)


def pick_title(body: str, title: str | None = None, max_length: int = 80) -> str:
    """
    Choose a title: the provided one, else the first non-empty body line.

    Args:
        body: Node body
        title: Explicit title, if any
        max_length: Truncation length for the derived title

    Returns:
        Non-empty title string
    """
    if title and title.strip():
        return title.strip()
    for line in body.splitlines():
        if line.strip():
            return line.strip()[:max_length]
    return "Untitled"
