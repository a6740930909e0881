"""
Text normalization helpers shared by the planner, suggestions and indexer.

Provides query sanitizing, accent folding, term extraction, the document
rank and the trigram word similarity registered on SQLite connections
(PostgreSQL ships word_similarity through pg_trgm).
"""

import re
import unicodedata
from typing import Optional

_WHITESPACE_RE = re.compile(r"\s+")
_TERM_RE = re.compile(r"[^\W_]+")

# Upper bound on terms sent to the text index for one query
MAX_QUERY_TERMS = 16

EXCERPT_LENGTH = 200

# Relative weights of the document fields: title (A), brand + tags (B),
# description + SKU (C). Mirrors ts_rank's default A/B/C weights.
FIELD_WEIGHTS = (1.0, 0.4, 0.2)


def fold_text(text: Optional[str]) -> str:
    """Lowercase and strip diacritics ("Café" -> "cafe")."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower()


def sanitize_query(text: Optional[str], max_length: int) -> str:
    """
    Drop control characters, collapse whitespace and cap the length.

    Over-long input is truncated rather than rejected.
    """
    if not text:
        return ""
    cleaned = "".join(
        ch for ch in text
        if ch.isspace() or unicodedata.category(ch) not in ("Cc", "Cf")
    )
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return cleaned[:max_length].strip()


def search_terms(query: str, max_terms: int = MAX_QUERY_TERMS) -> list[str]:
    """Folded, de-duplicated terms of a query in their original order."""
    terms: list[str] = []
    for term in _TERM_RE.findall(fold_text(query)):
        if term not in terms:
            terms.append(term)
        if len(terms) >= max_terms:
            break
    return terms


def escape_like(value: str) -> str:
    """Escape LIKE wildcards; pair with ESCAPE '\\'."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def excerpt(description: Optional[str], length: int = EXCERPT_LENGTH) -> str:
    if not description:
        return ""
    return description[:length]


def highlight(title: str, query: str) -> Optional[str]:
    """Wrap the first case-insensitive occurrence of query in <mark> tags."""
    if not title or not query:
        return None
    found = re.search(re.escape(query), title, re.IGNORECASE)
    if found is None:
        return None
    start, end = found.span()
    return f"{title[:start]}<mark>{title[start:end]}</mark>{title[end:]}"


# =============================================================================
# Relevance
# =============================================================================

def document_rank(
    terms: Optional[str],
    title: Optional[str],
    brand_tags: Optional[str],
    body: Optional[str],
    weights: tuple[float, float, float] = FIELD_WEIGHTS,
) -> float:
    """
    Relevance of one document for space-separated query terms.

    Each term contributes, per field, the field weight times a saturating
    frequency tf / (tf + 1) of words starting with the term; the sum is
    averaged over the terms. The score depends only on the document and
    the query, so it stays fixed while other products are written.
    """
    wanted = (terms or "").split()
    if not wanted:
        return 0.0

    score = 0.0
    for text, weight in zip((title, brand_tags, body), weights):
        words = _TERM_RE.findall(fold_text(text))
        for term in wanted:
            hits = sum(1 for word in words if word.startswith(term))
            score += weight * hits / (hits + 1)
    return score / len(wanted)


# =============================================================================
# Trigram similarity (pg_trgm semantics)
# =============================================================================

def ordered_trigrams(text: Optional[str]) -> list[str]:
    """
    Trigrams of every word in order, each word padded like pg_trgm
    (two leading spaces, one trailing).
    """
    result = []
    for word in _TERM_RE.findall(fold_text(text)):
        padded = f"  {word} "
        result.extend(padded[i:i + 3] for i in range(len(padded) - 2))
    return result


def trigrams(text: Optional[str]) -> set[str]:
    return set(ordered_trigrams(text))


def word_similarity(query: Optional[str], text: Optional[str]) -> float:
    """
    Greatest similarity between the query's trigrams and any continuous
    extent of the text's ordered trigrams.

    Only extents that start and end on a shared trigram can be maximal,
    so the search is limited to those.
    """
    wanted = trigrams(query)
    if not wanted:
        return 0.0
    sequence = ordered_trigrams(text)
    positions = [i for i, trigram in enumerate(sequence) if trigram in wanted]

    best = 0.0
    for n, start in enumerate(positions):
        for end in positions[n:]:
            extent = set(sequence[start:end + 1])
            score = len(wanted & extent) / len(wanted | extent)
            if score > best:
                best = score
    return best
