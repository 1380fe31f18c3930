# INDICATE Search - Fuzzy Matcher
# ===============================
"""
Typo-tolerant search over a text column held in memory, using RapidFuzz
Levenshtein distances.

Scoring (lower is better):
- 0:   the normalized query is a substring of the normalized text
- 0.5: every query token is a substring of the text
- N:   sum over query tokens of the minimum Levenshtein distance to any
       word of the text

Rows scoring above max_distance are dropped; the others are returned best
first, keeping the input order on ties. max_distance defaults to the
search settings (INDICATE_FUZZY_MAX_DISTANCE).
"""

import math
import re
import logging
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd
from rapidfuzz.distance import Levenshtein

from ..settings.loader import get_settings

logger = logging.getLogger(__name__)


Rows = Union[pd.DataFrame, List[Dict[str, Any]]]

SCORE_COLUMN = "fuzzy_score"
EXACT_SCORE = 0.0
ALL_TOKENS_SCORE = 0.5

# Letters without a Unicode decomposition to ASCII
_LATIN_LIGATURES = str.maketrans({
    "ß": "ss",
    "æ": "ae",
    "œ": "oe",
    "ø": "o",
    "ł": "l",
    "đ": "d",
    "þ": "th",
})

_WHITESPACE = re.compile(r"\s+")


@dataclass
class FuzzyMatch:
    """A row position of the searched data and its relevance score."""
    position: int       # Position of the row in the input
    score: float        # 0 = substring match, 0.5 = all tokens, else distance
    text: str           # Normalized text the query was scored against


def normalize_text_for_search(text: Any) -> str:
    """
    Normalize text for matching.

    Lowercases, transliterates accented Latin characters to ASCII, turns
    underscores into spaces and collapses whitespace. Missing values give "".
    """
    if text is None or (not isinstance(text, str) and pd.isna(text)):
        return ""

    text = str(text).lower().translate(_LATIN_LIGATURES)
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = text.replace("_", " ")
    return _WHITESPACE.sub(" ", text).strip()


def score_text(query_norm: str, query_tokens: Sequence[str], target: str) -> float:
    """Score one normalized target against a normalized query."""
    if not target:
        return math.inf

    if query_norm in target:
        return EXACT_SCORE

    if all(token in target for token in query_tokens):
        return ALL_TOKENS_SCORE

    words = target.split()
    if not words:
        return math.inf

    return float(sum(
        min(Levenshtein.distance(token, word) for word in words)
        for token in query_tokens
    ))


def match_texts(
    texts: Sequence[Any],
    query: str,
    max_distance: Optional[float] = None,
) -> List[FuzzyMatch]:
    """
    Score a sequence of texts against a query.

    Returns:
        Matches with score <= max_distance, best first, stable on ties
    """
    if max_distance is None:
        max_distance = get_settings().search.max_distance

    query_norm = normalize_text_for_search(query)
    if not query_norm:
        return []
    query_tokens = query_norm.split(" ")

    matches = []
    for position, text in enumerate(texts):
        target = normalize_text_for_search(text)
        score = score_text(query_norm, query_tokens, target)
        if score <= max_distance:
            matches.append(FuzzyMatch(position=position, score=score, text=target))

    matches.sort(key=lambda m: m.score)
    return matches


def fuzzy_search(
    rows: Rows,
    query: str,
    column: str,
    max_distance: Optional[float] = None,
    include_scores: bool = False,
) -> Rows:
    """
    Filter and sort rows by fuzzy relevance of one text column.

    Args:
        rows: DataFrame or list of dicts to search
        query: Search query
        column: Name of the column holding the text
        max_distance: Maximum accepted score (default from settings)
        include_scores: Add a fuzzy_score column/key to the returned rows

    Returns:
        Matching rows, best first, of the same kind as the input. The input
        is returned unchanged for an empty query, empty data or an unknown
        column.
    """
    if query is None or not normalize_text_for_search(query):
        return rows

    if isinstance(rows, pd.DataFrame):
        if rows.empty or column not in rows.columns:
            if not rows.empty:
                logger.debug(f"Fuzzy search skipped: unknown column {column!r}")
            return rows

        matches = match_texts(rows[column].tolist(), query, max_distance)
        result = rows.iloc[[m.position for m in matches]]
        if include_scores:
            result = result.assign(**{SCORE_COLUMN: [m.score for m in matches]})
        return result

    if not rows or not any(column in row for row in rows):
        return rows

    matches = match_texts([row.get(column) for row in rows], query, max_distance)
    if include_scores:
        return [{**rows[m.position], SCORE_COLUMN: m.score} for m in matches]
    return [rows[m.position] for m in matches]
