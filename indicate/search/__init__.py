# INDICATE Search Module
# ======================
"""
Fuzzy Matcher

Search-as-you-type relevance scoring for text columns:
- fuzzy_search: in-memory token matching with Levenshtein distances
- fuzzy_search_columnar: Jaro-Winkler similarity computed inside DuckDB
- ConceptFilters: OMOP advanced filters for the DuckDB search
"""

from .fuzzy_matcher import (
    SCORE_COLUMN,
    FuzzyMatch,
    normalize_text_for_search,
    score_text,
    match_texts,
    fuzzy_search,
)

from .columnar import (
    ConceptFilters,
    fuzzy_search_columnar,
)


__all__ = [
    # In-memory matcher
    "SCORE_COLUMN",
    "FuzzyMatch",
    "normalize_text_for_search",
    "score_text",
    "match_texts",
    "fuzzy_search",

    # DuckDB matcher
    "ConceptFilters",
    "fuzzy_search_columnar",
]
