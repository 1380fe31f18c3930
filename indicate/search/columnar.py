# INDICATE Search - DuckDB Fuzzy Search
# =====================================
"""
Fuzzy search executed inside DuckDB with jaro_winkler_similarity, for
tables too large to score in memory (millions of vocabulary concepts).

Results come back sorted by descending similarity in a fuzzy_score column.
For small tables the in-memory fuzzy_search can be used instead. The
similarity threshold and row limit default to the search settings.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

import pandas as pd

from ..database.sql_security import (
    IdentifierType,
    safe_column_list,
    safe_quote_identifier,
)
from ..settings.loader import get_settings
from .fuzzy_matcher import SCORE_COLUMN

logger = logging.getLogger(__name__)


# Predicate SQL plus its bound parameters
Predicate = Tuple[str, Sequence[Any]]

STANDARD_CONCEPT_CODES = {"S", "C", "NS"}
VALIDITY_VALUES = {"Valid", "Invalid"}


@dataclass
class ConceptFilters:
    """
    Advanced filters of the OMOP concept browser.

    standard_concept takes "S" (standard), "C" (classification) and
    "NS" (non-standard, i.e. no standard_concept flag); validity takes
    "Valid" and "Invalid" (based on invalid_reason).
    """
    vocabulary_id: List[str] = field(default_factory=list)
    domain_id: List[str] = field(default_factory=list)
    concept_class_id: List[str] = field(default_factory=list)
    standard_concept: List[str] = field(default_factory=list)
    validity: List[str] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return any([
            self.vocabulary_id,
            self.domain_id,
            self.concept_class_id,
            self.standard_concept,
            self.validity,
        ])

    def to_predicate(self) -> Optional[Predicate]:
        """
        Render the filters as a WHERE fragment with bound parameters.

        Returns:
            (sql, params), or None when no filter is set

        Raises:
            ValueError: For unknown standard_concept or validity values
        """
        parts: List[str] = []
        params: List[Any] = []

        for column in ("vocabulary_id", "domain_id", "concept_class_id"):
            values = getattr(self, column)
            if values:
                placeholders = ", ".join("?" for _ in values)
                parts.append(f"{safe_quote_identifier(column)} IN ({placeholders})")
                params.extend(values)

        if self.standard_concept:
            unknown = set(self.standard_concept) - STANDARD_CONCEPT_CODES
            if unknown:
                raise ValueError(f"Unknown standard_concept filter values: {sorted(unknown)}")

            flags = [v for v in self.standard_concept if v != "NS"]
            conditions = []
            if flags:
                conditions.append(f'"standard_concept" IN ({", ".join("?" for _ in flags)})')
                params.extend(flags)
            if "NS" in self.standard_concept:
                conditions.append('"standard_concept" IS NULL')
            parts.append("(" + " OR ".join(conditions) + ")")

        if self.validity:
            unknown = set(self.validity) - VALIDITY_VALUES
            if unknown:
                raise ValueError(f"Unknown validity filter values: {sorted(unknown)}")

            # Both values selected is no filter at all
            if set(self.validity) == {"Valid"}:
                parts.append('"invalid_reason" IS NULL')
            elif set(self.validity) == {"Invalid"}:
                parts.append('"invalid_reason" IS NOT NULL')

        if not parts:
            return None
        return " AND ".join(parts), params


def fuzzy_search_columnar(
    connection,
    table: str,
    column: str,
    query: str,
    min_score: Optional[float] = None,
    limit: Optional[int] = None,
    extra_predicate: Optional[Predicate] = None,
    select_columns: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Fuzzy search a DuckDB table using Jaro-Winkler similarity.

    Both the column and the query are lowercased before comparison.

    Args:
        connection: DuckDB connection
        table: Table to search (e.g. "concept")
        column: Column to search (e.g. "concept_name")
        query: Search query
        min_score: Minimum similarity, exclusive (0-1; default from settings)
        limit: Maximum number of rows returned (default from settings)
        extra_predicate: Additional (sql, params) condition, e.g. from
            ConceptFilters.to_predicate()
        select_columns: Columns to return (default: all)

    Returns:
        DataFrame of matching rows plus fuzzy_score, most similar first;
        empty when the query is empty

    Raises:
        SQLSecurityError: If the table or a column name is invalid
    """
    table_sql = safe_quote_identifier(table, IdentifierType.TABLE)
    column_sql = safe_quote_identifier(column)
    select_sql = safe_column_list(list(select_columns or []))

    if not query or not query.strip():
        return pd.DataFrame(columns=list(select_columns or []) + [SCORE_COLUMN])

    search_settings = get_settings().search
    if min_score is None:
        min_score = search_settings.min_score
    if limit is None:
        limit = search_settings.limit

    similarity = f"jaro_winkler_similarity(lower({column_sql}), lower(?))"
    where = f"{similarity} > ?"
    params: List[Any] = [query, query, float(min_score)]

    if extra_predicate:
        predicate_sql, predicate_params = extra_predicate
        if predicate_sql:
            where += f" AND ({predicate_sql})"
            params.extend(predicate_params)

    sql = f'''
        SELECT {select_sql},
               {similarity} AS {SCORE_COLUMN}
        FROM {table_sql}
        WHERE {where}
        ORDER BY {SCORE_COLUMN} DESC
        LIMIT {int(limit)}
    '''

    result = connection.execute(sql, params).fetchdf()
    logger.debug(f"Fuzzy search on {table}.{column} for {query!r}: {len(result)} rows")
    return result
