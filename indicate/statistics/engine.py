# INDICATE Statistics - Concept Statistics Engine
# ===============================================
"""
Computes the statistical summary of a single OMOP concept from the rows of
a clinical event table.

The engine works on a DuckDB connection owned by the caller; it never opens
or closes connections. Table-wide totals are cached per engine instance so
a batch run queries them once per table.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..database.sql_security import IdentifierType, safe_quote_identifier
from ..settings.schemas import StatisticsSettings
from .models import (
    CategoryFrequency,
    ConceptStatisticalSummary,
    DataType,
    DateRange,
    NumericStatistics,
    parse_numeric_or_skip,
    round_or_none,
)
from .table_config import OMOPTableConfig

logger = logging.getLogger(__name__)


ValueColumns = Optional[Union[str, Sequence[str]]]

PERCENTILES = (5, 25, 75, 95)

_INTEGRAL_FLOAT_TEXT = re.compile(r"^(-?\d+)\.0+$")


@dataclass(frozen=True)
class TableTotals:
    """Row and patient counts of a whole event table."""
    total_rows: int
    total_patients: int


def fetch_table_totals(connection, table_name: str, person_column: str = "person_id") -> TableTotals:
    """Count all rows and distinct patients of a table."""
    table = safe_quote_identifier(table_name, IdentifierType.TABLE)
    person = safe_quote_identifier(person_column)

    total_rows, total_patients = connection.execute(f'''
        SELECT
            COUNT(*) AS total_rows,
            COUNT(DISTINCT {person}) AS total_patients
        FROM {table}
    ''').fetchone()

    return TableTotals(total_rows=int(total_rows), total_patients=int(total_patients))


def _value_expression(value_column: ValueColumns) -> Optional[str]:
    """SQL expression for the recorded value; several columns are coalesced as text."""
    if value_column is None:
        return None
    if isinstance(value_column, str):
        return safe_quote_identifier(value_column)

    columns = [safe_quote_identifier(c) for c in value_column if c]
    if not columns:
        return None
    if len(columns) == 1:
        return columns[0]
    return "COALESCE(" + ", ".join(f"CAST({c} AS VARCHAR)" for c in columns) + ")"


def fetch_concept_rows(
    connection,
    concept_id: int,
    table_name: str,
    concept_column: str,
    value_column: ValueColumns,
    date_column: str,
    person_column: str = "person_id",
) -> pd.DataFrame:
    """
    Fetch the rows recorded for one concept.

    Returns a DataFrame with columns value (only when a value column is
    configured), person_id and date_value. Rows without a value are
    excluded when a value column exists.
    """
    table = safe_quote_identifier(table_name, IdentifierType.TABLE)
    concept = safe_quote_identifier(concept_column)
    person = safe_quote_identifier(person_column)
    date_col = safe_quote_identifier(date_column)
    value_expr = _value_expression(value_column)

    if value_expr is not None:
        sql = f'''
            SELECT
                {value_expr} AS value,
                {person} AS person_id,
                {date_col} AS date_value
            FROM {table}
            WHERE {concept} = ?
              AND {value_expr} IS NOT NULL
        '''
    else:
        sql = f'''
            SELECT
                {person} AS person_id,
                {date_col} AS date_value
            FROM {table}
            WHERE {concept} = ?
        '''

    return connection.execute(sql, [concept_id]).fetchdf()


def _format_date(value: Any) -> Optional[str]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, np.datetime64):
        value = pd.Timestamp(value)
    if isinstance(value, date):
        return value.isoformat()[:10]
    return str(value)


def _date_range(dates: pd.Series) -> DateRange:
    dates = dates.dropna()
    if dates.empty:
        return DateRange()
    return DateRange(min=_format_date(dates.min()), max=_format_date(dates.max()))


def _format_category(value: Any) -> str:
    # 5.0 -> "5", also for numbers already cast to text ("5.0", "-2.00")
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    text = str(value)
    match = _INTEGRAL_FLOAT_TEXT.match(text)
    if match:
        return match.group(1)
    return text


def build_frequency_table(
    values: Sequence[Any],
    rows_count: int,
    min_categorical_count: int = 10,
    max_stored_categories: int = 10,
) -> List[CategoryFrequency]:
    """
    Build the stored frequency table of a categorical concept.

    Categories seen fewer than min_categorical_count times are dropped; the
    remaining ones are sorted by descending count (ties by value) and
    truncated to max_stored_categories.
    """
    counts = Counter(_format_category(v) for v in values)
    kept = [(value, n) for value, n in counts.items() if n >= min_categorical_count]
    kept.sort(key=lambda item: (-item[1], item[0]))

    return [
        CategoryFrequency(
            value=value,
            count=n,
            percent=round(n / rows_count * 100, 2),
        )
        for value, n in kept[:max_stored_categories]
    ]


def build_numeric_statistics(
    values: Sequence[Any],
    compute_percentiles: bool = True,
) -> Optional[NumericStatistics]:
    """
    Describe numeric values.

    Non-coercible values are skipped; returns None when nothing remains.
    The standard deviation is the population one; percentiles use linear
    interpolation between order statistics.
    """
    parsed = [parse_numeric_or_skip(v) for v in values]
    numbers = np.array([v for v in parsed if v is not None], dtype=float)

    skipped = len(parsed) - len(numbers)
    if skipped:
        logger.debug(f"Skipped {skipped} non-numeric values")

    if numbers.size == 0:
        return None

    mean = float(np.mean(numbers))
    sd = float(np.std(numbers))
    cv = abs(sd / mean) if mean != 0 else None

    stats = {
        "min": round_or_none(np.min(numbers)),
        "max": round_or_none(np.max(numbers)),
        "mean": round_or_none(mean),
        "median": round_or_none(np.median(numbers)),
        "sd": round_or_none(sd),
        "coefficient_of_variation": round_or_none(cv, 3),
    }

    if compute_percentiles:
        p5, p25, p75, p95 = np.percentile(numbers, PERCENTILES)
        stats.update(
            p5=round_or_none(p5),
            p25=round_or_none(p25),
            p75=round_or_none(p75),
            p95=round_or_none(p95),
        )

    return NumericStatistics(**stats)


def summarize_concept_rows(
    rows: pd.DataFrame,
    totals: TableTotals,
    has_value_column: bool,
    max_categorical_values: int = 50,
    min_categorical_count: int = 10,
    max_stored_categories: int = 10,
    compute_percentiles: bool = True,
) -> ConceptStatisticalSummary:
    """
    Summarize the fetched rows of one concept.

    Args:
        rows: DataFrame with person_id, date_value and (optionally) value
        totals: Table-wide totals used for percentages
        has_value_column: Whether the table records a value for the concept

    Returns:
        The summary; the null template when there are no usable rows
    """
    if rows.empty:
        return ConceptStatisticalSummary.null_template()

    rows_count = len(rows)
    patients_count = int(rows["person_id"].nunique())

    rows_percent = round(rows_count / totals.total_rows * 100, 2) if totals.total_rows else None
    patients_percent = (
        round(patients_count / totals.total_patients * 100, 2) if totals.total_patients else None
    )
    measurement_density = round(rows_count / patients_count, 2) if patients_count else None

    common = dict(
        rows_count=rows_count,
        rows_percent=rows_percent,
        patients_count=patients_count,
        patients_percent=patients_percent,
        measurement_density=measurement_density,
        date_range=_date_range(rows["date_value"]),
    )

    if not has_value_column or "value" not in rows.columns:
        return ConceptStatisticalSummary(data_types=DataType.COUNT, **common)

    values = rows["value"].tolist()
    n_distinct = rows["value"].nunique()

    if n_distinct <= max_categorical_values:
        possible_values = build_frequency_table(
            values,
            rows_count,
            min_categorical_count=min_categorical_count,
            max_stored_categories=max_stored_categories,
        )
        return ConceptStatisticalSummary(
            data_types=DataType.CATEGORICAL,
            possible_values=possible_values,
            **common,
        )

    statistical_data = build_numeric_statistics(values, compute_percentiles)
    if statistical_data is None:
        return ConceptStatisticalSummary.null_template()

    return ConceptStatisticalSummary(
        data_types=DataType.NUMERIC,
        statistical_data=statistical_data,
        **common,
    )


def compute_single_concept_statistics(
    connection,
    concept_id: int,
    table_name: str,
    concept_column: str,
    value_column: ValueColumns,
    date_column: str,
    max_categorical_values: int = 50,
    min_categorical_count: int = 10,
    max_stored_categories: int = 10,
    compute_percentiles: bool = True,
    table_totals: Optional[TableTotals] = None,
    person_column: str = "person_id",
) -> ConceptStatisticalSummary:
    """
    Compute the statistical summary of one concept.

    Args:
        connection: DuckDB connection exposing the event table
        concept_id: OMOP concept id
        table_name: Event table name (e.g. "measurement")
        concept_column: Column holding the concept id
        value_column: Value column, a list of columns coalesced in order,
            or None for count-only tables
        date_column: Column holding the event date
        max_categorical_values: Distinct values up to which data is categorical
        min_categorical_count: Minimum count for a stored category
        max_stored_categories: Number of categories stored
        compute_percentiles: Whether to compute p5/p25/p75/p95
        table_totals: Precomputed totals of the table (queried when None)
        person_column: Column holding the patient id

    Returns:
        ConceptStatisticalSummary (null template when no rows match)
    """
    if table_totals is None:
        table_totals = fetch_table_totals(connection, table_name, person_column)

    rows = fetch_concept_rows(
        connection,
        concept_id,
        table_name,
        concept_column,
        value_column,
        date_column,
        person_column,
    )

    return summarize_concept_rows(
        rows,
        table_totals,
        has_value_column=_value_expression(value_column) is not None,
        max_categorical_values=max_categorical_values,
        min_categorical_count=min_categorical_count,
        max_stored_categories=max_stored_categories,
        compute_percentiles=compute_percentiles,
    )


class StatisticsEngine:
    """
    Computes concept summaries against one DuckDB connection.

    Example:
        engine = StatisticsEngine(conn, StatisticsSettings(min_rows=20))
        cfg = OMOP_TABLE_CONFIGS["measurement"]
        summary = engine.compute_concept(3004249, cfg)
    """

    def __init__(self, connection, settings: Optional[StatisticsSettings] = None):
        """
        Initialize the engine.

        Args:
            connection: Open DuckDB connection (owned by the caller)
            settings: Thresholds (defaults when None)
        """
        self.connection = connection
        self.settings = settings or StatisticsSettings()
        self._totals: Dict[Tuple[str, str], TableTotals] = {}

    def table_totals(self, config: OMOPTableConfig) -> TableTotals:
        """Get table-wide totals, cached for the lifetime of the engine."""
        key = (config.table, config.person_column)
        if key not in self._totals:
            self._totals[key] = fetch_table_totals(self.connection, config.table, config.person_column)
            logger.debug(f"Totals for {config.table}: {self._totals[key]}")
        return self._totals[key]

    def clear_cache(self) -> None:
        self._totals.clear()

    def compute_concept(self, concept_id: int, config: OMOPTableConfig) -> ConceptStatisticalSummary:
        """Compute the summary of one concept in a configured table."""
        return compute_single_concept_statistics(
            self.connection,
            concept_id=concept_id,
            table_name=config.table,
            concept_column=config.concept_column,
            value_column=list(config.value_columns) or None,
            date_column=config.date_column,
            max_categorical_values=self.settings.max_categorical_values,
            min_categorical_count=self.settings.min_categorical_count,
            max_stored_categories=self.settings.max_stored_categories,
            compute_percentiles=self.settings.compute_percentiles,
            table_totals=self.table_totals(config),
            person_column=config.person_column,
        )
