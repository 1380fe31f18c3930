# INDICATE Statistics Module
# ==========================
"""
Statistics Engine

Computes per-concept statistical summaries from OMOP CDM clinical event
tables, used to compare concept distributions for automated alignment.

Components:
- OMOPTableConfig: Column layout of each clinical event table
- ConceptStatisticalSummary: Typed, canonically serialized summary record
- StatisticsEngine: Single-concept computation with cached table totals
- compute_all_statistics: Batch driver with progress reporting and CSV sink
"""

from .models import (
    StatisticsError,
    SummaryParseError,
    DataType,
    DateRange,
    NumericStatistics,
    CategoryFrequency,
    ConceptStatisticalSummary,
    parse_numeric_or_skip,
)

from .table_config import (
    OMOPTableConfig,
    OMOP_TABLE_CONFIGS,
    get_omop_table_configs,
)

from .engine import (
    TableTotals,
    StatisticsEngine,
    compute_single_concept_statistics,
    summarize_concept_rows,
)

from .batch import (
    RESULT_COLUMNS,
    NoUsableTablesError,
    CsvResultSink,
    compute_all_statistics,
    run_batch,
)


__all__ = [
    # Models
    "StatisticsError",
    "SummaryParseError",
    "DataType",
    "DateRange",
    "NumericStatistics",
    "CategoryFrequency",
    "ConceptStatisticalSummary",
    "parse_numeric_or_skip",

    # Table configuration
    "OMOPTableConfig",
    "OMOP_TABLE_CONFIGS",
    "get_omop_table_configs",

    # Engine
    "TableTotals",
    "StatisticsEngine",
    "compute_single_concept_statistics",
    "summarize_concept_rows",

    # Batch
    "RESULT_COLUMNS",
    "NoUsableTablesError",
    "CsvResultSink",
    "compute_all_statistics",
    "run_batch",
]
