# INDICATE Statistics - Batch Processing
# ======================================
"""
Batch computation of statistical summaries for every concept of the OMOP
clinical event tables.

Concepts are processed table by table in fixed-size batches. A failure on
one concept is reported and skipped; only a database without any usable
event table aborts the run.
"""

import csv
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

import duckdb
import pandas as pd

from ..database.sql_security import IdentifierType, list_tables, safe_quote_identifier
from ..settings.schemas import StatisticsSettings
from .engine import StatisticsEngine
from .models import StatisticsError
from .table_config import OMOPTableConfig, get_omop_table_configs

logger = logging.getLogger(__name__)


RESULT_COLUMNS = [
    "vocabulary_id",
    "concept_id",
    "concept_code",
    "table_name",
    "statistical_summary_json",
]

ProgressCallback = Callable[[str], None]
OutputSink = Union[str, Path, Callable[[pd.DataFrame], None]]


class NoUsableTablesError(StatisticsError):
    """Raised when none of the requested event tables exist in the database."""

    def __init__(self, requested: List[str]):
        self.requested = requested
        super().__init__(
            f"No valid OMOP tables found in database (looked for: {', '.join(requested) or 'none'})"
        )


class CsvResultSink:
    """
    Appends batch results to a CSV file.

    The header is written once, when the file is missing or empty, so an
    interrupted run can be inspected or resumed from the rows written so far.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.rows_written = 0

    def __call__(self, batch: pd.DataFrame) -> None:
        write_header = not self.path.exists() or self.path.stat().st_size == 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        batch.to_csv(
            self.path,
            mode="a",
            header=write_header,
            index=False,
            columns=RESULT_COLUMNS,
            quoting=csv.QUOTE_NONNUMERIC,
        )
        self.rows_written += len(batch)


def _report(progress_callback: Optional[ProgressCallback], message: str, level: int = logging.INFO) -> None:
    logger.log(level, message)
    if progress_callback:
        progress_callback(message)


def _resolve_sink(output_sink: Optional[OutputSink]) -> Optional[Callable[[pd.DataFrame], None]]:
    if output_sink is None:
        return None
    if isinstance(output_sink, (str, Path)):
        return CsvResultSink(output_sink)
    return output_sink


def empty_results() -> pd.DataFrame:
    """Result frame with the expected columns and no rows."""
    return pd.DataFrame({
        "vocabulary_id": pd.Series(dtype=object),
        "concept_id": pd.Series(dtype="int64"),
        "concept_code": pd.Series(dtype=object),
        "table_name": pd.Series(dtype=object),
        "statistical_summary_json": pd.Series(dtype=object),
    })


def available_table_configs(connection, tables: Optional[Iterable[str]] = None) -> Dict[str, OMOPTableConfig]:
    """
    Table configurations whose table exists in the connected database.

    Raises:
        NoUsableTablesError: If no configured table exists
    """
    tables = list(tables) if tables is not None else None
    configs = get_omop_table_configs(tables)
    present = list_tables(connection)

    usable = {}
    for name, cfg in configs.items():
        if cfg.table.lower() in present:
            usable[name] = cfg
        else:
            logger.info(f"Skipping {cfg.table}: table not found in database")

    if not usable:
        requested = list(tables) if tables is not None else list(configs)
        raise NoUsableTablesError(requested)
    return usable


def fetch_concept_counts(connection, config: OMOPTableConfig, min_rows: int = 10) -> pd.DataFrame:
    """Concepts of a table with at least min_rows rows, most frequent first."""
    table = safe_quote_identifier(config.table, IdentifierType.TABLE)
    concept = safe_quote_identifier(config.concept_column)

    return connection.execute(f'''
        SELECT {concept} AS concept_id, COUNT(*) AS row_count
        FROM {table}
        WHERE {concept} IS NOT NULL
        GROUP BY {concept}
        HAVING COUNT(*) >= ?
        ORDER BY row_count DESC, concept_id
    ''', [min_rows]).fetchdf()


def fetch_concept_info(connection, concept_ids: List[int]) -> Dict[int, Dict[str, Optional[str]]]:
    """
    Vocabulary id and concept code for a batch of concept ids.

    Concepts missing from the concept table are simply absent from the
    returned mapping.
    """
    if not concept_ids:
        return {}

    placeholders = ", ".join("?" for _ in concept_ids)
    rows = connection.execute(f'''
        SELECT concept_id, vocabulary_id, concept_code
        FROM concept
        WHERE concept_id IN ({placeholders})
    ''', [int(c) for c in concept_ids]).fetchall()

    return {
        int(concept_id): {"vocabulary_id": vocabulary_id, "concept_code": concept_code}
        for concept_id, vocabulary_id, concept_code in rows
    }


def compute_all_statistics(
    connection,
    tables: Optional[Iterable[str]] = None,
    min_rows: int = 10,
    max_categorical_values: int = 50,
    min_categorical_count: int = 10,
    max_stored_categories: int = 10,
    compute_percentiles: bool = True,
    batch_size: int = 100,
    progress_callback: Optional[ProgressCallback] = None,
    output_sink: Optional[OutputSink] = None,
) -> pd.DataFrame:
    """
    Compute statistical summaries for all concepts of the OMOP event tables.

    Args:
        connection: DuckDB connection (owned by the caller)
        tables: Domains to process (default: all registered tables)
        min_rows: Minimum number of rows for a concept to be included
        max_categorical_values: Distinct values up to which data is categorical
        min_categorical_count: Minimum count for a stored category
        max_stored_categories: Number of categories stored per concept
        compute_percentiles: Whether to compute percentiles
        batch_size: Concepts processed per batch
        progress_callback: Optional callback(message)
        output_sink: CSV path or callable(batch DataFrame) receiving each batch

    Returns:
        DataFrame with columns vocabulary_id, concept_id, concept_code,
        table_name, statistical_summary_json

    Raises:
        NoUsableTablesError: If none of the tables exist in the database

    Example:
        conn = duckdb.connect("omop.duckdb", read_only=True)
        results = compute_all_statistics(conn, output_sink="omop_statistics.csv")
        conn.close()
    """
    settings = StatisticsSettings(
        min_rows=min_rows,
        max_categorical_values=max_categorical_values,
        min_categorical_count=min_categorical_count,
        max_stored_categories=max_stored_categories,
        compute_percentiles=compute_percentiles,
        batch_size=batch_size,
    )
    return run_batch(
        StatisticsEngine(connection, settings),
        tables=tables,
        progress_callback=progress_callback,
        output_sink=output_sink,
    )


def run_batch(
    engine: StatisticsEngine,
    tables: Optional[Iterable[str]] = None,
    progress_callback: Optional[ProgressCallback] = None,
    output_sink: Optional[OutputSink] = None,
) -> pd.DataFrame:
    """
    Run the batch computation with an existing engine and its settings.

    See compute_all_statistics for the returned frame.
    """
    connection = engine.connection
    settings = engine.settings
    sink = _resolve_sink(output_sink)

    table_configs = available_table_configs(connection, tables)
    all_results: List[pd.DataFrame] = []

    for cfg in table_configs.values():
        _report(progress_callback, f"Processing table: {cfg.table}")

        try:
            concept_counts = fetch_concept_counts(connection, cfg, settings.min_rows)
        except duckdb.Error as e:
            _report(
                progress_callback,
                f"  Error reading concepts from {cfg.table}: {e}",
                logging.WARNING,
            )
            continue

        if concept_counts.empty:
            _report(progress_callback, f"  No concepts found with >= {settings.min_rows} rows")
            continue

        concept_ids = [int(c) for c in concept_counts["concept_id"]]
        n_concepts = len(concept_ids)
        n_batches = (n_concepts + settings.batch_size - 1) // settings.batch_size
        _report(progress_callback, f"  Found {n_concepts} concepts to process")

        for batch_idx in range(n_batches):
            start = batch_idx * settings.batch_size
            batch_concepts = concept_ids[start:start + settings.batch_size]

            _report(
                progress_callback,
                f"  Batch {batch_idx + 1}/{n_batches}: processing concepts "
                f"{start + 1}-{start + len(batch_concepts)}",
            )

            try:
                concept_info = fetch_concept_info(connection, batch_concepts)
            except duckdb.Error as e:
                _report(
                    progress_callback,
                    f"    Warning: Could not retrieve concept info from CONCEPT table: {e}",
                    logging.WARNING,
                )
                concept_info = {}

            batch_rows = []
            for concept_id in batch_concepts:
                try:
                    summary = engine.compute_concept(concept_id, cfg)
                except Exception as e:
                    _report(
                        progress_callback,
                        f"    Error processing concept {concept_id}: {e}",
                        logging.WARNING,
                    )
                    continue

                info = concept_info.get(concept_id, {})
                batch_rows.append({
                    "vocabulary_id": info.get("vocabulary_id"),
                    "concept_id": concept_id,
                    "concept_code": info.get("concept_code"),
                    "table_name": cfg.table,
                    "statistical_summary_json": summary.to_json(),
                })

            if not batch_rows:
                continue

            batch_df = pd.DataFrame(batch_rows, columns=RESULT_COLUMNS)
            all_results.append(batch_df)
            if sink is not None:
                sink(batch_df)

    if not all_results:
        return empty_results()

    final_results = pd.concat(all_results, ignore_index=True)
    _report(
        progress_callback,
        f"Complete! Processed {len(final_results)} concepts across {len(table_configs)} tables",
    )
    return final_results
