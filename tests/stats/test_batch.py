# Tests for Batch Statistics Computation
# ======================================

import duckdb
import pandas as pd
import pytest

import sys
from pathlib import Path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from indicate.statistics import (
    RESULT_COLUMNS,
    ConceptStatisticalSummary,
    CsvResultSink,
    DataType,
    NoUsableTablesError,
    StatisticsEngine,
    compute_all_statistics,
    run_batch,
)
from indicate.statistics.batch import (
    available_table_configs,
    fetch_concept_counts,
    fetch_concept_info,
)
from indicate.statistics.table_config import OMOP_TABLE_CONFIGS


class TestTableDiscovery:
    """Selecting the event tables present in the database."""

    def test_only_present_tables(self, omop_conn):
        """Test that missing tables are skipped."""
        configs = available_table_configs(omop_conn)
        assert list(configs) == ["measurement", "condition_occurrence"]

    def test_no_usable_tables(self):
        """Test an empty database."""
        conn = duckdb.connect()
        try:
            with pytest.raises(NoUsableTablesError, match="No valid OMOP tables"):
                available_table_configs(conn)
        finally:
            conn.close()

    def test_requested_tables_missing(self, omop_conn):
        """Test that requesting only absent tables fails."""
        with pytest.raises(NoUsableTablesError) as exc_info:
            compute_all_statistics(omop_conn, tables=["observation"])
        assert exc_info.value.requested == ["observation"]

    def test_requested_tables_as_generator(self, omop_conn):
        """Test that a one-shot iterable of table names is read once."""
        tables = (t for t in ["observation"])
        with pytest.raises(NoUsableTablesError) as exc_info:
            available_table_configs(omop_conn, tables)
        assert exc_info.value.requested == ["observation"]

    def test_generator_selects_tables(self, omop_conn):
        """Test selecting present tables from a generator."""
        configs = available_table_configs(omop_conn, (t for t in ["condition_occurrence"]))
        assert list(configs) == ["condition_occurrence"]


class TestConceptQueries:
    """Concept selection and vocabulary lookup."""

    def test_concept_counts_ordered_by_frequency(self, omop_conn):
        """Test min_rows filtering and ordering."""
        counts = fetch_concept_counts(omop_conn, OMOP_TABLE_CONFIGS["measurement"], min_rows=10)
        assert counts["concept_id"].tolist() == [3004249, 3002385, 3020000]
        assert counts["row_count"].tolist() == [60, 55, 12]

    def test_concept_info(self, omop_conn):
        """Test that unknown concepts are absent from the mapping."""
        info = fetch_concept_info(omop_conn, [3004249, 3020000])
        assert info == {3004249: {"vocabulary_id": "LOINC", "concept_code": "718-7"}}

    def test_concept_info_empty(self, omop_conn):
        """Test an empty id list."""
        assert fetch_concept_info(omop_conn, []) == {}


class TestComputeAllStatistics:
    """End-to-end batch runs."""

    def test_result_rows(self, omop_conn):
        """Test one row per concept with at least min_rows rows."""
        results = compute_all_statistics(omop_conn)

        assert list(results.columns) == RESULT_COLUMNS
        assert results["concept_id"].tolist() == [3004249, 3002385, 3020000, 201826]
        assert results["table_name"].tolist() == [
            "measurement", "measurement", "measurement", "condition_occurrence",
        ]

    def test_vocabulary_columns(self, omop_conn):
        """Test vocabulary lookup, with nulls for concepts missing from the concept table."""
        results = compute_all_statistics(omop_conn).set_index("concept_id")

        assert results.loc[3004249, "vocabulary_id"] == "LOINC"
        assert results.loc[201826, "concept_code"] == "44054006"
        assert pd.isna(results.loc[3020000, "vocabulary_id"])
        assert pd.isna(results.loc[3020000, "concept_code"])

    def test_summaries_parse(self, omop_conn):
        """Test that every stored summary parses back."""
        results = compute_all_statistics(omop_conn).set_index("concept_id")
        summaries = {
            concept_id: ConceptStatisticalSummary.from_json(blob)
            for concept_id, blob in results["statistical_summary_json"].items()
        }

        assert summaries[3004249].data_type is DataType.NUMERIC
        assert summaries[3002385].data_type is DataType.CATEGORICAL
        assert summaries[201826].data_type is DataType.COUNT
        # Rows exist but none carries a value
        assert summaries[3020000].is_empty

    def test_min_rows(self, omop_conn):
        """Test that lowering min_rows includes rare concepts."""
        results = compute_all_statistics(omop_conn, min_rows=2)
        assert 4000001 in results["concept_id"].tolist()
        assert 9999 in results["concept_id"].tolist()

    def test_no_concepts_above_threshold(self, omop_conn):
        """Test an empty result with the expected columns."""
        results = compute_all_statistics(omop_conn, min_rows=1000)
        assert results.empty
        assert list(results.columns) == RESULT_COLUMNS

    def test_table_subset(self, omop_conn):
        """Test processing a single table."""
        results = compute_all_statistics(omop_conn, tables=["condition_occurrence"])
        assert results["concept_id"].tolist() == [201826]

    def test_settings_forwarded(self, omop_conn):
        """Test that thresholds reach the summaries."""
        results = compute_all_statistics(omop_conn, tables=["measurement"], compute_percentiles=False)
        blob = results.loc[results["concept_id"] == 3004249, "statistical_summary_json"].iloc[0]
        stats = ConceptStatisticalSummary.from_json(blob).statistical_data
        assert stats.mean == 30.5
        assert stats.p25 is None

    def test_run_batch_with_engine(self, omop_conn):
        """Test running with an existing engine."""
        engine = StatisticsEngine(omop_conn)
        results = run_batch(engine, tables=["measurement"])
        assert len(results) == 3


class TestProgressReporting:
    """Progress messages passed to the callback."""

    def test_messages(self, omop_conn):
        """Test table, batch and completion messages."""
        messages = []
        compute_all_statistics(omop_conn, batch_size=2, progress_callback=messages.append)

        assert "Processing table: measurement" in messages
        assert "  Found 3 concepts to process" in messages
        assert "  Batch 1/2: processing concepts 1-2" in messages
        assert "  Batch 2/2: processing concepts 3-3" in messages
        assert messages[-1] == "Complete! Processed 4 concepts across 2 tables"

    def test_no_concepts_message(self, omop_conn):
        """Test the message for a table without qualifying concepts."""
        messages = []
        compute_all_statistics(omop_conn, min_rows=1000, progress_callback=messages.append)
        assert "  No concepts found with >= 1000 rows" in messages


class TestFailureIsolation:
    """A failing concept or lookup does not abort the run."""

    def test_failing_concept_is_skipped(self, omop_conn, monkeypatch):
        """Test that one failing concept is reported and skipped."""
        original = StatisticsEngine.compute_concept

        def flaky(self, concept_id, config):
            if concept_id == 3002385:
                raise RuntimeError("boom")
            return original(self, concept_id, config)

        monkeypatch.setattr(StatisticsEngine, "compute_concept", flaky)

        messages = []
        results = compute_all_statistics(omop_conn, progress_callback=messages.append)

        assert results["concept_id"].tolist() == [3004249, 3020000, 201826]
        assert "    Error processing concept 3002385: boom" in messages

    def test_missing_concept_table(self, omop_conn):
        """Test that a missing concept table leaves vocabulary fields null."""
        omop_conn.execute("DROP TABLE concept")

        messages = []
        results = compute_all_statistics(omop_conn, progress_callback=messages.append)

        assert len(results) == 4
        assert results["vocabulary_id"].isna().all()
        assert any("Could not retrieve concept info" in m for m in messages)

    def test_unreadable_table_is_skipped(self):
        """Test that a table missing its concept column is reported and skipped."""
        conn = duckdb.connect()
        try:
            conn.execute("CREATE TABLE measurement (person_id INTEGER, foo INTEGER)")
            conn.execute('''
                CREATE TABLE condition_occurrence AS
                SELECT
                    CAST(i AS INTEGER) AS person_id,
                    5 AS condition_concept_id,
                    DATE '2024-01-01' AS condition_start_date
                FROM range(20) t(i)
            ''')

            messages = []
            results = compute_all_statistics(conn, progress_callback=messages.append)
        finally:
            conn.close()

        assert results["concept_id"].tolist() == [5]
        assert any(m.startswith("  Error reading concepts from measurement") for m in messages)
        assert messages[-1] == "Complete! Processed 1 concepts across 2 tables"


class TestOutputSink:
    """Writing batches as they complete."""

    def test_csv_sink(self, omop_conn, tmp_path):
        """Test that every batch is appended to the CSV file."""
        output = tmp_path / "out" / "stats.csv"
        compute_all_statistics(omop_conn, batch_size=2, output_sink=output)

        written = pd.read_csv(output)
        assert list(written.columns) == RESULT_COLUMNS
        assert written["concept_id"].tolist() == [3004249, 3002385, 3020000, 201826]

        summary = ConceptStatisticalSummary.from_json(written["statistical_summary_json"].iloc[0])
        assert summary.statistical_data.median == 30.5

    def test_csv_header_written_once(self, omop_conn, tmp_path):
        """Test that a second run appends without a second header."""
        output = tmp_path / "stats.csv"
        compute_all_statistics(omop_conn, output_sink=output)
        compute_all_statistics(omop_conn, output_sink=output)

        written = pd.read_csv(output)
        assert len(written) == 8
        assert (written["concept_id"] != "concept_id").all()

    def test_sink_rows_written(self, omop_conn, tmp_path):
        """Test the row counter of the CSV sink."""
        sink = CsvResultSink(tmp_path / "stats.csv")
        compute_all_statistics(omop_conn, batch_size=1, output_sink=sink)
        assert sink.rows_written == 4

    def test_callable_sink(self, omop_conn):
        """Test a callable receiving each batch frame."""
        batches = []
        compute_all_statistics(omop_conn, batch_size=2, output_sink=batches.append)

        assert [len(b) for b in batches] == [2, 1, 1]
        assert all(list(b.columns) == RESULT_COLUMNS for b in batches)
