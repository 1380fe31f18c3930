# Pytest configuration for INDICATE tests
"""
Shared fixtures: a small in-memory OMOP CDM database.

measurement
    3004249  numeric, values 1..60 for 20 patients
    3002385  categorical, Positive x30 / Negative x20 / Unknown x5, 10 patients
    3020000  12 rows without any recorded value
    4000001  3 rows (below the default min_rows)
condition_occurrence
    201826   15 rows for 5 patients
    9999     2 rows
concept
    vocabulary rows for 3004249, 3002385 and 201826 only
"""

import sys
from datetime import date, timedelta
from pathlib import Path

import duckdb
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))


NUMERIC_CONCEPT = 3004249
CATEGORICAL_CONCEPT = 3002385
VALUELESS_CONCEPT = 3020000
RARE_CONCEPT = 4000001
CONDITION_CONCEPT = 201826
RARE_CONDITION_CONCEPT = 9999

START_DATE = date(2020, 1, 1)


def _measurement_rows():
    rows = []
    for i in range(60):
        rows.append((i % 20 + 1, NUMERIC_CONCEPT, float(i + 1), None, START_DATE + timedelta(days=i)))

    labels = ["Positive"] * 30 + ["Negative"] * 20 + ["Unknown"] * 5
    for i, label in enumerate(labels):
        rows.append((i % 10 + 1, CATEGORICAL_CONCEPT, None, label, date(2021, 3, 1) + timedelta(days=i)))

    for i in range(12):
        rows.append((22, VALUELESS_CONCEPT, None, None, date(2022, 1, 1)))

    for i in range(3):
        rows.append((21, RARE_CONCEPT, float(i), None, date(2022, 6, 1)))
    return rows


def _condition_rows():
    rows = [
        (i % 5 + 1, CONDITION_CONCEPT, date(2019, 5, 1) + timedelta(days=i))
        for i in range(15)
    ]
    rows += [(6, RARE_CONDITION_CONCEPT, date(2019, 6, 1)) for _ in range(2)]
    return rows


def build_omop_database(conn) -> None:
    """Create and populate the test OMOP tables on a connection."""
    conn.execute("""
        CREATE TABLE measurement (
            person_id INTEGER,
            measurement_concept_id INTEGER,
            value_as_number DOUBLE,
            value_as_string VARCHAR,
            measurement_date DATE
        )
    """)
    conn.executemany("INSERT INTO measurement VALUES (?, ?, ?, ?, ?)", _measurement_rows())

    conn.execute("""
        CREATE TABLE condition_occurrence (
            person_id INTEGER,
            condition_concept_id INTEGER,
            condition_start_date DATE
        )
    """)
    conn.executemany("INSERT INTO condition_occurrence VALUES (?, ?, ?)", _condition_rows())

    conn.execute("""
        CREATE TABLE concept (
            concept_id INTEGER,
            concept_name VARCHAR,
            domain_id VARCHAR,
            vocabulary_id VARCHAR,
            concept_class_id VARCHAR,
            standard_concept VARCHAR,
            concept_code VARCHAR,
            invalid_reason VARCHAR
        )
    """)
    conn.executemany("INSERT INTO concept VALUES (?, ?, ?, ?, ?, ?, ?, ?)", [
        (NUMERIC_CONCEPT, "Hemoglobin [Mass/volume] in Blood", "Measurement",
         "LOINC", "Lab Test", "S", "718-7", None),
        (CATEGORICAL_CONCEPT, "SARS-CoV-2 RNA [Presence] in Specimen", "Measurement",
         "LOINC", "Lab Test", "S", "94500-6", None),
        (CONDITION_CONCEPT, "Type 2 diabetes mellitus", "Condition",
         "SNOMED", "Clinical Finding", "S", "44054006", None),
    ])


@pytest.fixture
def omop_conn():
    """In-memory DuckDB connection holding the test OMOP tables."""
    conn = duckdb.connect()
    build_omop_database(conn)
    yield conn
    conn.close()


@pytest.fixture
def omop_db_file(tmp_path):
    """Path to an on-disk DuckDB file holding the test OMOP tables."""
    db_path = tmp_path / "omop.duckdb"
    conn = duckdb.connect(str(db_path))
    build_omop_database(conn)
    conn.close()
    return db_path
