# INDICATE - DuckDB Connection Helpers
# ====================================
"""
Opening OMOP databases for the command-line tools.

The statistics engine and the columnar matcher never open or close a
connection themselves; the caller owns its lifecycle.
"""

import logging
from pathlib import Path
from typing import Union

import duckdb

logger = logging.getLogger(__name__)


def connect(db_path: Union[str, Path], read_only: bool = True) -> duckdb.DuckDBPyConnection:
    """
    Open a DuckDB OMOP database.

    Args:
        db_path: Path to the .duckdb file
        read_only: Whether to open in read-only mode

    Returns:
        An open DuckDB connection

    Raises:
        FileNotFoundError: If the database file does not exist
    """
    path = Path(db_path)
    if not path.exists():
        raise FileNotFoundError(f"Database not found: {db_path}")

    conn = duckdb.connect(str(path), read_only=read_only)
    logger.info(f"Connected to DuckDB: {path} (read_only={read_only})")
    return conn
