#!/usr/bin/env python
# INDICATE - Concept Statistics Batch
# ===================================
# Computes statistical summaries for all concepts of an OMOP database
"""
Concept Statistics Pipeline

Scans the OMOP CDM clinical event tables of a DuckDB database and writes
one statistical summary per concept to a CSV file with columns
vocabulary_id, concept_id, concept_code, table_name,
statistical_summary_json. Rows are appended batch by batch, so a long run
can be inspected while it progresses.

Thresholds default to the INDICATE_* environment variables (or .env).

Usage:
    python scripts/compute_statistics.py --db-path omop.duckdb
    python scripts/compute_statistics.py --db-path omop.duckdb --table measurement observation
    python scripts/compute_statistics.py --db-path omop.duckdb --min-rows 50 --batch-size 500
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from indicate.database import connect
from indicate.settings import load_settings
from indicate.statistics import (
    OMOP_TABLE_CONFIGS,
    NoUsableTablesError,
    StatisticsEngine,
    run_batch,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="INDICATE: compute per-concept statistical summaries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/compute_statistics.py --db-path omop.duckdb
  python scripts/compute_statistics.py --db-path omop.duckdb --table measurement
  python scripts/compute_statistics.py --db-path omop.duckdb --output stats.csv --overwrite
        """
    )
    parser.add_argument(
        "--db-path",
        help="Path to the OMOP DuckDB database (default: INDICATE_DB_PATH)"
    )
    parser.add_argument(
        "--output",
        default="omop_statistics.csv",
        help="CSV file receiving the summaries"
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Delete an existing output file instead of appending to it"
    )
    parser.add_argument(
        "--table",
        nargs="+",
        choices=sorted(OMOP_TABLE_CONFIGS),
        help="Only process these tables"
    )
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--min-rows", type=int, help="Minimum rows per concept")
    parser.add_argument("--max-categorical-values", type=int,
                        help="Distinct values up to which data is categorical")
    parser.add_argument("--min-categorical-count", type=int,
                        help="Minimum count for a stored category")
    parser.add_argument("--max-stored-categories", type=int,
                        help="Number of categories stored per concept")
    parser.add_argument("--batch-size", type=int, help="Concepts per batch")
    parser.add_argument("--no-percentiles", action="store_true",
                        help="Skip p5/p25/p75/p95")
    return parser


def main() -> int:
    """Main entry point."""
    args = build_parser().parse_args()
    settings = load_settings(args.env_file)

    overrides = {
        "min_rows": args.min_rows,
        "max_categorical_values": args.max_categorical_values,
        "min_categorical_count": args.min_categorical_count,
        "max_stored_categories": args.max_stored_categories,
        "batch_size": args.batch_size,
    }
    stats_settings = settings.statistics.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    if args.no_percentiles:
        stats_settings = stats_settings.model_copy(update={"compute_percentiles": False})

    db_path = args.db_path or settings.db_path
    if not db_path:
        logger.error("No database given: use --db-path or set INDICATE_DB_PATH")
        return 2

    output = Path(args.output)
    if args.overwrite and output.exists():
        output.unlink()
        logger.info(f"Removed existing output: {output}")

    logger.info("=" * 60)
    logger.info("INDICATE: Concept Statistics")
    logger.info("=" * 60)

    start_time = time.time()
    try:
        conn = connect(db_path, read_only=True)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1

    try:
        engine = StatisticsEngine(conn, stats_settings)
        results = run_batch(engine, tables=args.table, output_sink=output)
    except NoUsableTablesError as e:
        logger.error(str(e))
        return 1
    finally:
        conn.close()

    duration = time.time() - start_time
    logger.info("=" * 60)
    logger.info(f"Concepts summarized: {len(results)}")
    if not results.empty:
        for table_name, count in results["table_name"].value_counts().items():
            logger.info(f"  {table_name}: {count}")
    logger.info(f"Output: {output}")
    logger.info(f"Total duration: {duration:.1f}s")
    logger.info("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
