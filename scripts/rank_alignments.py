#!/usr/bin/env python
# INDICATE - Alignment Candidates
# ===============================
# Ranks concepts by distribution similarity to a source concept
"""
Reads a statistics CSV produced by compute_statistics.py and lists the
concepts whose value distribution is closest to a given concept.

Usage:
    python scripts/rank_alignments.py --stats omop_statistics.csv --concept-id 3004249
    python scripts/rank_alignments.py --stats omop_statistics.csv --concept-id 3004249 --top-k 20
"""

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from indicate.comparison import rank_alignment_candidates
from indicate.settings import load_settings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="INDICATE: rank alignment candidates for a concept"
    )
    parser.add_argument("--stats", required=True, help="Statistics CSV file")
    parser.add_argument("--concept-id", type=int, required=True, help="Source concept id")
    parser.add_argument("--table", help="Source table when the concept appears in several")
    parser.add_argument("--top-k", type=int, default=10, help="Number of candidates")
    parser.add_argument("--min-score", type=float, default=0.0, help="Minimum overall score")
    parser.add_argument("--env-file", help="Path to a .env file")
    args = parser.parse_args()

    stats_path = Path(args.stats)
    if not stats_path.exists():
        logger.error(f"Statistics file not found: {stats_path}")
        return 1

    settings = load_settings(args.env_file)
    stats = pd.read_csv(stats_path)

    source_rows = stats[stats["concept_id"] == args.concept_id]
    if args.table:
        source_rows = source_rows[source_rows["table_name"] == args.table]
    if source_rows.empty:
        logger.error(f"Concept {args.concept_id} not found in {stats_path}")
        return 1

    source = source_rows.iloc[0]
    logger.info(f"Source concept {args.concept_id} ({source['table_name']})")

    candidates = rank_alignment_candidates(
        source["statistical_summary_json"],
        stats,
        top_k=args.top_k,
        min_score=args.min_score,
        weights=settings.comparison,
        source_concept_id=args.concept_id,
    )

    if not candidates:
        logger.info("No candidates found")
        return 0

    for rank, candidate in enumerate(candidates, start=1):
        logger.info(
            f"{rank:>3}. concept {candidate.concept_id} ({candidate.table_name}) "
            f"score={candidate.score:.3f}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
