# INDICATE
# ========
"""
Analytical core of the INDICATE clinical data dictionary.

- indicate.statistics: per-concept statistical summaries of OMOP event tables
- indicate.comparison: distribution similarity for concept alignment
- indicate.search: fuzzy text search, in memory or inside DuckDB
- indicate.settings: thresholds and weights from .env / environment
"""

__version__ = "0.1.0"
