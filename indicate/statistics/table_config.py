# INDICATE Statistics - OMOP Table Configuration
# ==============================================
"""
Registry of OMOP CDM v5.4 clinical event tables scanned by the
statistics engine.

Each entry names the concept column, the optional value columns and the
date column of one table. Only tables present in the connected database
are processed.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OMOPTableConfig:
    """Column layout of one clinical event table."""
    name: str                            # Logical domain name
    table: str                           # Physical table name
    concept_column: str
    date_column: str
    numeric_column: Optional[str] = None
    categorical_column: Optional[str] = None
    person_column: str = "person_id"

    @property
    def value_columns(self) -> Tuple[str, ...]:
        """Value columns coalesced in this order; empty for count-only tables."""
        return tuple(c for c in (self.numeric_column, self.categorical_column) if c)


OMOP_TABLE_CONFIGS: Dict[str, OMOPTableConfig] = {
    "measurement": OMOPTableConfig(
        name="measurement",
        table="measurement",
        concept_column="measurement_concept_id",
        numeric_column="value_as_number",
        categorical_column="value_as_string",
        date_column="measurement_date",
    ),
    "observation": OMOPTableConfig(
        name="observation",
        table="observation",
        concept_column="observation_concept_id",
        numeric_column="value_as_number",
        categorical_column="value_as_string",
        date_column="observation_date",
    ),
    "drug_exposure": OMOPTableConfig(
        name="drug_exposure",
        table="drug_exposure",
        concept_column="drug_concept_id",
        date_column="drug_exposure_start_date",
    ),
    "condition_occurrence": OMOPTableConfig(
        name="condition_occurrence",
        table="condition_occurrence",
        concept_column="condition_concept_id",
        date_column="condition_start_date",
    ),
    "procedure_occurrence": OMOPTableConfig(
        name="procedure_occurrence",
        table="procedure_occurrence",
        concept_column="procedure_concept_id",
        date_column="procedure_date",
    ),
    "device_exposure": OMOPTableConfig(
        name="device_exposure",
        table="device_exposure",
        concept_column="device_concept_id",
        date_column="device_exposure_start_date",
    ),
    "specimen": OMOPTableConfig(
        name="specimen",
        table="specimen",
        concept_column="specimen_concept_id",
        date_column="specimen_date",
    ),
}


def get_omop_table_configs(tables: Optional[Iterable[str]] = None) -> Dict[str, OMOPTableConfig]:
    """
    Get table configurations, optionally restricted to some domains.

    Args:
        tables: Domain names to keep (default: all registered tables)

    Returns:
        Dict mapping domain name to OMOPTableConfig, in registry order
    """
    if tables is None:
        return dict(OMOP_TABLE_CONFIGS)

    requested = {t.lower() for t in tables}
    unknown = requested - set(OMOP_TABLE_CONFIGS)
    if unknown:
        logger.warning(f"Ignoring unknown OMOP tables: {', '.join(sorted(unknown))}")

    return {name: cfg for name, cfg in OMOP_TABLE_CONFIGS.items() if name in requested}
