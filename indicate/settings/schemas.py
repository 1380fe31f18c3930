"""
Settings Schemas
================
Pydantic models for the tunable thresholds of the statistics engine,
the distribution comparator and the fuzzy matchers.
"""

from typing import Optional
from pydantic import BaseModel, Field


class StatisticsSettings(BaseModel):
    """Thresholds used when computing concept summaries."""
    min_rows: int = Field(10, ge=0, description="Minimum rows for a concept to be summarized")
    max_categorical_values: int = Field(50, ge=1, description="Distinct values up to which data is categorical")
    min_categorical_count: int = Field(10, ge=0, description="Minimum count for a category to be stored")
    max_stored_categories: int = Field(10, ge=1, description="Number of most frequent categories stored")
    compute_percentiles: bool = True
    batch_size: int = Field(100, ge=1, description="Concepts processed per batch")


class ComparisonWeights(BaseModel):
    """
    Blend weights of the numeric similarity score.

    The defaults were chosen empirically; they are applied as a literal
    weighted sum and are not renormalized.
    """
    quantile: float = Field(0.35, ge=0)
    cv: float = Field(0.25, ge=0)
    range: float = Field(0.25, ge=0)
    distance: float = Field(0.15, ge=0)


class SearchSettings(BaseModel):
    """Defaults of the fuzzy matchers."""
    max_distance: float = Field(3, ge=0, description="Maximum summed Levenshtein distance (in-memory)")
    min_score: float = Field(0.75, ge=0, le=1, description="Minimum Jaro-Winkler similarity (DuckDB)")
    limit: int = Field(100, ge=1, description="Maximum rows returned by the DuckDB matcher")


class IndicateSettings(BaseModel):
    """All settings of the analytical core."""
    db_path: Optional[str] = None
    statistics: StatisticsSettings = Field(default_factory=StatisticsSettings)
    comparison: ComparisonWeights = Field(default_factory=ComparisonWeights)
    search: SearchSettings = Field(default_factory=SearchSettings)
