# INDICATE Statistics - Summary Models
# ====================================
"""
Typed records for per-concept statistical summaries.

A summary is persisted by the curation application as an opaque JSON blob,
so the serialized shape is fixed: every key is always present and absent
numeric values are written as an explicit null.

Example:
    summary = ConceptStatisticalSummary.from_json(blob)
    if summary.is_empty:
        ...  # no data for this concept, not a failure
"""

import json
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_serializer,
    field_validator,
    model_validator,
)


class StatisticsError(Exception):
    """Base exception for the statistics engine."""
    pass


class SummaryParseError(StatisticsError):
    """Raised when a serialized summary cannot be parsed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid statistical summary: {reason}")


class DataType(str, Enum):
    """Kind of values recorded for a concept."""
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    COUNT = "count"       # No value column, occurrences only


class DateRange(BaseModel):
    """First and last observation dates (ISO strings)."""
    min: Optional[str] = None
    max: Optional[str] = None


class NumericStatistics(BaseModel):
    """Descriptive statistics of a numeric concept."""
    model_config = ConfigDict(populate_by_name=True)

    min: Optional[float] = None
    max: Optional[float] = None
    mean: Optional[float] = None
    median: Optional[float] = None
    sd: Optional[float] = None
    # Stored as "cv" by earlier exports
    coefficient_of_variation: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("coefficient_of_variation", "cv"),
    )
    p5: Optional[float] = None
    p25: Optional[float] = None
    p75: Optional[float] = None
    p95: Optional[float] = None

    @property
    def has_values(self) -> bool:
        """True if any location or spread statistic is present."""
        return any(
            v is not None
            for v in (self.min, self.max, self.mean, self.median, self.p25, self.p75)
        )

    @property
    def has_percentiles(self) -> bool:
        return self.p25 is not None and self.p75 is not None


class CategoryFrequency(BaseModel):
    """One entry of a categorical frequency table."""
    value: str
    count: int
    percent: float

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, v: Any) -> str:
        return v if isinstance(v, str) else str(v)


class ConceptStatisticalSummary(BaseModel):
    """
    Statistical summary of one concept in one clinical event table.

    Exactly one of ``statistical_data`` / ``possible_values`` carries data,
    matching ``data_types``; count-only summaries carry neither.
    """

    data_types: DataType
    rows_count: Optional[int] = None
    rows_percent: Optional[float] = Field(default=None, ge=0, le=100)
    patients_count: Optional[int] = None
    patients_percent: Optional[float] = Field(default=None, ge=0, le=100)
    measurement_density: Optional[float] = None
    date_range: DateRange = Field(default_factory=DateRange)
    statistical_data: Optional[NumericStatistics] = None
    possible_values: List[CategoryFrequency] = Field(default_factory=list)

    @field_validator("data_types", mode="before")
    @classmethod
    def _unbox_data_type(cls, v: Any) -> Any:
        # Serialized as a one-element list
        if isinstance(v, (list, tuple)):
            if len(v) != 1:
                raise ValueError(f"expected exactly one data type tag, got {list(v)}")
            return v[0]
        return v

    @field_validator("statistical_data", mode="before")
    @classmethod
    def _empty_statistics(cls, v: Any) -> Any:
        if v is None or (isinstance(v, (dict, list)) and len(v) == 0):
            return None
        return v

    @field_validator("possible_values", mode="before")
    @classmethod
    def _empty_values(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("date_range", mode="before")
    @classmethod
    def _empty_date_range(cls, v: Any) -> Any:
        return {} if v is None or v == [] else v

    @model_validator(mode="after")
    def _check_payload_matches_type(self) -> "ConceptStatisticalSummary":
        has_stats = self.statistical_data is not None and self.statistical_data.has_values
        if self.data_types is DataType.NUMERIC:
            if self.possible_values:
                raise ValueError("numeric summary cannot carry possible_values")
        elif self.data_types is DataType.CATEGORICAL:
            if has_stats:
                raise ValueError("categorical summary cannot carry statistical_data")
        else:
            if has_stats or self.possible_values:
                raise ValueError("count summary carries neither statistical_data nor possible_values")
        return self

    @field_serializer("data_types")
    def _serialize_data_type(self, v: DataType) -> List[str]:
        return [v.value]

    @field_serializer("statistical_data")
    def _serialize_statistics(self, v: Optional[NumericStatistics]) -> Dict[str, Any]:
        return v.model_dump() if v is not None else {}

    @property
    def data_type(self) -> DataType:
        return self.data_types

    @property
    def is_empty(self) -> bool:
        """True for the null template: no rows were found for the concept."""
        has_stats = self.statistical_data is not None and self.statistical_data.has_values
        return self.rows_count is None and not has_stats and not self.possible_values

    @classmethod
    def null_template(cls) -> "ConceptStatisticalSummary":
        """Canonical summary for a concept without usable rows."""
        return cls(
            data_types=DataType.NUMERIC,
            statistical_data=NumericStatistics(),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the canonical JSON-compatible dictionary."""
        return self.model_dump(mode="json")

    def to_json(self) -> str:
        """Serialize to compact canonical JSON."""
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(
        cls,
        payload: Union[str, bytes, Dict[str, Any], "ConceptStatisticalSummary"],
    ) -> "ConceptStatisticalSummary":
        """
        Parse a summary from JSON text, a dictionary or an existing summary.

        Raises:
            SummaryParseError: If the payload is not a valid summary
        """
        if isinstance(payload, cls):
            return payload

        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as e:
                raise SummaryParseError(f"malformed JSON ({e})") from e

        if not isinstance(payload, dict):
            raise SummaryParseError(f"expected a JSON object, got {type(payload).__name__}")

        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise SummaryParseError(str(e)) from e


def parse_numeric_or_skip(value: Any) -> Optional[float]:
    """
    Coerce a raw value to a finite float.

    Returns None instead of raising when the value cannot be coerced
    (empty strings, free text, booleans, NaN and infinities); callers drop
    those entries.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None

    try:
        number = float(value)
    except (TypeError, ValueError):
        return None

    if not math.isfinite(number):
        return None
    return number


def round_or_none(value: Optional[float], digits: int = 2) -> Optional[float]:
    """Round a value, passing None and non-finite values through as None."""
    if value is None:
        return None
    value = float(value)
    if not math.isfinite(value):
        return None
    return round(value, digits)
