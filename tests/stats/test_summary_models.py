# Tests for Statistical Summary Models
# ====================================

import json
import math

import pytest

import sys
from pathlib import Path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from indicate.statistics.models import (
    CategoryFrequency,
    ConceptStatisticalSummary,
    DataType,
    NumericStatistics,
    SummaryParseError,
    parse_numeric_or_skip,
    round_or_none,
)


NUMERIC_SUMMARY = {
    "data_types": ["numeric"],
    "rows_count": 120,
    "rows_percent": 12.5,
    "patients_count": 40,
    "patients_percent": 8.0,
    "measurement_density": 3.0,
    "date_range": {"min": "2020-01-01", "max": "2020-12-31"},
    "statistical_data": {
        "min": 1.0, "max": 20.0, "mean": 10.0, "median": 9.5, "sd": 4.2,
        "coefficient_of_variation": 0.42,
        "p5": 2.0, "p25": 6.0, "p75": 14.0, "p95": 19.0,
    },
    "possible_values": [],
}


class TestNullTemplate:
    """Summary of a concept without usable rows."""

    def test_null_template_is_empty(self):
        """Test that the null template reports no data."""
        summary = ConceptStatisticalSummary.null_template()
        assert summary.is_empty
        assert summary.data_type is DataType.NUMERIC
        assert summary.rows_count is None

    def test_null_template_keeps_every_key(self):
        """Test that absent values are serialized as explicit nulls."""
        data = json.loads(ConceptStatisticalSummary.null_template().to_json())

        assert data["data_types"] == ["numeric"]
        assert data["rows_count"] is None
        assert data["date_range"] == {"min": None, "max": None}
        assert data["possible_values"] == []
        assert set(data["statistical_data"]) == {
            "min", "max", "mean", "median", "sd", "coefficient_of_variation",
            "p5", "p25", "p75", "p95",
        }
        assert all(v is None for v in data["statistical_data"].values())

    def test_to_json_is_compact(self):
        """Test that JSON output has no extra whitespace."""
        text = ConceptStatisticalSummary.null_template().to_json()
        assert '"data_types":["numeric"]' in text
        assert ", " not in text


class TestSerialization:
    """Canonical JSON shape of populated summaries."""

    def test_numeric_summary_serializes_data_type_as_list(self):
        """Test the one-element data_types list."""
        summary = ConceptStatisticalSummary.from_json(NUMERIC_SUMMARY)
        assert summary.to_dict()["data_types"] == ["numeric"]

    def test_parse_back_gives_equal_record(self):
        """Test that a serialized summary parses back to an equal record."""
        summary = ConceptStatisticalSummary.from_json(NUMERIC_SUMMARY)
        assert ConceptStatisticalSummary.from_json(summary.to_json()) == summary

    def test_count_summary_has_empty_statistical_data(self):
        """Test that a count-only summary writes {} for statistical_data."""
        summary = ConceptStatisticalSummary(data_types=DataType.COUNT, rows_count=15)
        data = summary.to_dict()
        assert data["data_types"] == ["count"]
        assert data["statistical_data"] == {}
        assert data["possible_values"] == []
        assert not summary.is_empty

    def test_categorical_summary(self):
        """Test a categorical summary with its frequency table."""
        summary = ConceptStatisticalSummary(
            data_types=DataType.CATEGORICAL,
            rows_count=50,
            possible_values=[
                CategoryFrequency(value="Positive", count=30, percent=60.0),
                CategoryFrequency(value="Negative", count=20, percent=40.0),
            ],
        )
        data = summary.to_dict()
        assert data["statistical_data"] == {}
        assert data["possible_values"][0] == {"value": "Positive", "count": 30, "percent": 60.0}


class TestParsing:
    """Parsing summaries from JSON text and dictionaries."""

    def test_accepts_plain_string_data_type(self):
        """Test that a bare data type string is accepted."""
        summary = ConceptStatisticalSummary.from_json({"data_types": "categorical"})
        assert summary.data_type is DataType.CATEGORICAL

    def test_accepts_bytes(self):
        """Test parsing from bytes."""
        summary = ConceptStatisticalSummary.from_json(json.dumps(NUMERIC_SUMMARY).encode())
        assert summary.statistical_data.median == 9.5

    def test_accepts_cv_alias(self):
        """Test that "cv" is read as the coefficient of variation."""
        summary = ConceptStatisticalSummary.from_json({
            "data_types": ["numeric"],
            "statistical_data": {"min": 1, "max": 3, "mean": 2, "cv": 0.5},
        })
        assert summary.statistical_data.coefficient_of_variation == 0.5

    def test_empty_statistical_data_becomes_none(self):
        """Test that {} and [] mean no statistics."""
        for empty in ({}, []):
            summary = ConceptStatisticalSummary.from_json({
                "data_types": ["count"],
                "statistical_data": empty,
            })
            assert summary.statistical_data is None

    def test_null_possible_values(self):
        """Test that null possible_values is read as an empty list."""
        summary = ConceptStatisticalSummary.from_json({
            "data_types": ["categorical"],
            "possible_values": None,
        })
        assert summary.possible_values == []

    def test_existing_summary_is_returned_unchanged(self):
        """Test that a parsed summary passes through."""
        summary = ConceptStatisticalSummary.null_template()
        assert ConceptStatisticalSummary.from_json(summary) is summary

    def test_malformed_json(self):
        """Test that malformed JSON raises SummaryParseError."""
        with pytest.raises(SummaryParseError, match="malformed JSON"):
            ConceptStatisticalSummary.from_json("{not json")

    def test_non_object_json(self):
        """Test that a JSON array is rejected."""
        with pytest.raises(SummaryParseError):
            ConceptStatisticalSummary.from_json("[1, 2, 3]")

    def test_unknown_data_type(self):
        """Test that an unknown data type is rejected."""
        with pytest.raises(SummaryParseError):
            ConceptStatisticalSummary.from_json({"data_types": ["text"]})

    def test_several_data_types(self):
        """Test that more than one data type tag is rejected."""
        with pytest.raises(SummaryParseError):
            ConceptStatisticalSummary.from_json({"data_types": ["numeric", "categorical"]})

    def test_payload_must_match_data_type(self):
        """Test that a categorical summary cannot carry numeric statistics."""
        with pytest.raises(SummaryParseError):
            ConceptStatisticalSummary.from_json({
                "data_types": ["categorical"],
                "statistical_data": {"mean": 5.0},
            })

    def test_numeric_cannot_carry_categories(self):
        """Test that a numeric summary cannot carry possible_values."""
        with pytest.raises(SummaryParseError):
            ConceptStatisticalSummary.from_json({
                "data_types": ["numeric"],
                "possible_values": [{"value": "a", "count": 1, "percent": 100}],
            })

    def test_percent_out_of_bounds(self):
        """Test that percentages above 100 are rejected."""
        with pytest.raises(SummaryParseError):
            ConceptStatisticalSummary.from_json({"data_types": ["count"], "rows_percent": 120})


class TestNumericStatistics:
    """NumericStatistics helpers."""

    def test_has_values(self):
        """Test has_values and has_percentiles."""
        assert not NumericStatistics().has_values
        stats = NumericStatistics(mean=1.0)
        assert stats.has_values
        assert not stats.has_percentiles
        assert NumericStatistics(p25=1.0, p75=2.0).has_percentiles

    def test_category_value_coerced_to_text(self):
        """Test that category values are stored as strings."""
        assert CategoryFrequency(value=5, count=3, percent=10.0).value == "5"


class TestParseNumeric:
    """parse_numeric_or_skip coercion rules."""

    @pytest.mark.parametrize("raw,expected", [
        (3, 3.0),
        ("4.5", 4.5),
        (" 7 ", 7.0),
        ("-1e3", -1000.0),
    ])
    def test_coercible_values(self, raw, expected):
        """Test values that coerce to floats."""
        assert parse_numeric_or_skip(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", True, float("nan"), float("inf"), "NaN"])
    def test_skipped_values(self, raw):
        """Test values that are skipped."""
        assert parse_numeric_or_skip(raw) is None

    def test_round_or_none(self):
        """Test rounding helper."""
        assert round_or_none(1.23456) == 1.23
        assert round_or_none(1.23456, 3) == 1.235
        assert round_or_none(None) is None
        assert round_or_none(math.nan) is None
