# INDICATE Comparison - Distribution Comparator
# =============================================
"""
Scores the similarity of two concept summaries to recommend concept
alignments.

Numeric summaries are compared on quantile overlap, coefficient of
variation, range overlap and the relative position of mean and median.
Categorical summaries are compared on their value sets (Jaccard) and on
the frequencies of the values they share (Jensen-Shannon). Summaries of
different kinds are never compared: they get a fixed low score.

Example:
    result = compare_distributions(summary_json_1, summary_json_2)
    print(result.overall_score)
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

import pandas as pd

from ..settings.schemas import ComparisonWeights
from ..statistics.models import (
    ConceptStatisticalSummary,
    DataType,
    NumericStatistics,
    SummaryParseError,
)
from .metrics import (
    NEUTRAL_SIMILARITY,
    cv_similarity,
    distribution_distance,
    jaccard_index,
    js_divergence,
    quantile_similarity,
    range_similarity,
)

logger = logging.getLogger(__name__)


SummaryInput = Union[str, bytes, Dict[str, Any], ConceptStatisticalSummary]
WeightsInput = Optional[Union[ComparisonWeights, Mapping[str, float]]]

# Returned for summaries of different data types
INCOMPARABLE_SCORE = 0.1
INCOMPARABLE_DISTANCE = 1.0
INCOMPARABLE_MESSAGE = "Different data types"
COUNT_ONLY_MESSAGE = "Count-only summaries"

SCORE_DIGITS = 3


@dataclass
class SimilarityResult:
    """Similarity of two summaries; component scores depend on the data type."""
    overall_score: float
    quantile_similarity: Optional[float] = None
    cv_similarity: Optional[float] = None
    range_similarity: Optional[float] = None
    categorical_similarity: Optional[float] = None
    frequency_similarity: Optional[float] = None
    distribution_distance: Optional[float] = None
    message: Optional[str] = None

    @property
    def is_comparable(self) -> bool:
        return self.message != INCOMPARABLE_MESSAGE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AlignmentCandidate:
    """A candidate concept ranked against a source concept."""
    concept_id: int
    result: SimilarityResult
    table_name: Optional[str] = None

    @property
    def score(self) -> float:
        return self.result.overall_score

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concept_id": self.concept_id,
            "table_name": self.table_name,
            **self.result.to_dict(),
        }


def _resolve_weights(weights: WeightsInput) -> ComparisonWeights:
    if weights is None:
        return ComparisonWeights()
    if isinstance(weights, ComparisonWeights):
        return weights
    # Keys not supplied keep their default weight
    return ComparisonWeights.model_validate(dict(weights))


def _round(value: float) -> float:
    return round(value, SCORE_DIGITS)


def incomparable_result() -> SimilarityResult:
    """Sentinel for summaries of different data types."""
    return SimilarityResult(
        overall_score=INCOMPARABLE_SCORE,
        distribution_distance=INCOMPARABLE_DISTANCE,
        message=INCOMPARABLE_MESSAGE,
    )


def compare_categorical(
    summary1: ConceptStatisticalSummary,
    summary2: ConceptStatisticalSummary,
) -> SimilarityResult:
    """Compare two categorical summaries."""
    freq1 = {pv.value: pv.percent for pv in summary1.possible_values}
    freq2 = {pv.value: pv.percent for pv in summary2.possible_values}

    jaccard = jaccard_index(freq1, freq2)

    # Preserve the order of the first summary for the common values
    common = [value for value in freq1 if value in freq2]
    if common:
        frequency = 1 - js_divergence(
            [freq1[v] for v in common],
            [freq2[v] for v in common],
        )
    else:
        frequency = 0.0

    overall = (jaccard + frequency) / 2

    return SimilarityResult(
        overall_score=_round(overall),
        categorical_similarity=_round(jaccard),
        frequency_similarity=_round(frequency),
        distribution_distance=_round(1 - overall),
    )


def compare_numeric(
    stats1: NumericStatistics,
    stats2: NumericStatistics,
    weights: WeightsInput = None,
) -> SimilarityResult:
    """Compare two numeric distributions with a weighted blend of metrics."""
    w = _resolve_weights(weights)

    quantile = quantile_similarity(stats1, stats2)
    cv = cv_similarity(stats1, stats2)
    value_range = range_similarity(stats1, stats2)
    distance = distribution_distance(stats1, stats2)

    overall = (
        quantile * w.quantile
        + cv * w.cv
        + value_range * w.range
        + (1 - distance) * w.distance
    )

    return SimilarityResult(
        overall_score=_round(overall),
        quantile_similarity=_round(quantile),
        cv_similarity=_round(cv),
        range_similarity=_round(value_range),
        distribution_distance=_round(distance),
    )


def compare_distributions(
    summary1: SummaryInput,
    summary2: SummaryInput,
    weights: WeightsInput = None,
) -> SimilarityResult:
    """
    Compute similarity metrics between two statistical summaries.

    Args:
        summary1: Summary of concept 1 (JSON string, dict or model)
        summary2: Summary of concept 2 (JSON string, dict or model)
        weights: Numeric blend weights (quantile, cv, range, distance);
            missing keys keep their defaults, the sum is not renormalized

    Returns:
        SimilarityResult (overall_score in [0, 1], higher = more similar)

    Raises:
        SummaryParseError: If a summary cannot be parsed
    """
    s1 = ConceptStatisticalSummary.from_json(summary1)
    s2 = ConceptStatisticalSummary.from_json(summary2)

    if s1.data_type is not s2.data_type:
        return incomparable_result()

    if s1.data_type is DataType.CATEGORICAL:
        return compare_categorical(s1, s2)
    elif s1.data_type is DataType.NUMERIC:
        return compare_numeric(
            s1.statistical_data or NumericStatistics(),
            s2.statistical_data or NumericStatistics(),
            weights,
        )
    elif s1.data_type is DataType.COUNT:
        return SimilarityResult(
            overall_score=NEUTRAL_SIMILARITY,
            distribution_distance=NEUTRAL_SIMILARITY,
            message=COUNT_ONLY_MESSAGE,
        )

    raise ValueError(f"Unsupported data type: {s1.data_type}")


def _iter_candidates(candidates: Union[Mapping[int, SummaryInput], pd.DataFrame]):
    if isinstance(candidates, pd.DataFrame):
        has_table = "table_name" in candidates.columns
        for row in candidates.itertuples(index=False):
            yield (
                int(row.concept_id),
                row.statistical_summary_json,
                row.table_name if has_table else None,
            )
    else:
        for concept_id, summary in candidates.items():
            yield int(concept_id), summary, None


def rank_alignment_candidates(
    source: SummaryInput,
    candidates: Union[Mapping[int, SummaryInput], pd.DataFrame],
    top_k: int = 10,
    min_score: float = 0.0,
    weights: WeightsInput = None,
    source_concept_id: Optional[int] = None,
) -> List[AlignmentCandidate]:
    """
    Rank candidate concepts by distribution similarity to a source concept.

    Args:
        source: Summary of the source concept
        candidates: {concept_id: summary} or a batch result DataFrame
            (concept_id, statistical_summary_json, optional table_name)
        top_k: Number of candidates to keep
        min_score: Minimum overall score to keep a candidate
        weights: Numeric blend weights
        source_concept_id: Skipped when present among the candidates

    Returns:
        Candidates sorted by descending overall score (ties by concept id)
    """
    source_summary = ConceptStatisticalSummary.from_json(source)
    if source_summary.is_empty:
        logger.info("Source summary has no data; no alignment candidates")
        return []

    ranked: List[AlignmentCandidate] = []
    skipped = 0

    for concept_id, summary, table_name in _iter_candidates(candidates):
        if source_concept_id is not None and concept_id == source_concept_id:
            continue

        try:
            candidate = ConceptStatisticalSummary.from_json(summary)
        except SummaryParseError as e:
            logger.warning(f"Skipping concept {concept_id}: {e}")
            skipped += 1
            continue

        if candidate.is_empty:
            continue

        result = compare_distributions(source_summary, candidate, weights)
        if result.overall_score >= min_score:
            ranked.append(AlignmentCandidate(concept_id, result, table_name))

    if skipped:
        logger.info(f"Skipped {skipped} candidates with unreadable summaries")

    ranked.sort(key=lambda c: (-c.score, c.concept_id))
    return ranked[:top_k]
