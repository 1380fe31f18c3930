# INDICATE Comparison - Similarity Metrics
# ========================================
"""
Building blocks of the distribution comparison.

Every similarity is normalized to [0, 1], higher meaning more similar;
distribution_distance is a distance (lower is more similar). Missing
optional statistics yield the neutral value 0.5 instead of an error.
"""

import math
from typing import Iterable, Optional, Sequence

import numpy as np

from ..statistics.models import NumericStatistics

# Floor applied before any logarithm
EPSILON = 1e-10

# Neutral similarity when a metric cannot be computed
NEUTRAL_SIMILARITY = 0.5

# Quantile similarity blend: interquartile range vs 5th-95th percentile range
IQR_WEIGHT = 0.6
TAIL_WEIGHT = 0.4


def range_overlap(min1: float, max1: float, min2: float, max2: float) -> float:
    """
    Overlap of two intervals divided by their union.

    Returns 0 when the union has zero length.
    """
    overlap = max(0.0, min(max1, max2) - max(min1, min2))
    union = max(max1, max2) - min(min1, min2)
    if union == 0:
        return 0.0
    return overlap / union


def _all_present(*values: Optional[float]) -> bool:
    return all(v is not None for v in values)


def quantile_similarity(stats1: NumericStatistics, stats2: NumericStatistics) -> float:
    """Blend of IQR overlap and 5th-95th percentile overlap."""
    if not (stats1.has_percentiles and stats2.has_percentiles):
        return NEUTRAL_SIMILARITY

    iqr = range_overlap(stats1.p25, stats1.p75, stats2.p25, stats2.p75)

    if _all_present(stats1.p5, stats1.p95, stats2.p5, stats2.p95):
        tail = range_overlap(stats1.p5, stats1.p95, stats2.p5, stats2.p95)
    else:
        tail = iqr

    return iqr * IQR_WEIGHT + tail * TAIL_WEIGHT


def cv_similarity(stats1: NumericStatistics, stats2: NumericStatistics) -> float:
    """Ratio of the smaller to the larger coefficient of variation."""
    cv1 = stats1.coefficient_of_variation
    cv2 = stats2.coefficient_of_variation
    if cv1 is None or cv2 is None:
        return NEUTRAL_SIMILARITY

    larger = max(cv1, cv2)
    if larger == 0:
        return 0.0
    return min(cv1, cv2) / larger


def range_similarity(stats1: NumericStatistics, stats2: NumericStatistics) -> float:
    """Overlap of the full [min, max] ranges."""
    if not _all_present(stats1.min, stats1.max, stats2.min, stats2.max):
        return NEUTRAL_SIMILARITY
    return range_overlap(stats1.min, stats1.max, stats2.min, stats2.max)


def _position_in_range(value: Optional[float], stats: NumericStatistics) -> Optional[float]:
    """Position of a value within the distribution's own range, None if undefined."""
    if not _all_present(value, stats.min, stats.max):
        return None
    width = stats.max - stats.min
    if width == 0:
        return None
    position = (value - stats.min) / width
    return None if math.isnan(position) else position


def distribution_distance(stats1: NumericStatistics, stats2: NumericStatistics) -> float:
    """
    Distance between the normalized mean and median positions.

    The median distance falls back to the mean distance when a median is
    missing; 0.5 when the mean positions are undefined.
    """
    mean1 = _position_in_range(stats1.mean, stats1)
    mean2 = _position_in_range(stats2.mean, stats2)
    if mean1 is None or mean2 is None:
        return NEUTRAL_SIMILARITY

    mean_dist = abs(mean1 - mean2)

    median1 = _position_in_range(stats1.median, stats1)
    median2 = _position_in_range(stats2.median, stats2)
    if median1 is not None and median2 is not None:
        median_dist = abs(median1 - median2)
    else:
        median_dist = mean_dist

    return (mean_dist + median_dist) / 2


def jaccard_index(values1: Iterable, values2: Iterable) -> float:
    """Intersection over union of two value sets (0 when both are empty)."""
    set1, set2 = set(values1), set(values2)
    union = len(set1 | set2)
    return len(set1 & set2) / union if union > 0 else 0.0


def _as_probabilities(values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    total = arr.sum()
    if total <= 0:
        return np.full(arr.shape, 1.0 / arr.size) if arr.size else arr
    return arr / total


def kl_divergence(p: Sequence[float], q: Sequence[float]) -> float:
    """Kullback-Leibler divergence KL(p || q), epsilon-floored."""
    p = np.maximum(np.asarray(p, dtype=float), EPSILON)
    q = np.maximum(np.asarray(q, dtype=float), EPSILON)
    return float(np.sum(p * np.log(p / q)))


def js_divergence(p: Sequence[float], q: Sequence[float]) -> float:
    """
    Square root of the Jensen-Shannon divergence between two frequency
    vectors (renormalized to probabilities first).
    """
    p = _as_probabilities(p)
    q = _as_probabilities(q)
    m = (p + q) / 2
    js = (kl_divergence(p, m) + kl_divergence(q, m)) / 2
    return math.sqrt(max(js, 0.0))
