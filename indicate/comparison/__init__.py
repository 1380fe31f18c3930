# INDICATE Comparison Module
# ==========================
"""
Distribution Comparator

Scores the similarity of two concept summaries (numeric or categorical)
and ranks alignment candidates for a source concept.
"""

from .metrics import (
    range_overlap,
    quantile_similarity,
    cv_similarity,
    range_similarity,
    distribution_distance,
    jaccard_index,
    kl_divergence,
    js_divergence,
)

from .comparator import (
    INCOMPARABLE_SCORE,
    SimilarityResult,
    AlignmentCandidate,
    compare_distributions,
    rank_alignment_candidates,
)


__all__ = [
    # Metrics
    "range_overlap",
    "quantile_similarity",
    "cv_similarity",
    "range_similarity",
    "distribution_distance",
    "jaccard_index",
    "kl_divergence",
    "js_divergence",

    # Comparator
    "INCOMPARABLE_SCORE",
    "SimilarityResult",
    "AlignmentCandidate",
    "compare_distributions",
    "rank_alignment_candidates",
]
