# src/casecorr/scoring/__init__.py

"""
Score aggregation for casecorr.
Weighted-sum accumulation, clamping and ranking shared by matching and correlation.
"""

from .scorer import ScoreCard, clamp_score, rank_correlations

__all__ = [
    "ScoreCard",
    "clamp_score",
    "rank_correlations",
]
