# src/casecorr/scoring/scorer.py

import logging
from typing import Dict, Iterable, List, Optional

from casecorr.normalize.schema import CorrelationResult

logger = logging.getLogger(__name__)


def clamp_score(value: int, low: int = 0, high: int = 100) -> int:
    """Clamp a raw score into [low, high]."""
    return max(low, min(high, int(value)))


class ScoreCard:
    """
    Accumulates weighted contributions for one comparison.

    Contributions are summed, never averaged; each one carries a reason token
    and, optionally, the values that produced it.
    """

    def __init__(self, max_score: int = 100):
        """
        Initialize an empty score card.

        Args:
            max_score: Ceiling applied by `total`
        """
        self.max_score = max_score
        self._raw_total = 0
        self._reasons: List[str] = []
        self._shared: Dict[str, List[str]] = {}

    def add(self, kind: str, weight: int, values: Optional[List[str]] = None) -> None:
        """
        Record one matched rule.

        Args:
            kind: Reason token / field kind (e.g. "email", "name_partial")
            weight: Points contributed by this rule
            values: Matched values kept for audit
        """
        self._raw_total += weight
        if kind not in self._reasons:
            self._reasons.append(kind)
        if values:
            self._shared.setdefault(kind, []).extend(values)

    @property
    def raw_total(self) -> int:
        return self._raw_total

    @property
    def total(self) -> int:
        return clamp_score(self._raw_total, 0, self.max_score)

    @property
    def reasons(self) -> List[str]:
        return list(self._reasons)

    @property
    def reason(self) -> str:
        return ",".join(self._reasons)

    @property
    def kinds(self) -> int:
        return len(self._reasons)

    @property
    def shared(self) -> Dict[str, List[str]]:
        return {kind: list(values) for kind, values in self._shared.items()}

    def __bool__(self) -> bool:
        return bool(self._reasons)


def rank_correlations(
    results: Iterable[CorrelationResult], min_score: int = 0
) -> List[CorrelationResult]:
    """
    Rank correlation results by confidence, strongest first.

    Args:
        results: Results from CorrelationEngine
        min_score: Keep only results scoring strictly above this value

    Returns:
        Stable-sorted list of results.
    """
    kept = [result for result in results if result.confidence_score > min_score]
    kept.sort(key=lambda result: result.confidence_score, reverse=True)
    return kept
