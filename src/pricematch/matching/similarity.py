"""Pluggable title similarity scoring.

The matcher only needs ``score(a, b) -> float`` in [0, 1]; any object with
that method can replace the default scorer.
"""

from difflib import SequenceMatcher
from typing import AbstractSet, Protocol, Tuple

from ..config.rules import SCORER_WEIGHTS


class SimilarityScorer(Protocol):
    def score(self, a: AbstractSet[str], b: AbstractSet[str]) -> float:
        ...


def jaccard(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    if not a and not b:
        return 1.0
    union = a | b
    return len(a & b) / len(union) if union else 0.0


def sequence_ratio(a: AbstractSet[str], b: AbstractSet[str]) -> float:
    """Edit-style ratio over the sorted token strings, so word order is ignored."""
    left = " ".join(sorted(a))
    right = " ".join(sorted(b))
    if not left and not right:
        return 1.0
    return SequenceMatcher(None, left, right, autojunk=False).ratio()


class TokenSetScorer:
    """Weighted blend of token overlap and character-level sequence ratio."""

    def __init__(self, weights: Tuple[float, float] = SCORER_WEIGHTS):
        overlap_w, sequence_w = weights
        total = overlap_w + sequence_w
        if total <= 0:
            raise ValueError("scorer weights must sum to a positive value")
        self.overlap_weight = overlap_w / total
        self.sequence_weight = sequence_w / total

    def score(self, a: AbstractSet[str], b: AbstractSet[str]) -> float:
        if a == b:
            return 1.0
        value = (self.overlap_weight * jaccard(a, b)
                 + self.sequence_weight * sequence_ratio(a, b))
        return round(min(max(value, 0.0), 1.0), 6)
