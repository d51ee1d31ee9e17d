"""
Regularisation strategies for sentences with several references.

Each reference yields its own statistics entry for a candidate. Before the
entries are aggregated over the corpus they are folded into one entry per
candidate, either by element-wise minimum or by element-wise mean.

The folding helpers are pure functions over ``scores[start:end]`` along the
first axis: a 1-D array of scores folds to a scalar, a 2-D array of entries
(one per row) folds element-wise to a single entry.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from mert_scorer.errors import ConfigurationError, RegularisationError, StatsShapeError
from mert_scorer.stats import STATS_DTYPE, ScoreStats

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray


class RegularisationStrategy(Enum):
    NONE = "none"
    AVERAGE = "average"
    MINIMUM = "minimum"

    @classmethod
    def from_string(cls, value: str) -> "RegularisationStrategy":
        name = value.strip().lower()
        for strategy in cls:
            if strategy.value == name:
                return strategy
        choices = ", ".join(strategy.value for strategy in cls)
        raise ConfigurationError(
            f"Unknown regularisation type '{value}' (expected one of: {choices})"
        )


def _window(scores: ArrayLike, start: int, end: int) -> NDArray[np.float64]:
    array = np.asarray(scores, dtype=STATS_DTYPE)
    if start < 0 or end > array.shape[0]:
        raise IndexError(f"Range [{start}, {end}) outside of {array.shape[0]} scores")
    if end - start < 1:
        raise RegularisationError(f"Cannot fold an empty range [{start}, {end})")
    return array[start:end]


def score_min(scores: ArrayLike, start: int, end: int) -> NDArray[np.float64] | float:
    """Element-wise minimum of scores[start:end]."""
    result = np.min(_window(scores, start, end), axis=0)
    return float(result) if np.ndim(result) == 0 else result


def score_max(scores: ArrayLike, start: int, end: int) -> NDArray[np.float64] | float:
    """Element-wise maximum of scores[start:end]."""
    result = np.max(_window(scores, start, end), axis=0)
    return float(result) if np.ndim(result) == 0 else result


def score_average(scores: ArrayLike, start: int, end: int) -> NDArray[np.float64] | float:
    """Element-wise arithmetic mean of scores[start:end]."""
    result = np.mean(_window(scores, start, end), axis=0)
    return float(result) if np.ndim(result) == 0 else result


def regularise(
    entries: Sequence[ScoreStats], strategy: RegularisationStrategy
) -> ScoreStats:
    """
    Fold per-reference entries of one candidate into a single entry.

    Args:
        entries: One entry per reference, all of the same width.
        strategy: How to fold them.

    Returns:
        The folded entry.
    """
    if not entries:
        raise RegularisationError("No reference statistics to regularise")

    width = entries[0].size()
    for entry in entries[1:]:
        if entry.size() != width:
            raise StatsShapeError(
                f"Reference statistics width mismatch: expected {width}, got {entry.size()}"
            )

    if strategy is RegularisationStrategy.NONE:
        if len(entries) != 1:
            raise RegularisationError(
                f"Got {len(entries)} reference entries but no regularisation strategy is configured"
            )
        return entries[0].copy()

    matrix = np.vstack([entry.array for entry in entries]).reshape(len(entries), width)
    if strategy is RegularisationStrategy.MINIMUM:
        return ScoreStats(score_min(matrix, 0, len(entries)))
    return ScoreStats(score_average(matrix, 0, len(entries)))
