import numpy as np
import pytest

from mert_scorer.errors import ConfigurationError, RegularisationError, StatsShapeError
from mert_scorer.regularisation import (
    RegularisationStrategy,
    regularise,
    score_average,
    score_max,
    score_min,
)
from mert_scorer.stats import ScoreStats


@pytest.mark.parametrize(
    "first, second",
    [
        ([3, 5], [4, 5]),
        ([0, 10, 2.5], [7, 1, 2.5]),
        ([-1.5], [2.0]),
    ],
)
def test_min_average_max_ordering(first, second):
    entries = np.array([first, second], dtype=float)
    low = score_min(entries, 0, 2)
    mid = score_average(entries, 0, 2)
    high = score_max(entries, 0, 2)
    assert np.all(low <= mid)
    assert np.all(mid <= high)


def test_scalar_scores():
    scores = [0.2, 0.8, 0.5, 0.1]
    assert score_min(scores, 0, 3) == pytest.approx(0.2)
    assert score_average(scores, 1, 3) == pytest.approx(0.65)
    assert score_max(scores, 2, 4) == pytest.approx(0.5)


@pytest.mark.parametrize("fold", [score_min, score_average, score_max])
def test_empty_range_raises(fold):
    with pytest.raises(RegularisationError):
        fold([1.0, 2.0], 1, 1)


def test_range_outside_scores():
    with pytest.raises(IndexError):
        score_average([1.0, 2.0], 0, 3)


class TestRegularise:
    def test_minimum(self):
        folded = regularise(
            [ScoreStats([4, 4]), ScoreStats([2, 4])], RegularisationStrategy.MINIMUM
        )
        assert folded == ScoreStats([2, 4])

    def test_average(self):
        folded = regularise(
            [ScoreStats([4, 4]), ScoreStats([2, 4])], RegularisationStrategy.AVERAGE
        )
        assert folded == ScoreStats([3, 4])

    def test_none_with_single_reference(self):
        entry = ScoreStats([1, 2])
        assert regularise([entry], RegularisationStrategy.NONE) == entry

    def test_none_with_many_references(self):
        with pytest.raises(RegularisationError):
            regularise([ScoreStats([1]), ScoreStats([2])], RegularisationStrategy.NONE)

    @pytest.mark.parametrize("strategy", list(RegularisationStrategy))
    def test_zero_references(self, strategy):
        with pytest.raises(RegularisationError):
            regularise([], strategy)

    def test_width_mismatch(self):
        with pytest.raises(StatsShapeError):
            regularise([ScoreStats([1, 2]), ScoreStats([1])], RegularisationStrategy.AVERAGE)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("none", RegularisationStrategy.NONE),
        ("Average", RegularisationStrategy.AVERAGE),
        (" MINIMUM ", RegularisationStrategy.MINIMUM),
    ],
)
def test_strategy_from_string(value, expected):
    assert RegularisationStrategy.from_string(value) is expected


def test_unknown_strategy():
    with pytest.raises(ConfigurationError):
        RegularisationStrategy.from_string("median")
