from collections import Counter

import pytest

from mert_scorer.scorer import Scorer
from mert_scorer.stats import ScoreArray, ScoreData, ScoreStats


class MatchScorer(Scorer):
    """
    Toy metric for tests: entry = [clipped token matches, candidate length],
    score = matches / length.
    """

    def __init__(self, config="", vocab=None, name="MATCH"):
        super().__init__(name, config, vocab)
        self.references: list[list[list[int]]] = []

    def number_of_scores(self) -> int:
        return 2

    def _load_references(self, reference_files):
        per_file = []
        for path in reference_files:
            with open(path, encoding="utf-8") as f:
                per_file.append([self.preprocess(line.rstrip("\n")) for line in f])
        self.references = [list(refs) for refs in zip(*per_file)]

    def _prepare_stats(self, sindex, text, entry):
        candidate = Counter(self.preprocess(text))
        length = sum(candidate.values())
        per_reference = []
        for reference in self.references[sindex]:
            counts = Counter(reference)
            matches = sum(min(n, counts[token]) for token, n in candidate.items())
            per_reference.append(ScoreStats([matches, length]))
        entry.set(self.regularise(per_reference).array)

    def calculate_score(self, totals) -> float:
        if totals[1] == 0:
            return 0.0
        return float(totals[0] / totals[1])


def make_table(rows):
    """Build a ScoreData from nested lists: rows -> candidates -> fields."""
    data = ScoreData()
    for row in rows:
        data.add(ScoreArray(ScoreStats(fields) for fields in row))
    return data


@pytest.fixture
def scorer():
    return MatchScorer()


@pytest.fixture
def example_data():
    # One sentence with candidates A=[3, 5] and B=[4, 5]
    return make_table([[[3, 5], [4, 5]]])


@pytest.fixture
def corpus_data():
    return make_table(
        [
            [[1, 4], [3, 4], [0, 4]],
            [[2, 2], [1, 3]],
            [[5, 10], [6, 10], [7, 10], [2, 10]],
        ]
    )


@pytest.fixture
def reference_files(tmp_path):
    ref0 = tmp_path / "ref.0"
    ref1 = tmp_path / "ref.1"
    ref0.write_text("the cat sat on the mat\na small house\n", encoding="utf-8")
    ref1.write_text("a cat is on the mat\nthe little house\n", encoding="utf-8")
    return [str(ref0), str(ref1)]
