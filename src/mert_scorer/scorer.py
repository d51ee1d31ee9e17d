"""
Abstract scorer used inside the tuning loop.

A concrete metric subclasses Scorer and supplies four things:
1. number_of_scores() - width of its sufficient-statistics entries
2. _load_references() - how to read reference files
3. _prepare_stats() - how to turn a candidate into an entry
4. calculate_score() - the formula from aggregated statistics to a scalar

Everything else is shared: configuration, preprocessing, multi-reference
regularisation, and the two-phase scoring protocol.

Scoring protocol:
    Phase A, ``score(candidates)``: sum the selected entry of every sentence
    and apply the metric formula.

    Phase B, ``score_diffs(candidates, diffs)``: emit the phase A score, then
    apply each (sentence, candidate) diff in order to a running total, so a
    trajectory of D diffs costs D row updates instead of D corpus passes.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import TYPE_CHECKING

import numpy as np

from mert_scorer.errors import (
    ConfigurationError,
    ReferencesNotSetError,
    ScoreDataNotLoadedError,
    StatsShapeError,
)
from mert_scorer.preprocess import (
    DEFAULT_FACTOR_DELIMITER,
    DEFAULT_FILTER_TIMEOUT,
    PreProcessFilter,
    apply_factors,
    parse_factors,
    tokenize,
)
from mert_scorer.regularisation import RegularisationStrategy, regularise
from mert_scorer.stats import STATS_DTYPE, ScoreData, ScoreStats
from mert_scorer.vocabulary import Vocabulary

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

Candidates = Sequence[int]
Diff = tuple[int, int]

_TRUE_VALUES = {"true", "yes", "1", "on"}
_FALSE_VALUES = {"false", "no", "0", "off"}


def parse_config(config: str | Mapping[str, str] | None) -> Mapping[str, str]:
    """
    Parses scorer configuration into an immutable mapping.

    Args:
        config: Either a mapping or a string of ``key:value`` items separated
            by commas, e.g. ``"case:false,factors:0|2"``.

    Returns:
        A read-only mapping of option names to string values.
    """
    if config is None:
        return MappingProxyType({})
    if isinstance(config, Mapping):
        return MappingProxyType({str(key): str(value) for key, value in config.items()})

    options: dict[str, str] = {}
    for item in config.split(","):
        if not item.strip():
            continue
        key, sep, value = item.partition(":")
        key = key.strip()
        if not sep or not key:
            raise ConfigurationError(f"Malformed config item '{item}' (expected key:value)")
        options[key] = value.strip()
    return MappingProxyType(options)


def parse_bool(value: str, key: str) -> bool:
    """
    Parses a boolean-like config value (true/false, yes/no, 1/0, on/off).

    Args:
        value: Raw config value.
        key: Option name, used in the error message.

    Returns:
        The parsed flag.
    """
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"Config '{key}' expects a boolean, got '{value}'")


class Scorer(ABC):
    """
    Superclass of all scorers.

    Args:
        name: Metric name, e.g. "BLEU".
        config: Configuration mapping or ``key:value,...`` string.
        vocab: Vocabulary shared with other scorers. A private one is created
            if omitted.
    """

    def __init__(
        self,
        name: str,
        config: str | Mapping[str, str] | None = "",
        vocab: Vocabulary | None = None,
    ):
        self._name = name
        self._vocab = vocab if vocab is not None else Vocabulary()
        self._config = parse_config(config)
        self._factors: list[int] = []
        self._factor_delimiter = DEFAULT_FACTOR_DELIMITER
        self._filter: PreProcessFilter | None = None
        self._score_data: ScoreData | None = None
        self._references_set = False
        self._extraction_started = False
        self._init_config()

    def _init_config(self) -> None:
        self._enable_preserve_case = parse_bool(self.get_config("case", "true"), "case")
        self._factor_delimiter = self.get_config("factor-delimiter", DEFAULT_FACTOR_DELIMITER)
        if not self._factor_delimiter:
            raise ConfigurationError("Config 'factor-delimiter' must not be empty")
        self._regularisation = RegularisationStrategy.from_string(
            self.get_config("regtype", RegularisationStrategy.NONE.value)
        )
        self._filter_timeout = self._parse_filter_timeout()
        self.set_factors(self.get_config("factors", ""))
        self.set_filter(self.get_config("filter", ""))
        logger.debug(
            "Initialized %s scorer (factors=%s, filter=%s, preserve_case=%s, regtype=%s)",
            self._name,
            self._factors,
            self._filter,
            self._enable_preserve_case,
            self._regularisation.value,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, config={dict(self._config)!r})"

    # =========================================================================
    # Metric interface
    # =========================================================================

    @abstractmethod
    def number_of_scores(self) -> int:
        """Width of every statistics entry this metric produces."""

    @abstractmethod
    def _load_references(self, reference_files: list[str]) -> None:
        """Read the reference files."""

    @abstractmethod
    def _prepare_stats(self, sindex: int, text: str, entry: ScoreStats) -> None:
        """Fill entry with the statistics of candidate text for sentence sindex."""

    @abstractmethod
    def calculate_score(self, totals: NDArray[np.float64]) -> float:
        """
        Metric formula: aggregated statistics -> scalar score.

        Must be deterministic and free of side effects.
        """

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def name(self) -> str:
        return self._name

    def get_name(self) -> str:
        return self._name

    @property
    def vocab(self) -> Vocabulary:
        return self._vocab

    def get_vocab(self) -> Vocabulary:
        return self._vocab

    @property
    def config(self) -> Mapping[str, str]:
        return self._config

    def get_config(self, key: str, default: str = "") -> str:
        """Value of config option key, or default if not provided."""
        return self._config.get(key, default)

    @property
    def factors(self) -> list[int]:
        return list(self._factors)

    @property
    def regularisation(self) -> RegularisationStrategy:
        return self._regularisation

    @property
    def preserve_case(self) -> bool:
        return self._enable_preserve_case

    def get_reference_size(self) -> int:
        """Number of sentences in the bound statistics table, 0 if unbound."""
        if self._score_data is not None:
            return self._score_data.size()
        return 0

    # =========================================================================
    # Preprocessing
    # =========================================================================

    def _check_not_extracting(self, what: str) -> None:
        if self._extraction_started:
            raise ConfigurationError(
                f"Cannot change {what} after statistics extraction has started"
            )

    def set_factors(self, factors: str) -> None:
        """Set the factors, given as ``"0|2"``, which should be used for this metric."""
        self._check_not_extracting("factors")
        self._factors = parse_factors(factors)

    def set_filter(self, filter_command: str) -> None:
        """Set the shell command used to preprocess sentences. Empty disables it."""
        self._check_not_extracting("filter")
        if not filter_command:
            self._filter = None
            return
        self._filter = PreProcessFilter(filter_command, timeout=self._filter_timeout)

    def _parse_filter_timeout(self) -> float:
        raw = self.get_config("filter-timeout", str(DEFAULT_FILTER_TIMEOUT))
        try:
            timeout = float(raw)
        except ValueError:
            raise ConfigurationError(f"Config 'filter-timeout' expects a number, got '{raw}'") from None
        if not timeout > 0:
            raise ConfigurationError(f"Config 'filter-timeout' must be positive, got '{raw}'")
        return timeout

    def apply_factors(self, sentence: str) -> str:
        return apply_factors(sentence, self._factors, self._factor_delimiter)

    def apply_filter(self, sentence: str) -> str:
        if self._filter is None:
            return sentence
        return self._filter.process(sentence)

    def preprocess_sentence(self, sentence: str) -> str:
        """Filter the sentence, then select factors. Every scorer should call this per sentence."""
        return self.apply_factors(self.apply_filter(sentence))

    def tokenize_and_encode(self, line: str) -> list[int]:
        """Tokenize on whitespace and encode through the vocabulary."""
        tokens = tokenize(line)
        if not self._enable_preserve_case:
            tokens = [token.lower() for token in tokens]
        return self._vocab.encode_all(tokens)

    def preprocess(self, sentence: str) -> list[int]:
        """Full pipeline for one sentence: filter, factors, tokenize and encode."""
        return self.tokenize_and_encode(self.preprocess_sentence(sentence))

    # =========================================================================
    # Statistics extraction
    # =========================================================================

    def set_reference_files(self, reference_files: Sequence[str]) -> None:
        """Set the reference files. This must be called before prepare_stats()."""
        paths = [str(path) for path in reference_files]
        if not paths:
            raise ConfigurationError("No reference files given")
        self._load_references(paths)
        self._references_set = True
        logger.debug("%s: loaded references from %s", self._name, paths)

    def prepare_stats(self, sindex: int | str, text: str, entry: ScoreStats) -> None:
        """
        Fill entry with the statistics of a candidate.

        Args:
            sindex: Sentence index (a numeric string is accepted).
            text: Candidate text.
            entry: Entry to overwrite.
        """
        if not self._references_set:
            raise ReferencesNotSetError()
        if isinstance(sindex, str):
            try:
                sindex = int(sindex.strip())
            except ValueError:
                raise ConfigurationError(f"Invalid sentence index '{sindex}'") from None

        self._extraction_started = True
        entry.reset()
        self._prepare_stats(sindex, text, entry)
        if entry.size() != self.number_of_scores():
            raise StatsShapeError(
                f"{self._name} produced {entry.size()} statistics for sentence {sindex}, "
                f"expected {self.number_of_scores()}"
            )

    def regularise(self, entries: Sequence[ScoreStats]) -> ScoreStats:
        """Fold per-reference entries with the configured strategy."""
        return regularise(entries, self._regularisation)

    # =========================================================================
    # Scoring
    # =========================================================================

    def set_score_data(self, data: ScoreData | None) -> None:
        """
        Bind the scorer to a populated statistics table before scoring.

        The table is borrowed, not copied: it must stay alive and unchanged
        while this scorer scores against it. Binding freezes its row count.
        """
        if data is None:
            self._score_data = None
            return
        width = data.number_of_scores
        if width is not None and width != self.number_of_scores():
            raise StatsShapeError(
                f"Score data has {width} statistics per entry, "
                f"{self._name} expects {self.number_of_scores()}"
            )
        data.freeze()
        self._score_data = data
        logger.info("%s: bound statistics table with %d sentences", self._name, data.size())

    def _require_score_data(self) -> ScoreData:
        if self._score_data is None:
            raise ScoreDataNotLoadedError()
        return self._score_data

    def _entry(self, data: ScoreData, sindex: int, candidate: int) -> NDArray[np.float64]:
        if sindex < 0 or sindex >= data.size():
            raise IndexError(f"Sentence index {sindex} out of range for {data.size()} sentences")
        row = data.get(sindex)
        if candidate < 0 or candidate >= row.size():
            raise IndexError(
                f"Candidate index {candidate} out of range for sentence {sindex} "
                f"with {row.size()} candidates"
            )
        return row.get(candidate).array

    def accumulate(self, totals: NDArray[np.float64], entry: NDArray[np.float64]) -> None:
        """Add one sentence's entry to the running totals in place."""
        totals += entry

    def remove(self, totals: NDArray[np.float64], entry: NDArray[np.float64]) -> None:
        """Inverse of accumulate()."""
        totals -= entry

    def _total_stats(self, data: ScoreData, candidates: Candidates) -> NDArray[np.float64]:
        if len(candidates) != data.size():
            raise IndexError(
                f"Selection has {len(candidates)} candidates but the table has "
                f"{data.size()} sentences"
            )
        totals = np.zeros(self.number_of_scores(), dtype=STATS_DTYPE)
        for sindex, candidate in enumerate(candidates):
            self.accumulate(totals, self._entry(data, sindex, int(candidate)))
        return totals

    def score(self, candidates: Candidates) -> float:
        """
        Score the corpus under a candidate selection.

        Args:
            candidates: One candidate index per sentence, e.g. the current
                1-best of each n-best list.

        Returns:
            The metric value.
        """
        data = self._require_score_data()
        return float(self.calculate_score(self._total_stats(data, candidates)))

    def score_diffs(self, candidates: Candidates, diffs: Sequence[Diff]) -> list[float]:
        """
        Score using each of the candidate indices, then go through the diffs
        applying each in turn, and calculating a new score each time.

        Diffs build on each other: diff k is applied to the selection left by
        diffs 1..k-1. The caller's selection is not modified.

        Args:
            candidates: Baseline selection, one candidate index per sentence.
            diffs: (sentence index, new candidate index) pairs, in order.

        Returns:
            ``len(diffs) + 1`` scores, the first being the baseline.
        """
        data = self._require_score_data()
        selection = [int(candidate) for candidate in candidates]
        totals = self._total_stats(data, selection)
        scores = [float(self.calculate_score(totals))]

        for sindex, candidate in diffs:
            sindex, candidate = int(sindex), int(candidate)
            new_entry = self._entry(data, sindex, candidate)
            old = selection[sindex]
            if candidate != old:
                self.remove(totals, self._entry(data, sindex, old))
                self.accumulate(totals, new_entry)
                selection[sindex] = candidate
            scores.append(float(self.calculate_score(totals)))
        return scores

    def score_sentence(self, sindex: int, candidate: int) -> float:
        """Score a single entry of the bound table on its own."""
        data = self._require_score_data()
        totals = np.zeros(self.number_of_scores(), dtype=STATS_DTYPE)
        self.accumulate(totals, self._entry(data, sindex, candidate))
        return float(self.calculate_score(totals))
