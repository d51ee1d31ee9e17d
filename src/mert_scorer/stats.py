"""
Sufficient statistics data model.

Three layers, from leaf to corpus:
1. ScoreStats - one fixed-width numeric entry for a (sentence, candidate) pair
2. ScoreArray - the entries of every candidate in one sentence's n-best list
3. ScoreData  - one ScoreArray per source sentence

Entries are opaque to this module: only the concrete metric knows what each
field means. The only requirement is that entries of one metric share a width
and can be added and subtracted element-wise.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

import numpy as np

from mert_scorer.errors import StatsShapeError

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

STATS_DTYPE = np.float64


def _check_width(expected: int, actual: int, what: str = "entry") -> None:
    if expected != actual:
        raise StatsShapeError(
            f"Statistics {what} width mismatch: expected {expected}, got {actual}"
        )


# =============================================================================
# Entry
# =============================================================================


class ScoreStats:
    """
    A single sufficient-statistics entry.

    Args:
        values: Initial field values. Empty if omitted.
    """

    __slots__ = ("_values",)

    def __init__(self, values: ArrayLike | None = None):
        if values is None:
            self._values = np.zeros(0, dtype=STATS_DTYPE)
        else:
            self._values = self._as_row(values)

    @staticmethod
    def _as_row(values: ArrayLike) -> NDArray[np.float64]:
        array = np.array(values, dtype=STATS_DTYPE)
        if array.ndim != 1:
            raise StatsShapeError(f"Statistics entry must be 1-D, got shape {array.shape}")
        return array

    @classmethod
    def zeros(cls, width: int) -> "ScoreStats":
        return cls(np.zeros(width, dtype=STATS_DTYPE))

    @classmethod
    def from_row(cls, row: str) -> "ScoreStats":
        """Parse a flat whitespace-separated numeric row."""
        return cls([float(field) for field in row.split()])

    @property
    def array(self) -> NDArray[np.float64]:
        """The underlying values (read-only view)."""
        view = self._values.view()
        view.flags.writeable = False
        return view

    def size(self) -> int:
        return int(self._values.shape[0])

    def __len__(self) -> int:
        return self.size()

    def __getitem__(self, index):
        return self._values[index]

    def __iter__(self) -> Iterator[float]:
        return iter(self._values.tolist())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ScoreStats):
            return NotImplemented
        return np.array_equal(self._values, other._values)

    def __repr__(self) -> str:
        return f"ScoreStats({self._values.tolist()})"

    def __str__(self) -> str:
        return self.to_row()

    # ----- Mutation (used while extracting statistics) -----

    def set(self, values: ArrayLike) -> None:
        self._values = self._as_row(values)

    def add(self, value: float) -> None:
        """Append one field."""
        self._values = np.append(self._values, STATS_DTYPE(value))

    def reset(self) -> None:
        self._values = np.zeros(0, dtype=STATS_DTYPE)

    # ----- Algebra -----

    def _other_values(self, other: ScoreStats | ArrayLike) -> NDArray[np.float64]:
        values = other._values if isinstance(other, ScoreStats) else self._as_row(other)
        _check_width(self.size(), values.shape[0])
        return values

    def __add__(self, other: ScoreStats | ArrayLike) -> "ScoreStats":
        return ScoreStats(self._values + self._other_values(other))

    def __sub__(self, other: ScoreStats | ArrayLike) -> "ScoreStats":
        return ScoreStats(self._values - self._other_values(other))

    def __iadd__(self, other: ScoreStats | ArrayLike) -> "ScoreStats":
        self._values = self._values + self._other_values(other)
        return self

    def __isub__(self, other: ScoreStats | ArrayLike) -> "ScoreStats":
        self._values = self._values - self._other_values(other)
        return self

    def copy(self) -> "ScoreStats":
        return ScoreStats(self._values.copy())

    def to_row(self) -> str:
        """Serialize as a flat space-separated row."""
        return " ".join(f"{value:g}" for value in self._values.tolist())


# =============================================================================
# Row: the n-best list of one sentence
# =============================================================================


class ScoreArray:
    """
    Entries for every candidate of one source sentence.

    Args:
        entries: Initial entries; all must have the same width.
    """

    def __init__(self, entries: Iterable[ScoreStats] | None = None):
        self._entries: list[ScoreStats] = []
        self._width: int | None = None
        if entries is not None:
            for entry in entries:
                self.add(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ScoreStats]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> ScoreStats:
        return self._entries[index]

    @property
    def number_of_scores(self) -> int | None:
        """Entry width, or None while the array is empty."""
        return self._width

    def size(self) -> int:
        return len(self._entries)

    def add(self, entry: ScoreStats) -> None:
        if self._width is None:
            self._width = entry.size()
        else:
            _check_width(self._width, entry.size())
        self._entries.append(entry)

    def get(self, index: int) -> ScoreStats:
        return self._entries[index]

    def to_matrix(self) -> NDArray[np.float64]:
        """Stack entries into a (num_candidates, width) array."""
        if not self._entries:
            return np.zeros((0, self._width or 0), dtype=STATS_DTYPE)
        return np.vstack([entry.array for entry in self._entries])


# =============================================================================
# Table: one row per source sentence
# =============================================================================


class ScoreData:
    """
    Corpus-level statistics table.

    The row count is fixed once the table is frozen; a scorer freezes the
    table it is bound to.

    Args:
        number_of_scores: Width every entry must have. Inferred from the first
            non-empty row when omitted.
    """

    def __init__(self, number_of_scores: int | None = None):
        self._rows: list[ScoreArray] = []
        self._width = number_of_scores
        self._frozen = False

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[ScoreArray]:
        return iter(self._rows)

    @property
    def number_of_scores(self) -> int | None:
        return self._width

    @property
    def frozen(self) -> bool:
        return self._frozen

    def size(self) -> int:
        return len(self._rows)

    def add(self, row: ScoreArray) -> None:
        if self._frozen:
            raise StatsShapeError("Cannot add rows to a frozen statistics table")
        if row.number_of_scores is not None:
            if self._width is None:
                self._width = row.number_of_scores
            else:
                _check_width(self._width, row.number_of_scores, "row")
        self._rows.append(row)

    def get(self, sindex: int, candidate: int | None = None) -> ScoreArray | ScoreStats:
        """Return row sindex, or the entry for one candidate of that row."""
        row = self._rows[sindex]
        if candidate is None:
            return row
        return row.get(candidate)

    def freeze(self) -> None:
        if not self._frozen:
            logger.debug("Freezing statistics table with %d rows", len(self._rows))
        self._frozen = True
