"""
Exception hierarchy for the scoring core.

Every error is raised at the call that detects it and propagated to the
caller unchanged. The optimizer driving the scorer is expected to stop the
run on any of them.
"""

from __future__ import annotations


class ScorerError(Exception):
    """Base class for all scorer errors."""


# =============================================================================
# Configuration errors
# =============================================================================


class ConfigurationError(ScorerError, ValueError):
    """Missing or malformed configuration."""


class InvalidFactorError(ConfigurationError):
    """A factor index is malformed or not present in a token."""

    def __init__(self, message: str, tokens: list[str] | None = None):
        super().__init__(message)
        self.tokens = tokens or []


# =============================================================================
# Sequencing errors
# =============================================================================


class NotReadyError(ScorerError, RuntimeError):
    """An operation was called before the scorer was ready for it."""


class ScoreDataNotLoadedError(NotReadyError):
    def __init__(self, message: str = "score data not loaded"):
        super().__init__(message)


class ReferencesNotSetError(NotReadyError):
    def __init__(self, message: str = "references not set"):
        super().__init__(message)


# =============================================================================
# External process and data errors
# =============================================================================


class FilterError(ScorerError, RuntimeError):
    """The external preprocessing filter failed."""

    def __init__(
        self,
        message: str,
        command: str,
        returncode: int | None = None,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class StatsShapeError(ScorerError, ValueError):
    """Statistics entries of incompatible widths were combined."""


class RegularisationError(ScorerError, ValueError):
    """Per-reference statistics could not be folded."""


class UnknownScorerError(ScorerError, KeyError):
    """No scorer is registered under the requested name."""

    def __str__(self) -> str:
        # KeyError quotes its argument
        return str(self.args[0]) if self.args else ""
