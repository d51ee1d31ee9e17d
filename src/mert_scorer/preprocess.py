"""
Per-sentence preprocessing: external filter, factor selection, tokenization.

A factored token packs several annotation channels into one string, e.g.
``house/NN/house`` (surface/POS/lemma). Factor selection keeps only the
configured channels before the sentence is encoded.
"""

from __future__ import annotations

import logging
import subprocess

from mert_scorer.errors import ConfigurationError, FilterError, InvalidFactorError

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

# Separator inside a factored token
DEFAULT_FACTOR_DELIMITER = "/"

# Separator between indices in the ``factors`` config value
FACTOR_LIST_SEPARATOR = "|"

# Seconds before a filter process is killed
DEFAULT_FILTER_TIMEOUT = 60.0


def tokenize(line: str) -> list[str]:
    """Splits the line on whitespace."""
    return line.split()


# =============================================================================
# Factor selection
# =============================================================================


def parse_factors(spec: str) -> list[int]:
    """
    Parses a factor specification such as ``"0|2"``.

    Args:
        spec: Indices separated by FACTOR_LIST_SEPARATOR. Empty keeps tokens whole.

    Returns:
        The factor indices in configured order.
    """
    if not spec or not spec.strip():
        return []

    factors = []
    for field in spec.split(FACTOR_LIST_SEPARATOR):
        field = field.strip()
        try:
            index = int(field)
        except ValueError:
            raise InvalidFactorError(f"Invalid factor index '{field}' in '{spec}'") from None
        if index < 0:
            raise InvalidFactorError(f"Invalid factor index '{field}' in '{spec}'")
        factors.append(index)
    return factors


def apply_factors(
    sentence: str,
    factors: list[int],
    delimiter: str = DEFAULT_FACTOR_DELIMITER,
) -> str:
    """
    Keeps only the selected factors of every token.

    Args:
        sentence: Whitespace-separated factored tokens.
        factors: Factor indices to keep. Empty returns the sentence unchanged.
        delimiter: Separator between the factors of a token.

    Returns:
        The sentence with each token reduced to the selected factors.

    Raises:
        InvalidFactorError: If any token lacks a selected factor. Every such
            token is reported.
    """
    if not factors:
        return sentence

    selected = []
    missing = []
    for token in tokenize(sentence):
        fields = token.split(delimiter)
        if any(index >= len(fields) for index in factors):
            missing.append(token)
            continue
        selected.append(delimiter.join(fields[index] for index in factors))

    if missing:
        raise InvalidFactorError(
            f"Invalid factor: {len(missing)} token(s) lack factor(s) {factors}: "
            + " ".join(missing),
            tokens=missing,
        )
    return " ".join(selected)


# =============================================================================
# External filter
# =============================================================================


class PreProcessFilter:
    """
    Runs a shell command as a normalising filter over single sentences.

    The sentence is written to the command's standard input and its standard
    output is returned. Each call owns its own process, which is reaped (and
    killed on timeout) before the call returns.

    Args:
        command: Shell command line.
        timeout: Seconds to wait for the command before it is killed.
    """

    def __init__(self, command: str, timeout: float = DEFAULT_FILTER_TIMEOUT):
        if not command or not command.strip():
            raise ConfigurationError("Filter command must not be empty")
        if timeout <= 0:
            raise ConfigurationError(f"Filter timeout must be positive, got {timeout}")
        self.command = command
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"PreProcessFilter({self.command!r}, timeout={self.timeout})"

    def process(self, sentence: str) -> str:
        logger.debug("Filtering sentence through '%s'", self.command)
        try:
            result = subprocess.run(
                self.command,
                shell=True,
                input=sentence + "\n",
                capture_output=True,
                encoding="utf-8",
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise FilterError(
                f"Filter '{self.command}' timed out after {self.timeout} seconds",
                command=self.command,
            ) from exc
        except OSError as exc:
            raise FilterError(
                f"Failed to run filter '{self.command}': {exc}",
                command=self.command,
            ) from exc
        except UnicodeError as exc:
            raise FilterError(
                f"Filter '{self.command}' produced output that is not valid UTF-8: {exc}",
                command=self.command,
            ) from exc

        if result.returncode != 0:
            raise FilterError(
                f"Filter '{self.command}' exited with status {result.returncode}",
                command=self.command,
                returncode=result.returncode,
                stderr=result.stderr,
            )

        output = result.stdout
        if output.endswith("\n"):
            output = output[:-1]
        return output

    def __call__(self, sentence: str) -> str:
        return self.process(sentence)
