"""
Registry of concrete scorers, so the tuning driver can pick a metric by name.

Usage:
    @register_scorer("MATCH")
    class MatchScorer(Scorer):
        ...

    scorer = create_scorer("MATCH", "case:false")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from mert_scorer.errors import ConfigurationError, UnknownScorerError
from mert_scorer.scorer import Scorer
from mert_scorer.vocabulary import Vocabulary

logger = logging.getLogger(__name__)

_REGISTRY: dict[str, type[Scorer]] = {}


def register_scorer(name: str) -> Callable[[type[Scorer]], type[Scorer]]:
    """Class decorator registering a Scorer subclass under name."""
    key = name.upper()

    def decorator(cls: type[Scorer]) -> type[Scorer]:
        if not issubclass(cls, Scorer):
            raise TypeError(f"{cls.__name__} is not a Scorer")
        if key in _REGISTRY:
            raise ConfigurationError(f"A scorer is already registered as '{key}'")
        _REGISTRY[key] = cls
        logger.debug("Registered scorer %s as '%s'", cls.__name__, key)
        return cls

    return decorator


def unregister_scorer(name: str) -> None:
    _REGISTRY.pop(name.upper(), None)


def available_scorers() -> list[str]:
    return sorted(_REGISTRY)


def create_scorer(
    name: str,
    config: str | Mapping[str, str] | None = "",
    vocab: Vocabulary | None = None,
) -> Scorer:
    """
    Instantiate the scorer registered under name (case-insensitive).

    The registered class is called as ``cls(name=..., config=..., vocab=...)``
    with the registered name, so subclasses that keep the base constructor
    receive their config unchanged.
    """
    cls = _REGISTRY.get(name.upper())
    if cls is None:
        available = ", ".join(available_scorers()) or "none"
        raise UnknownScorerError(f"Unknown scorer '{name}' (available: {available})")
    return cls(name=name.upper(), config=config, vocab=vocab)
