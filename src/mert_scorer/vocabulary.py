"""Token <-> integer id table shared by the scorers of one corpus."""

from __future__ import annotations

from collections.abc import Iterable, Iterator


class Vocabulary:
    """
    Bidirectional token <-> integer id table.

    Ids are assigned densely in first-seen order. One vocabulary is usually
    shared by every scorer working on the same corpus.

    Args:
        tokens: Optional tokens to encode up front.
    """

    def __init__(self, tokens: Iterable[str] | None = None):
        self._ids: dict[str, int] = {}
        self._tokens: list[str] = []
        if tokens is not None:
            for token in tokens:
                self.encode(token)

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, token: object) -> bool:
        return token in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self._tokens)

    def encode(self, token: str) -> int:
        """Return the id of token, assigning the next free id if it is unseen."""
        token_id = self._ids.get(token)
        if token_id is None:
            token_id = len(self._tokens)
            self._ids[token] = token_id
            self._tokens.append(token)
        return token_id

    def encode_all(self, tokens: Iterable[str]) -> list[int]:
        return [self.encode(token) for token in tokens]

    def get_id(self, token: str) -> int | None:
        """Lookup without insertion."""
        return self._ids.get(token)

    def decode(self, token_id: int) -> str:
        if token_id < 0 or token_id >= len(self._tokens):
            raise KeyError(f"Unknown token id: {token_id}")
        return self._tokens[token_id]

    def clear(self) -> None:
        self._ids.clear()
        self._tokens.clear()
