"""Abstract recurrent language model collaborator.

The decode loop needs exactly two operations from a model:

- ``encode(tokens, state, encode_full_sequence)`` folds tokens into the
  recurrent state and returns the last hidden vector with the new state;
- ``predict(hidden)`` maps a hidden vector to next-token logits.

``encode_full_sequence=True`` runs every token through the recurrent cell
and keeps only the final hidden vector. ``encode_full_sequence=False``
encodes a single (newest) token on top of ``state``. A long prompt is
therefore folded into the state once, after which every generation step
costs one cell application regardless of the context length.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np

# Opaque to the decode loop. Implementations must return a new value from
# every encode call instead of mutating the one they were given.
RecurrentState = Any


class RecurrentLanguageModel(ABC):
    """Abstract base for recurrent-state language models.

    Models are loaded once per process and are read-only during generation,
    so one instance can serve many sequential calls.
    """

    @property
    @abstractmethod
    def vocab_size(self) -> int:
        """Number of logits returned by :meth:`predict`."""

    @abstractmethod
    def encode(
        self,
        tokens: Sequence[int],
        state: RecurrentState | None,
        encode_full_sequence: bool,
    ) -> tuple[np.ndarray, RecurrentState]:
        """Fold *tokens* into the recurrent state.

        Args:
            tokens: Token ids. Exactly one id when ``encode_full_sequence``
                is False.
            state: Prior state, or ``None`` for the initial state.
            encode_full_sequence: Whether to encode every token of *tokens*.

        Returns:
            Tuple of (hidden vector of the last token, new state).

        Raises:
            ValueError: If *tokens* is empty, or holds more than one id in
                single-token mode.
        """

    @abstractmethod
    def predict(self, hidden: np.ndarray) -> np.ndarray:
        """Return the next-token logits (vocab_size,) for *hidden*."""

    def close(self) -> None:
        """Release resources. The default implementation does nothing."""
