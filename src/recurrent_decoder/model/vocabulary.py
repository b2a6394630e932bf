"""Token vocabularies: map token ids to their surface text."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from recurrent_decoder.exceptions import ModelLoadError, VocabularyLookupError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from tokenizers import Tokenizer

logger = logging.getLogger("recurrent_decoder")


class TokenVocabulary(ABC):
    """Abstract id -> text mapping.

    Rendering is cached per id, so ``token_by_id`` applied to the same id
    always returns the same text for the lifetime of the vocabulary.
    """

    def __init__(self) -> None:
        self._cache: dict[int, str] = {}

    @property
    @abstractmethod
    def vocab_size(self) -> int:
        """Number of token ids, all in ``[0, vocab_size)``."""

    @abstractmethod
    def _render(self, token_id: int) -> str:
        """Return the surface text of an in-range *token_id*."""

    def token_by_id(self, token_id: int) -> str:
        """Return the surface text of *token_id*.

        Raises:
            VocabularyLookupError: If *token_id* is outside ``[0, vocab_size)``.
        """
        cached = self._cache.get(token_id)
        if cached is not None:
            return cached
        if not 0 <= token_id < self.vocab_size:
            raise VocabularyLookupError(
                f"Token id {token_id} is outside the vocabulary [0, {self.vocab_size})"
            )
        text = self._render(token_id)
        self._cache[token_id] = text
        return text


class ListVocabulary(TokenVocabulary):
    """Vocabulary backed by an in-memory list of surface forms."""

    def __init__(self, tokens: Sequence[str]) -> None:
        super().__init__()
        self._tokens = tuple(tokens)

    @property
    def vocab_size(self) -> int:
        return len(self._tokens)

    def _render(self, token_id: int) -> str:
        return self._tokens[token_id]


class TokenizerVocabulary(TokenVocabulary):
    """Vocabulary and prompt tokenizer backed by a Hugging Face ``tokenizers`` model.

    Args:
        tokenizer: A loaded :class:`tokenizers.Tokenizer`.
        vocab_size: Size of the model's output layer. Defaults to the
            tokenizer's own vocabulary size (including added tokens).
    """

    def __init__(self, tokenizer: Tokenizer, vocab_size: int | None = None) -> None:
        super().__init__()
        self._tokenizer = tokenizer
        self._vocab_size = vocab_size if vocab_size is not None else tokenizer.get_vocab_size()

    @classmethod
    def from_file(cls, path: Path, vocab_size: int | None = None) -> TokenizerVocabulary:
        """Load a ``tokenizer.json`` file.

        Raises:
            ModelLoadError: If the file is missing or cannot be parsed.
        """
        from tokenizers import Tokenizer

        try:
            tokenizer = Tokenizer.from_file(str(path))
        except Exception as exc:
            raise ModelLoadError(f"Failed to load tokenizer from {path}: {exc}") from exc
        logger.debug("Loaded tokenizer from %s (%d tokens)", path, tokenizer.get_vocab_size())
        return cls(tokenizer, vocab_size)

    @property
    def vocab_size(self) -> int:
        return self._vocab_size

    def encode(self, text: str) -> list[int]:
        """Tokenize *text* into token ids."""
        return list(self._tokenizer.encode(text, add_special_tokens=False).ids)

    def _render(self, token_id: int) -> str:
        return self._tokenizer.decode([token_id], skip_special_tokens=False)
