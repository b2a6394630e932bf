"""Tests for token vocabularies."""

from __future__ import annotations

from pathlib import Path

import pytest
from conftest import write_word_level_tokenizer

from recurrent_decoder.exceptions import ModelLoadError, VocabularyLookupError
from recurrent_decoder.model.vocabulary import ListVocabulary, TokenizerVocabulary

WORDS = ["<eos>", "hello", "world", "[UNK]"]


class TestListVocabulary:
    def test_token_by_id(self) -> None:
        vocab = ListVocabulary(["a", "b"])
        assert vocab.vocab_size == 2
        assert vocab.token_by_id(1) == "b"

    @pytest.mark.parametrize("token_id", [-1, 2, 100])
    def test_out_of_range(self, token_id: int) -> None:
        with pytest.raises(VocabularyLookupError, match=str(token_id)):
            ListVocabulary(["a", "b"]).token_by_id(token_id)

    def test_rendering_is_stable(self) -> None:
        vocab = ListVocabulary(["a", "b"])
        assert vocab.token_by_id(0) is vocab.token_by_id(0)


class TestTokenizerVocabulary:
    def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "tokenizer.json"
        write_word_level_tokenizer(path, WORDS)
        vocab = TokenizerVocabulary.from_file(path)
        assert vocab.vocab_size == len(WORDS)
        assert vocab.encode("hello world") == [1, 2]
        assert vocab.token_by_id(2) == "world"

    def test_explicit_vocab_size_bounds_lookup(self, tmp_path: Path) -> None:
        path = tmp_path / "tokenizer.json"
        write_word_level_tokenizer(path, WORDS)
        vocab = TokenizerVocabulary.from_file(path, vocab_size=2)
        assert vocab.vocab_size == 2
        with pytest.raises(VocabularyLookupError):
            vocab.token_by_id(2)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ModelLoadError, match="tokenizer"):
            TokenizerVocabulary.from_file(tmp_path / "tokenizer.json")
