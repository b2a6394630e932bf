"""Tests for ModelStore."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest
from conftest import make_rwkv_params, write_word_level_tokenizer

from recurrent_decoder.exceptions import ModelLoadError
from recurrent_decoder.model.embeddings import DiskEmbeddingStore
from recurrent_decoder.model.store import ModelStore

WORDS = ["<eos>", "the", "cat", "sat", "down", "[UNK]"]


def _write_model_dir(model_dir: Path, rng: np.random.Generator) -> None:
    params = make_rwkv_params(rng, vocab_size=len(WORDS))
    np.save(model_dir / "embeddings.npy", params.pop("emb.weight"))
    np.savez(model_dir / "model.npz", **params)
    config = {"d_model": 4, "num_hidden_layers": 2, "vocab_size": len(WORDS)}
    (model_dir / "config.json").write_text(json.dumps(config), encoding="utf-8")
    write_word_level_tokenizer(model_dir / "tokenizer.json", WORDS)


class TestModelStore:
    def test_load_and_generate_logits(self, tmp_path: Path, rng: np.random.Generator) -> None:
        _write_model_dir(tmp_path, rng)
        with ModelStore.load(tmp_path) as store:
            tokens = store.tokenize("the cat")
            assert tokens == [1, 2]
            hidden, _ = store.model.encode(tokens, None, encode_full_sequence=True)
            assert store.model.predict(hidden).shape == (len(WORDS),)
            assert store.vocabulary.vocab_size == len(WORDS)
            assert store.vocabulary.token_by_id(3) == "sat"

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(ModelLoadError, match="not found"):
            ModelStore.load(tmp_path / "nope")

    def test_missing_config(self, tmp_path: Path) -> None:
        with pytest.raises(ModelLoadError, match="config"):
            ModelStore.load(tmp_path)

    def test_missing_parameters(self, tmp_path: Path, rng: np.random.Generator) -> None:
        _write_model_dir(tmp_path, rng)
        (tmp_path / "model.npz").unlink()
        with pytest.raises(ModelLoadError, match="parameters"):
            ModelStore.load(tmp_path)

    def test_incomplete_parameters(self, tmp_path: Path, rng: np.random.Generator) -> None:
        _write_model_dir(tmp_path, rng)
        params = make_rwkv_params(rng, vocab_size=len(WORDS))
        params.pop("emb.weight")
        params.pop("head.weight")
        np.savez(tmp_path / "model.npz", **params)
        with pytest.raises(ModelLoadError, match="head.weight"):
            ModelStore.load(tmp_path)

    def test_missing_tokenizer_releases_embeddings(
        self, tmp_path: Path, rng: np.random.Generator
    ) -> None:
        _write_model_dir(tmp_path, rng)
        (tmp_path / "tokenizer.json").unlink()
        with patch.object(DiskEmbeddingStore, "close", autospec=True) as close:
            with pytest.raises(ModelLoadError, match="tokenizer"):
                ModelStore.load(tmp_path)
        close.assert_called_once()
