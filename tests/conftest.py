"""Shared pytest fixtures for recurrent-decoder tests.

Provides a scripted recurrent model whose predictions follow a fixed token
script, a matching vocabulary, seeded entropy, and random RWKV parameters
small enough to run the reference model in milliseconds.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import numpy as np
import pytest

from recurrent_decoder.config import DecodingOptions
from recurrent_decoder.entropy.seeded import SeededEntropySource
from recurrent_decoder.model.base import RecurrentLanguageModel
from recurrent_decoder.model.vocabulary import ListVocabulary

VOCAB_SIZE = 10


class ScriptedModel(RecurrentLanguageModel):
    """Recurrent model whose step ``k`` prediction peaks at ``script[k]``.

    The hidden vector holds the number of generated tokens encoded so far;
    the state is the tuple of every encoded token, rebuilt on each call.

    Args:
        script: Token id to predict at each step.
        vocab_size: Number of logits.
        fail_at: Step whose ``predict`` raises ``RuntimeError``.
        on_predict: Hook called with the step index before predicting.
    """

    def __init__(
        self,
        script: Sequence[int],
        vocab_size: int = VOCAB_SIZE,
        fail_at: int | None = None,
        on_predict: Callable[[int], None] | None = None,
    ) -> None:
        self.script = list(script)
        self._vocab_size = vocab_size
        self.fail_at = fail_at
        self.on_predict = on_predict
        self.calls: list[tuple[str, tuple[int, ...]]] = []
        self.closed = False

    @property
    def vocab_size(self) -> int:
        return self._vocab_size

    def encode(
        self,
        tokens: Sequence[int],
        state: Any,
        encode_full_sequence: bool,
    ) -> tuple[np.ndarray, Any]:
        tokens = tuple(int(t) for t in tokens)
        if encode_full_sequence:
            self.calls.append(("full", tokens))
            return np.array([0.0]), tokens
        if len(tokens) != 1:
            raise ValueError("single-token mode expects one token")
        self.calls.append(("single", tokens))
        return np.array([float(len(self.calls) - 1)]), tuple(state) + tokens

    def predict(self, hidden: np.ndarray) -> np.ndarray:
        step = int(hidden[0])
        if self.on_predict is not None:
            self.on_predict(step)
        if self.fail_at is not None and step == self.fail_at:
            raise RuntimeError(f"predict failed at step {step}")
        logits = np.full(self._vocab_size, -10.0)
        logits[self.script[step % len(self.script)]] = 10.0
        return logits

    def close(self) -> None:
        self.closed = True


def greedy_options(**overrides: Any) -> DecodingOptions:
    """Deterministic options with every stop condition off unless overridden."""
    values: dict[str, Any] = {"use_sampling": False, "max_len": 20}
    values.update(overrides)
    return DecodingOptions(**values)


def make_rwkv_params(
    rng: np.random.Generator,
    d_model: int = 4,
    num_layers: int = 2,
    vocab_size: int = 6,
    ffn_dim: int = 8,
) -> dict[str, np.ndarray]:
    """Random RWKV-4 parameters in checkpoint layout, including ``emb.weight``."""

    def rand(*shape: int) -> np.ndarray:
        return (rng.standard_normal(shape) * 0.5).astype(np.float32)

    params: dict[str, np.ndarray] = {
        "emb.weight": rand(vocab_size, d_model),
        "blocks.0.ln0.weight": np.ones(d_model, dtype=np.float32),
        "blocks.0.ln0.bias": np.zeros(d_model, dtype=np.float32),
        "ln_out.weight": np.ones(d_model, dtype=np.float32),
        "ln_out.bias": np.zeros(d_model, dtype=np.float32),
        "head.weight": rand(vocab_size, d_model),
    }
    for i in range(num_layers):
        p = f"blocks.{i}."
        params.update(
            {
                p + "ln1.weight": np.ones(d_model, dtype=np.float32),
                p + "ln1.bias": np.zeros(d_model, dtype=np.float32),
                p + "ln2.weight": np.ones(d_model, dtype=np.float32),
                p + "ln2.bias": np.zeros(d_model, dtype=np.float32),
                p + "att.time_decay": rand(d_model),
                p + "att.time_first": rand(d_model),
                p + "att.time_mix_k": rng.random((1, 1, d_model)).astype(np.float32),
                p + "att.time_mix_v": rng.random((1, 1, d_model)).astype(np.float32),
                p + "att.time_mix_r": rng.random((1, 1, d_model)).astype(np.float32),
                p + "att.key.weight": rand(d_model, d_model),
                p + "att.value.weight": rand(d_model, d_model),
                p + "att.receptance.weight": rand(d_model, d_model),
                p + "att.output.weight": rand(d_model, d_model),
                p + "ffn.time_mix_k": rng.random((1, 1, d_model)).astype(np.float32),
                p + "ffn.time_mix_r": rng.random((1, 1, d_model)).astype(np.float32),
                p + "ffn.key.weight": rand(ffn_dim, d_model),
                p + "ffn.receptance.weight": rand(d_model, d_model),
                p + "ffn.value.weight": rand(d_model, ffn_dim),
            }
        )
    return params


def write_word_level_tokenizer(path: Any, words: Sequence[str]) -> None:
    """Save a whitespace word-level ``tokenizer.json`` with ids in *words* order."""
    from tokenizers import Tokenizer
    from tokenizers.models import WordLevel
    from tokenizers.pre_tokenizers import WhitespaceSplit

    vocab = {word: i for i, word in enumerate(words)}
    tokenizer = Tokenizer(WordLevel(vocab, unk_token=words[-1]))
    tokenizer.pre_tokenizer = WhitespaceSplit()
    tokenizer.save(str(path))


@pytest.fixture
def vocabulary() -> ListVocabulary:
    """Vocabulary rendering id ``i`` as the letter ``"abcdefghij"[i]``."""
    return ListVocabulary(list("abcdefghij"))


@pytest.fixture
def seeded_source() -> SeededEntropySource:
    """Seeded entropy source for reproducible sampling."""
    return SeededEntropySource(seed=42)


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(0)


@pytest.fixture
def sample_logits() -> np.ndarray:
    """Ten logits with a clear descending order (index 0 highest)."""
    return np.linspace(3.0, -1.5, VOCAB_SIZE)
