"""Reference RWKV-4 recurrent language model in numpy.

``encode`` runs token embeddings through a stack of time-mix/channel-mix
blocks and returns the residual stream of the last token; ``predict`` applies
the output layer norm and the linear head. The per-layer state holds the
previous inputs of both mixers and the numerator, denominator and running
maximum exponent of the WKV attention, so each step costs one block pass per
layer regardless of how many tokens came before.

Parameter names follow the widely used RWKV-4 checkpoint layout
(``blocks.{i}.att.key.weight``, ``head.weight``, ...). Token embeddings are
not part of the parameter mapping: they come from an
:class:`~recurrent_decoder.model.embeddings.EmbeddingStore`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, NamedTuple

import numpy as np
from pydantic import BaseModel, ConfigDict

from recurrent_decoder.model.base import RecurrentLanguageModel

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from recurrent_decoder.model.embeddings import EmbeddingStore

_LAYER_NORM_EPS = 1e-5

# Initial running maximum of the WKV exponent: exp(_MIN_EXPONENT - x) == 0.
_MIN_EXPONENT = -1e30

_BLOCK_PARAMS = (
    "ln1.weight",
    "ln1.bias",
    "ln2.weight",
    "ln2.bias",
    "att.time_decay",
    "att.time_first",
    "att.time_mix_k",
    "att.time_mix_v",
    "att.time_mix_r",
    "att.key.weight",
    "att.value.weight",
    "att.receptance.weight",
    "att.output.weight",
    "ffn.time_mix_k",
    "ffn.time_mix_r",
    "ffn.key.weight",
    "ffn.receptance.weight",
    "ffn.value.weight",
)

_HEAD_PARAMS = ("ln_out.weight", "ln_out.bias", "head.weight")


class RwkvConfig(BaseModel):
    """Shape of an RWKV model, stored as ``config.json`` in the model directory."""

    model_config = ConfigDict(extra="ignore")

    d_model: int
    num_hidden_layers: int
    vocab_size: int
    rescale_layer: int = 0
    embeddings_file: str = "embeddings.npy"


class LayerState(NamedTuple):
    """Recurrent state of one block."""

    att_x: np.ndarray
    att_num: np.ndarray
    att_den: np.ndarray
    att_max: np.ndarray
    ffn_x: np.ndarray


RwkvState = tuple[LayerState, ...]


@dataclass(frozen=True, slots=True)
class _Block:
    ln1_weight: np.ndarray
    ln1_bias: np.ndarray
    ln2_weight: np.ndarray
    ln2_bias: np.ndarray
    decay: np.ndarray
    bonus: np.ndarray
    att_mix_k: np.ndarray
    att_mix_v: np.ndarray
    att_mix_r: np.ndarray
    att_key: np.ndarray
    att_value: np.ndarray
    att_receptance: np.ndarray
    att_output: np.ndarray
    ffn_mix_k: np.ndarray
    ffn_mix_r: np.ndarray
    ffn_key: np.ndarray
    ffn_receptance: np.ndarray
    ffn_value: np.ndarray


def required_parameters(num_hidden_layers: int) -> list[str]:
    """Names of every parameter an RWKV model with *num_hidden_layers* needs."""
    names = [f"blocks.{i}.{p}" for i in range(num_hidden_layers) for p in _BLOCK_PARAMS]
    names.extend(_HEAD_PARAMS)
    return names


def _layer_norm(x: np.ndarray, weight: np.ndarray, bias: np.ndarray) -> np.ndarray:
    mean = np.mean(x)
    var = np.var(x)
    return (x - mean) / np.sqrt(var + _LAYER_NORM_EPS) * weight + bias


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


class RwkvModel(RecurrentLanguageModel):
    """RWKV-4 inference over float32 numpy parameters.

    Args:
        config: Model shape.
        params: Parameter arrays keyed by checkpoint name. Vectors may carry
            leading singleton axes; they are flattened.
        embeddings: Token embedding store of width ``config.d_model``.

    Raises:
        KeyError: If a required parameter is missing.
        ValueError: If the embedding width does not match ``config.d_model``.
    """

    def __init__(
        self,
        config: RwkvConfig,
        params: Mapping[str, np.ndarray],
        embeddings: EmbeddingStore,
    ) -> None:
        if embeddings.dim != config.d_model:
            raise ValueError(
                f"Embedding width {embeddings.dim} does not match d_model {config.d_model}"
            )
        required = required_parameters(config.num_hidden_layers)
        missing = [name for name in required if name not in params]
        if missing:
            raise KeyError(f"Missing model parameters: {', '.join(missing[:5])}")

        self._config = config
        self._embeddings = embeddings

        def vec(name: str) -> np.ndarray:
            return np.asarray(params[name], dtype=np.float32).reshape(-1)

        def mat(name: str) -> np.ndarray:
            return np.asarray(params[name], dtype=np.float32)

        self._ln0: tuple[np.ndarray, np.ndarray] | None = None
        if "blocks.0.ln0.weight" in params:
            self._ln0 = (vec("blocks.0.ln0.weight"), vec("blocks.0.ln0.bias"))

        self._blocks: list[_Block] = []
        for i in range(config.num_hidden_layers):
            p = f"blocks.{i}."
            self._blocks.append(
                _Block(
                    ln1_weight=vec(p + "ln1.weight"),
                    ln1_bias=vec(p + "ln1.bias"),
                    ln2_weight=vec(p + "ln2.weight"),
                    ln2_bias=vec(p + "ln2.bias"),
                    decay=-np.exp(vec(p + "att.time_decay")),
                    bonus=vec(p + "att.time_first"),
                    att_mix_k=vec(p + "att.time_mix_k"),
                    att_mix_v=vec(p + "att.time_mix_v"),
                    att_mix_r=vec(p + "att.time_mix_r"),
                    att_key=mat(p + "att.key.weight"),
                    att_value=mat(p + "att.value.weight"),
                    att_receptance=mat(p + "att.receptance.weight"),
                    att_output=mat(p + "att.output.weight"),
                    ffn_mix_k=vec(p + "ffn.time_mix_k"),
                    ffn_mix_r=vec(p + "ffn.time_mix_r"),
                    ffn_key=mat(p + "ffn.key.weight"),
                    ffn_receptance=mat(p + "ffn.receptance.weight"),
                    ffn_value=mat(p + "ffn.value.weight"),
                )
            )

        self._ln_out = (vec("ln_out.weight"), vec("ln_out.bias"))
        self._head = mat("head.weight")

    @property
    def config(self) -> RwkvConfig:
        """Model shape."""
        return self._config

    @property
    def vocab_size(self) -> int:
        return int(self._head.shape[0])

    def initial_state(self) -> RwkvState:
        """Return the state before any token has been seen."""
        d = self._config.d_model
        zeros = np.zeros(d, dtype=np.float32)
        return tuple(
            LayerState(
                att_x=zeros,
                att_num=zeros,
                att_den=zeros,
                att_max=np.full(d, _MIN_EXPONENT, dtype=np.float32),
                ffn_x=zeros,
            )
            for _ in self._blocks
        )

    def encode(
        self,
        tokens: Sequence[int],
        state: RwkvState | None,
        encode_full_sequence: bool,
    ) -> tuple[np.ndarray, RwkvState]:
        if len(tokens) == 0:
            raise ValueError("Cannot encode an empty token sequence")
        if not encode_full_sequence and len(tokens) != 1:
            raise ValueError(
                f"Single-token encoding expects exactly one token, got {len(tokens)}"
            )
        if state is None:
            state = self.initial_state()

        hidden = np.empty(0, dtype=np.float32)
        for token_id in tokens:
            hidden, state = self._forward(self._embed(token_id), state)
        return hidden, state

    def predict(self, hidden: np.ndarray) -> np.ndarray:
        result: np.ndarray = self._head @ _layer_norm(hidden, *self._ln_out)
        return result

    def close(self) -> None:
        self._embeddings.close()

    def _embed(self, token_id: int) -> np.ndarray:
        x = self._embeddings.lookup(int(token_id))
        if self._ln0 is not None:
            x = _layer_norm(x, *self._ln0)
        return x

    def _forward(self, x: np.ndarray, state: RwkvState) -> tuple[np.ndarray, RwkvState]:
        new_state: list[LayerState] = []
        rescale = self._config.rescale_layer
        for i, (block, layer) in enumerate(zip(self._blocks, state)):
            xa = _layer_norm(x, block.ln1_weight, block.ln1_bias)
            dx, att_num, att_den, att_max = self._time_mix(block, xa, layer)
            x = x + dx

            xf = _layer_norm(x, block.ln2_weight, block.ln2_bias)
            x = x + self._channel_mix(block, xf, layer.ffn_x)

            # Checkpoints converted with rescale_layer > 0 have their output
            # projections pre-divided to match.
            if rescale > 0 and (i + 1) % rescale == 0:
                x = x / 2

            new_state.append(LayerState(xa, att_num, att_den, att_max, xf))
        return x, tuple(new_state)

    @staticmethod
    def _time_mix(
        block: _Block,
        x: np.ndarray,
        layer: LayerState,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        last_x = layer.att_x
        xk = x * block.att_mix_k + last_x * (1 - block.att_mix_k)
        xv = x * block.att_mix_v + last_x * (1 - block.att_mix_v)
        xr = x * block.att_mix_r + last_x * (1 - block.att_mix_r)

        r = _sigmoid(block.att_receptance @ xr)
        k = block.att_key @ xk
        v = block.att_value @ xv

        # Output for this token, with the bonus applied to the current key.
        ww = block.bonus + k
        p = np.maximum(layer.att_max, ww)
        e1 = np.exp(layer.att_max - p)
        e2 = np.exp(ww - p)
        wkv = (e1 * layer.att_num + e2 * v) / (e1 * layer.att_den + e2)

        # Decay the running sums and fold the current key in.
        ww = block.decay + layer.att_max
        p = np.maximum(ww, k)
        e1 = np.exp(ww - p)
        e2 = np.exp(k - p)
        num = e1 * layer.att_num + e2 * v
        den = e1 * layer.att_den + e2

        return block.att_output @ (r * wkv), num, den, p

    @staticmethod
    def _channel_mix(block: _Block, x: np.ndarray, last_x: np.ndarray) -> np.ndarray:
        xk = x * block.ffn_mix_k + last_x * (1 - block.ffn_mix_k)
        xr = x * block.ffn_mix_r + last_x * (1 - block.ffn_mix_r)
        r = _sigmoid(block.ffn_receptance @ xr)
        k = np.square(np.maximum(block.ffn_key @ xk, 0))
        result: np.ndarray = r * (block.ffn_value @ k)
        return result
