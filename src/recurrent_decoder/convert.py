"""Checkpoint conversion to the runtime model directory layout.

Reads RWKV-4 ``*.safetensors`` checkpoints (``emb.weight``,
``blocks.{i}.att.key.weight``, ``head.weight``, ...) and writes:

- ``embeddings.npy``: the token embedding matrix, memory-mapped at load time;
- ``model.npz``: every other parameter as float32, vectors flattened;
- ``config.json``: the :class:`~recurrent_decoder.model.rwkv.RwkvConfig`.

The tokenizer file is expected to be in the directory already (it is part of
the downloaded snapshot).
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

import numpy as np
from safetensors.numpy import load_file

from recurrent_decoder.exceptions import ConversionError
from recurrent_decoder.model.rwkv import RwkvConfig, required_parameters
from recurrent_decoder.model.store import CONFIG_FILENAME, PARAMS_FILENAME

logger = logging.getLogger("recurrent_decoder")

EMBEDDING_KEY = "emb.weight"
EMBEDDINGS_FILENAME = "embeddings.npy"

_BLOCK_INDEX = re.compile(r"^blocks\.(\d+)\.")

# Output projections divided by 2 ** (i // rescale_layer) when rescaling.
_RESCALED = ("att.output.weight", "ffn.value.weight")


def _read_checkpoints(model_dir: Path) -> dict[str, np.ndarray]:
    paths = sorted(model_dir.glob("*.safetensors"))
    if not paths:
        raise ConversionError(f"No *.safetensors checkpoint found in {model_dir}")

    tensors: dict[str, np.ndarray] = {}
    for path in paths:
        logger.debug("Reading checkpoint %s", path)
        try:
            tensors.update(load_file(str(path)))
        except Exception as exc:
            raise ConversionError(f"Failed to read checkpoint {path}: {exc}") from exc
    return tensors


def _num_layers(names: list[str]) -> int:
    indices = {int(m.group(1)) for name in names if (m := _BLOCK_INDEX.match(name))}
    return len(indices)


def convert_checkpoint(
    model_dir: str | Path,
    overwrite: bool = False,
    rescale_layer: int = 0,
) -> Path:
    """Convert the checkpoint in *model_dir* into the runtime layout.

    Args:
        model_dir: Directory holding the ``*.safetensors`` checkpoint.
        overwrite: Replace an existing conversion.
        rescale_layer: If > 0, halve the residual stream every
            ``rescale_layer`` blocks (for float16-range safety); the output
            projections are pre-divided to compensate.

    Returns:
        The path of the written parameter archive.

    Raises:
        ConversionError: If no checkpoint is found or it is incomplete.
    """
    model_dir = Path(model_dir)
    params_path = model_dir / PARAMS_FILENAME
    if params_path.exists() and not overwrite:
        logger.info("Model already converted at %s, skipping", params_path)
        return params_path
    if rescale_layer < 0:
        raise ConversionError(f"rescale_layer must be >= 0, got {rescale_layer}")

    tensors = _read_checkpoints(model_dir)
    if EMBEDDING_KEY not in tensors:
        raise ConversionError(f"Checkpoint has no {EMBEDDING_KEY!r} tensor")

    embeddings = np.asarray(tensors.pop(EMBEDDING_KEY), dtype=np.float32)
    if embeddings.ndim != 2:
        raise ConversionError(f"{EMBEDDING_KEY} must be 2-D, got shape {embeddings.shape}")

    config = RwkvConfig(
        d_model=int(embeddings.shape[1]),
        num_hidden_layers=_num_layers(list(tensors)),
        vocab_size=int(embeddings.shape[0]),
        rescale_layer=rescale_layer,
        embeddings_file=EMBEDDINGS_FILENAME,
    )
    required = required_parameters(config.num_hidden_layers)
    missing = [name for name in required if name not in tensors]
    if missing:
        raise ConversionError(f"Checkpoint is missing parameters: {', '.join(missing[:5])}")

    params: dict[str, np.ndarray] = {}
    for name, tensor in tensors.items():
        array = np.asarray(tensor, dtype=np.float32)
        if array.ndim > 1 and array.shape[0] == 1:
            array = array.reshape(-1)
        if rescale_layer > 0 and name.endswith(_RESCALED):
            match = _BLOCK_INDEX.match(name)
            if match is not None:
                array = array / 2 ** (int(match.group(1)) // rescale_layer)
        params[name] = array

    np.save(model_dir / EMBEDDINGS_FILENAME, embeddings)
    np.savez(params_path, **params)
    with open(model_dir / CONFIG_FILENAME, "w", encoding="utf-8") as f:
        json.dump(config.model_dump(), f, indent=2)

    logger.info(
        "Converted %d parameters (%d layers, d_model=%d, vocab_size=%d) into %s",
        len(params),
        config.num_hidden_layers,
        config.d_model,
        config.vocab_size,
        model_dir,
    )
    return params_path
