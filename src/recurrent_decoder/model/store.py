"""Model directory loader.

A model directory holds:

- ``config.json``: the :class:`~recurrent_decoder.model.rwkv.RwkvConfig`;
- ``model.npz``: every parameter except the token embeddings;
- ``embeddings.npy`` (or ``config.embeddings_file``): the embedding matrix,
  memory-mapped read-only;
- ``tokenizer.json``: a Hugging Face ``tokenizers`` file used both to
  tokenize prompts and to render generated ids.

Any failure while loading is reported as :class:`ModelLoadError`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
from pydantic import ValidationError

from recurrent_decoder.exceptions import ModelLoadError
from recurrent_decoder.model.embeddings import DiskEmbeddingStore
from recurrent_decoder.model.rwkv import RwkvConfig, RwkvModel
from recurrent_decoder.model.vocabulary import TokenizerVocabulary

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger("recurrent_decoder")

CONFIG_FILENAME = "config.json"
PARAMS_FILENAME = "model.npz"
TOKENIZER_FILENAME = "tokenizer.json"


def load_rwkv_config(model_dir: Path) -> RwkvConfig:
    """Read ``config.json`` from *model_dir*.

    Raises:
        ModelLoadError: If the file is missing or invalid.
    """
    path = model_dir / CONFIG_FILENAME
    try:
        with open(path, encoding="utf-8") as f:
            return RwkvConfig.model_validate(json.load(f))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise ModelLoadError(f"Failed to read model config {path}: {exc}") from exc


class ModelStore:
    """A loaded model directory: the model, its vocabulary and tokenizer.

    The store is process-scoped: load it once and reuse it across many
    generation calls. Use as a context manager or call :meth:`close`.

    Args:
        model: The recurrent language model.
        vocabulary: Vocabulary used to tokenize prompts and render ids.
    """

    def __init__(self, model: RwkvModel, vocabulary: TokenizerVocabulary) -> None:
        self.model = model
        self.vocabulary = vocabulary

    @classmethod
    def load(cls, directory: str | Path) -> ModelStore:
        """Load the model directory at *directory*.

        Raises:
            ModelLoadError: If any artifact is missing or inconsistent.
        """
        model_dir = Path(directory)
        if not model_dir.is_dir():
            raise ModelLoadError(f"Model directory not found: {model_dir}")

        config = load_rwkv_config(model_dir)
        embeddings = DiskEmbeddingStore(model_dir / config.embeddings_file)

        params_path = model_dir / PARAMS_FILENAME
        try:
            with np.load(params_path) as archive:
                params = {name: archive[name] for name in archive.files}
            model = RwkvModel(config, params, embeddings)
        except (OSError, ValueError, KeyError) as exc:
            embeddings.close()
            raise ModelLoadError(f"Failed to load model parameters {params_path}: {exc}") from exc

        try:
            vocabulary = TokenizerVocabulary.from_file(
                model_dir / TOKENIZER_FILENAME, vocab_size=model.vocab_size
            )
        except ModelLoadError:
            model.close()
            raise

        logger.info(
            "Loaded model from %s: d_model=%d, layers=%d, vocab_size=%d",
            model_dir,
            config.d_model,
            config.num_hidden_layers,
            model.vocab_size,
        )
        return cls(model, vocabulary)

    def tokenize(self, text: str) -> list[int]:
        """Tokenize prompt *text*."""
        return self.vocabulary.encode(text)

    def close(self) -> None:
        """Release the model's resources."""
        self.model.close()

    def __enter__(self) -> ModelStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
