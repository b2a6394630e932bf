"""Recurrent language model collaborators.

The decode engine only depends on :class:`RecurrentLanguageModel` and
:class:`TokenVocabulary`; the RWKV model, embedding stores and the model
directory loader are the concrete implementations used by the CLI.
"""

from recurrent_decoder.model.base import RecurrentLanguageModel, RecurrentState
from recurrent_decoder.model.embeddings import (
    DiskEmbeddingStore,
    EmbeddingStore,
    InMemoryEmbeddingStore,
)
from recurrent_decoder.model.rwkv import LayerState, RwkvConfig, RwkvModel
from recurrent_decoder.model.store import ModelStore
from recurrent_decoder.model.vocabulary import (
    ListVocabulary,
    TokenizerVocabulary,
    TokenVocabulary,
)

__all__ = [
    "DiskEmbeddingStore",
    "EmbeddingStore",
    "InMemoryEmbeddingStore",
    "LayerState",
    "ListVocabulary",
    "ModelStore",
    "RecurrentLanguageModel",
    "RecurrentState",
    "RwkvConfig",
    "RwkvModel",
    "TokenVocabulary",
    "TokenizerVocabulary",
]
