"""Embedding stores: the ``lookup(id) -> vector`` capability behind the model.

The recurrent model never touches storage directly. An in-memory store
wraps a dense matrix; the disk store memory-maps a ``.npy`` file so only the
rows actually looked up are paged in.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from recurrent_decoder.exceptions import ModelLoadError

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger("recurrent_decoder")


class EmbeddingStore(ABC):
    """Read-only token embedding lookup."""

    @property
    @abstractmethod
    def num_embeddings(self) -> int:
        """Number of rows (token ids)."""

    @property
    @abstractmethod
    def dim(self) -> int:
        """Embedding width."""

    @abstractmethod
    def lookup(self, token_id: int) -> np.ndarray:
        """Return the embedding of *token_id*.

        Raises:
            IndexError: If *token_id* has no embedding.
        """

    def close(self) -> None:
        """Release resources. The default implementation does nothing."""


class InMemoryEmbeddingStore(EmbeddingStore):
    """Embedding rows held in a dense numpy matrix."""

    def __init__(self, matrix: np.ndarray) -> None:
        if matrix.ndim != 2:
            raise ValueError(f"Embedding matrix must be 2-D, got shape {matrix.shape}")
        self._matrix = matrix

    @property
    def num_embeddings(self) -> int:
        return int(self._matrix.shape[0])

    @property
    def dim(self) -> int:
        return int(self._matrix.shape[1])

    def lookup(self, token_id: int) -> np.ndarray:
        if not 0 <= token_id < self.num_embeddings:
            raise IndexError(f"No embedding for token id {token_id}")
        return np.array(self._matrix[token_id], dtype=np.float32)


class DiskEmbeddingStore(InMemoryEmbeddingStore):
    """Embedding rows memory-mapped read-only from a ``.npy`` file."""

    def __init__(self, path: Path) -> None:
        try:
            matrix = np.load(path, mmap_mode="r")
        except (OSError, ValueError) as exc:
            raise ModelLoadError(f"Failed to open embeddings file {path}: {exc}") from exc
        if matrix.ndim != 2:
            raise ModelLoadError(f"Embeddings file {path} is not 2-D: shape {matrix.shape}")
        super().__init__(matrix)
        self._path = path
        logger.debug(
            "Memory-mapped %d embeddings of width %d from %s",
            self.num_embeddings,
            self.dim,
            path,
        )

    def close(self) -> None:
        """Drop the memory map; it is unmapped once no row views remain."""
        self._matrix = np.empty((0, self.dim), dtype=np.float32)
