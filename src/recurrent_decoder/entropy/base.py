"""Entropy sources feed the uniform draws of the sampling policy.

A source yields raw bytes. :meth:`EntropySource.uniform` turns eight of them
into a float64, and a source with a native float generator may replace it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import numpy as np

# 53 random bits fill the mantissa of a float64 in [0, 1).
_FLOAT64_BITS = 53


class EntropySource(ABC):
    """Supplier of random bytes and of uniform floats in [0, 1)."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name the source is registered under."""

    @abstractmethod
    def get_random_bytes(self, n: int) -> bytes:
        """Return exactly *n* random bytes."""

    def uniform(self) -> float:
        """Return one float64 drawn uniformly from [0, 1).

        Reads 8 bytes and keeps their top 53 bits.
        """
        raw = np.frombuffer(self.get_random_bytes(8), dtype=np.uint64)[0]
        return float(int(raw) >> (64 - _FLOAT64_BITS)) / float(1 << _FLOAT64_BITS)

    @abstractmethod
    def close(self) -> None:
        """Release resources held by the source."""
