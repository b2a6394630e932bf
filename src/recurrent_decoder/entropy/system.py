"""System entropy source using ``os.urandom()``.

This is the default source. It is always available on all platforms and
makes every sampled generation non-reproducible.
"""

from __future__ import annotations

import os

from recurrent_decoder.entropy.base import EntropySource
from recurrent_decoder.entropy.registry import register_entropy_source


@register_entropy_source("system")
class SystemEntropySource(EntropySource):
    """Draws bytes from ``os.urandom()``."""

    @property
    def name(self) -> str:
        """Return ``'system'``."""
        return "system"

    def get_random_bytes(self, n: int) -> bytes:
        """Return *n* bytes from the OS CSPRNG."""
        return os.urandom(n)

    def close(self) -> None:
        """No-op -- no resources to release."""
