"""Entropy source subsystem for recurrent-decoder.

Re-exports the ABC, registry, and all built-in source implementations::

    from recurrent_decoder.entropy import EntropySource, EntropySourceRegistry
    from recurrent_decoder.entropy import SeededEntropySource, SystemEntropySource
"""

from recurrent_decoder.entropy.base import EntropySource
from recurrent_decoder.entropy.registry import EntropySourceRegistry, register_entropy_source
from recurrent_decoder.entropy.seeded import SeededEntropySource
from recurrent_decoder.entropy.system import SystemEntropySource

__all__ = [
    "EntropySource",
    "EntropySourceRegistry",
    "SeededEntropySource",
    "SystemEntropySource",
    "register_entropy_source",
]
