"""Diagnostic logging subsystem for recurrent-decoder.

Provides immutable per-step decoding records and a configurable logger
that supports none/summary/full verbosity and in-memory diagnostic mode.
"""

from recurrent_decoder.logging.logger import DecodeLogger
from recurrent_decoder.logging.types import StepRecord

__all__ = [
    "DecodeLogger",
    "StepRecord",
]
