"""recurrent-decoder: streaming autoregressive decoding for recurrent language models.

The decode loop threads a recurrent state through an encode/predict cycle,
chooses each token with a temperature/top-k/top-p sampling policy and hands
emitted tokens to a consumer through a bounded channel.
"""

from __future__ import annotations

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("recurrent-decoder")
except PackageNotFoundError:
    __version__ = "0.0.0"

from recurrent_decoder.config import DecoderConfig, DecodingOptions, resolve_options
from recurrent_decoder.decoding import (
    CancellationToken,
    DecodeLoop,
    DecodingStep,
    GenerationResult,
    StopReason,
    StreamingDecoder,
)
from recurrent_decoder.exceptions import DecoderError
from recurrent_decoder.model import ModelStore, RecurrentLanguageModel
from recurrent_decoder.sampling import SamplingPolicy


__all__ = [
    "CancellationToken",
    "DecodeLoop",
    "DecoderConfig",
    "DecoderError",
    "DecodingOptions",
    "DecodingStep",
    "GenerationResult",
    "ModelStore",
    "RecurrentLanguageModel",
    "SamplingPolicy",
    "StopReason",
    "StreamingDecoder",
    "__version__",
    "resolve_options",
]
