"""Streaming decode engine.

The decode loop, its stop conditions, the bounded token channel with
cooperative cancellation, and the producer/consumer join.
"""

from recurrent_decoder.decoding.cancel import CancellationToken, interrupt_on_signal
from recurrent_decoder.decoding.channel import TokenChannel
from recurrent_decoder.decoding.loop import DecodeLoop, DecodeRun
from recurrent_decoder.decoding.stopping import StopConditionEvaluator
from recurrent_decoder.decoding.streaming import (
    GenerationHandle,
    StreamingDecoder,
    render_stream,
)
from recurrent_decoder.decoding.types import (
    DecodingStep,
    GenerationResult,
    StopAction,
    StopReason,
    StopVerdict,
)

__all__ = [
    "CancellationToken",
    "DecodeLoop",
    "DecodeRun",
    "DecodingStep",
    "GenerationHandle",
    "GenerationResult",
    "StopAction",
    "StopConditionEvaluator",
    "StopReason",
    "StopVerdict",
    "StreamingDecoder",
    "TokenChannel",
    "interrupt_on_signal",
    "render_stream",
]
