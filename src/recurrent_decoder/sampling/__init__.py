"""Sampling subsystem for recurrent-decoder.

Turns a logits vector into a token id: greedy arg-max, or temperature
scaling, top-k, softmax, top-p and a CDF lookup driven by a uniform draw.
"""

from recurrent_decoder.sampling.policy import SamplingPolicy
from recurrent_decoder.sampling.types import SamplingResult

__all__ = [
    "SamplingPolicy",
    "SamplingResult",
]
