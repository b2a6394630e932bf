"""Data types for the diagnostic logging subsystem."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StepRecord:
    """Immutable record of a single decoding step.

    Attributes:
        timestamp_ns: Wall-clock time of the step (nanoseconds since epoch).
        step: Zero-based generation step index.
        token_id: Vocabulary index of the chosen token.
        token_rank: Rank of the chosen token (0 = most probable).
        token_prob: Probability of the chosen token after filtering.
        num_candidates: Number of tokens surviving filtering.
        end_token_mass: Cumulative mass at the end token, if measured.
        emitted: Whether the token was published to the stream.
        stop_action: Stop verdict for this step (``'continue'``, ...).
        step_ms: Time spent predicting and choosing the token (ms).
    """

    timestamp_ns: int
    step: int
    token_id: int
    token_rank: int
    token_prob: float
    num_candidates: int
    end_token_mass: float | None
    emitted: bool
    stop_action: str
    step_ms: float
