"""Data types for the sampling subsystem."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class SamplingResult:
    """Result of choosing one token from a logits vector.

    Attributes:
        token_id: Vocabulary index of the chosen token.
        token_rank: Rank among probability-sorted candidates (0 = most probable).
        token_prob: Probability of the chosen token after filtering.
        num_candidates: Number of tokens surviving top-k and top-p filtering.
        end_token_mass: Cumulative probability of every token ranked at or
            above the end token, or ``None`` when not measured.
        diagnostics: Additional info (filtering stats, uniform draw).
    """

    token_id: int
    token_rank: int
    token_prob: float
    num_candidates: int
    end_token_mass: float | None
    diagnostics: dict[str, Any]
