"""Stop-condition evaluator.

Checks, in order, after every appended token:

1. **End token**: the token is ``end_token_id``, at least ``min_len`` tokens
   have been generated, and the end token's cumulative probability mass fits
   within ``end_threshold`` (when one is configured). The loop stops before
   emitting the token.
2. **Stop sequence**: the generated tokens end with one of
   ``stop_sequences``. Checked regardless of ``min_len``; the loop stops
   after emitting the token.
3. **Length**: ``max_len`` tokens have been generated. The boundary token is
   emitted, then the loop stops.

The first satisfied condition wins.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from recurrent_decoder.decoding.types import (
    CONTINUE,
    StopAction,
    StopReason,
    StopVerdict,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from recurrent_decoder.config import DecodingOptions

# Absorbs cumulative-sum rounding, so a threshold of 1.0 always admits.
_MASS_TOLERANCE = 1e-9


class StopConditionEvaluator:
    """Stateless stop-condition check over the generated tokens."""

    def should_stop(
        self,
        generated: Sequence[int],
        step: int,
        options: DecodingOptions,
        end_token_mass: float | None = None,
    ) -> StopVerdict:
        """Decide whether the generation ends at *step*.

        Args:
            generated: Tokens generated so far in this call, the token of
                *step* last. Prompt tokens are not included, so a prompt can
                never complete a stop sequence on its own.
            step: Zero-based index of the current step.
            options: Options of the current call.
            end_token_mass: Cumulative probability of the end token and every
                token ranked above it, as measured by the sampling policy.

        Returns:
            The verdict for the current token.
        """
        if not generated:
            return CONTINUE

        if self._end_token_fires(generated[-1], step, options, end_token_mass):
            return StopVerdict(StopAction.STOP_BEFORE_EMIT, StopReason.END_TOKEN)

        if self.matches_stop_sequence(generated, options.stop_sequences):
            return StopVerdict(StopAction.STOP_AFTER_EMIT, StopReason.STOP_SEQUENCE)

        if step + 1 >= options.max_len:
            return StopVerdict(StopAction.STOP_AFTER_EMIT, StopReason.MAX_LENGTH)

        return CONTINUE

    @staticmethod
    def _end_token_fires(
        token_id: int,
        step: int,
        options: DecodingOptions,
        end_token_mass: float | None,
    ) -> bool:
        if token_id != options.end_token_id:
            return False
        if step + 1 < options.min_len:
            return False
        if options.end_threshold is None:
            return True
        # An unmeasured mass means the end token was filtered out of the
        # distribution the threshold applies to.
        if end_token_mass is None:
            return False
        return end_token_mass <= options.end_threshold + _MASS_TOLERANCE

    @staticmethod
    def matches_stop_sequence(
        generated: Sequence[int],
        stop_sequences: Sequence[Sequence[int]],
    ) -> bool:
        """Whether *generated* ends with any of *stop_sequences* (exact ids)."""
        n = len(generated)
        for sequence in stop_sequences:
            m = len(sequence)
            if 0 < m <= n and tuple(generated[n - m :]) == tuple(sequence):
                return True
        return False
