"""The decode loop: state-threaded encode/predict cycle.

Per call:

1. The whole prompt is encoded once (the only multi-token encode).
2. Each step predicts logits from the last hidden vector, chooses a token,
   appends it to the context, checks the stop conditions, emits the token
   unless it is a swallowed end token, and (unless stopping or cancelled)
   encodes the single new token on top of the previous state.

Every encode returns a new state value; the previous one is left intact.
Model failures surface as :class:`ModelInferenceError` and are never retried,
because the state after a failed step is not known-good.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from recurrent_decoder.config import validate_options
from recurrent_decoder.decoding.cancel import CancellationToken
from recurrent_decoder.decoding.stopping import StopConditionEvaluator
from recurrent_decoder.decoding.types import (
    DecodingStep,
    GenerationResult,
    StopReason,
    StopVerdict,
)
from recurrent_decoder.exceptions import ConfigurationError, DecoderError, ModelInferenceError
from recurrent_decoder.logging.types import StepRecord
from recurrent_decoder.sampling.policy import SamplingPolicy

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    import numpy as np

    from recurrent_decoder.config import DecodingOptions
    from recurrent_decoder.logging.logger import DecodeLogger
    from recurrent_decoder.model.base import RecurrentLanguageModel, RecurrentState
    from recurrent_decoder.sampling.types import SamplingResult

logger = logging.getLogger("recurrent_decoder")


class DecodeLoop:
    """Orchestrates model, sampling policy and stop conditions across steps.

    The loop itself is stateless: every call to :meth:`decode` returns an
    independent :class:`DecodeRun` owning its own context and state.

    Args:
        model: The recurrent language model (read-only during generation).
        policy: Token choice policy. Defaults to a :class:`SamplingPolicy`
            over system entropy.
        evaluator: Stop-condition evaluator.
        decode_logger: Optional per-step diagnostic logger.
    """

    def __init__(
        self,
        model: RecurrentLanguageModel,
        policy: SamplingPolicy | None = None,
        evaluator: StopConditionEvaluator | None = None,
        decode_logger: DecodeLogger | None = None,
    ) -> None:
        self.model = model
        self.policy = policy if policy is not None else SamplingPolicy()
        self.evaluator = evaluator if evaluator is not None else StopConditionEvaluator()
        self.decode_logger = decode_logger

    def decode(
        self,
        prompt: Sequence[int],
        options: DecodingOptions,
        cancel: CancellationToken | None = None,
    ) -> DecodeRun:
        """Prepare a generation for *prompt*.

        Validation happens here, before any model call. The returned run is
        lazy: nothing is encoded until it is iterated.

        Args:
            prompt: Prompt token ids.
            options: Options of this call.
            cancel: Cancellation token checked at step boundaries.

        Returns:
            A single-use iterable of emitted :class:`DecodingStep`.

        Raises:
            ConfigurationError: If *options* are invalid or *prompt* is empty.
        """
        validate_options(options)
        tokens = [int(token_id) for token_id in prompt]
        if not tokens:
            raise ConfigurationError("The prompt must contain at least one token")
        if cancel is None:
            cancel = CancellationToken()
        return DecodeRun(self, tokens, options, cancel)


class DecodeRun:
    """Lazy sequence of emitted tokens for one generation call.

    Iterate it exactly once. After iteration ends (or is abandoned),
    ``stop_reason``, ``context`` and ``state`` describe how far it got.
    """

    def __init__(
        self,
        loop: DecodeLoop,
        prompt: list[int],
        options: DecodingOptions,
        cancel: CancellationToken,
    ) -> None:
        self._loop = loop
        self._options = options
        self._cancel = cancel
        self._prompt_len = len(prompt)
        self._context: list[int] = prompt
        self._state: RecurrentState | None = None
        self._stop_reason: StopReason | None = None
        self._num_emitted = 0
        self._started = False

    @property
    def options(self) -> DecodingOptions:
        return self._options

    @property
    def context(self) -> tuple[int, ...]:
        """Prompt plus every generated token so far."""
        return tuple(self._context)

    @property
    def generated(self) -> tuple[int, ...]:
        """Generated tokens, including swallowed end tokens."""
        return tuple(self._context[self._prompt_len :])

    @property
    def state(self) -> RecurrentState | None:
        """Recurrent state consistent with the encoded part of the context."""
        return self._state

    @property
    def stop_reason(self) -> StopReason | None:
        """Why the run ended, ``None`` while running or after a failure."""
        return self._stop_reason

    @property
    def num_generated(self) -> int:
        return len(self._context) - self._prompt_len

    @property
    def num_emitted(self) -> int:
        return self._num_emitted

    def result(self, error: BaseException | None = None) -> GenerationResult:
        """Summarize the run, optionally attaching the *error* that ended it."""
        return GenerationResult(
            stop_reason=self._stop_reason if error is None else None,
            num_generated=self.num_generated,
            num_emitted=self._num_emitted,
            error=error,
        )

    def __iter__(self) -> Iterator[DecodingStep]:
        if self._started:
            raise RuntimeError("A decode run can only be iterated once")
        self._started = True
        return self._run()

    def _run(self) -> Iterator[DecodingStep]:
        options = self._options
        policy = self._loop.policy
        evaluator = self._loop.evaluator

        hidden, self._state = self._encode(self._context, None, encode_full_sequence=True)
        generated: list[int] = []

        for step in range(options.max_len):
            if self._cancel.is_cancelled:
                self._stop_reason = StopReason.CANCELLED
                break

            started = time.perf_counter()
            result = policy.choose(self._predict(hidden), options)
            token_id = result.token_id
            self._context.append(token_id)
            generated.append(token_id)

            verdict = evaluator.should_stop(generated, step, options, result.end_token_mass)
            emit = not (options.skip_end_token_id and token_id == options.end_token_id)
            self._log_step(step, result, emit, verdict, started)

            if emit:
                self._num_emitted += 1
                yield DecodingStep(token_id=token_id, step=step)

            if verdict.stops:
                self._stop_reason = verdict.reason
                break
            if self._cancel.is_cancelled:
                self._stop_reason = StopReason.CANCELLED
                break

            hidden, self._state = self._encode(
                [token_id], self._state, encode_full_sequence=False
            )
        else:
            self._stop_reason = StopReason.MAX_LENGTH

        logger.debug(
            "Generation stopped: reason=%s generated=%d emitted=%d",
            self._stop_reason.value if self._stop_reason else None,
            self.num_generated,
            self._num_emitted,
        )

    def _encode(
        self,
        tokens: Sequence[int],
        state: RecurrentState | None,
        encode_full_sequence: bool,
    ) -> tuple[np.ndarray, RecurrentState]:
        try:
            return self._loop.model.encode(tokens, state, encode_full_sequence)
        except DecoderError:
            raise
        except Exception as exc:
            raise ModelInferenceError(f"Failed to encode {len(tokens)} token(s): {exc}") from exc

    def _predict(self, hidden: np.ndarray) -> np.ndarray:
        try:
            return self._loop.model.predict(hidden)
        except DecoderError:
            raise
        except Exception as exc:
            raise ModelInferenceError(f"Failed to predict next-token logits: {exc}") from exc

    def _log_step(
        self,
        step: int,
        result: SamplingResult,
        emitted: bool,
        verdict: StopVerdict,
        started: float,
    ) -> None:
        decode_logger = self._loop.decode_logger
        if decode_logger is None:
            return
        decode_logger.log_step(
            StepRecord(
                timestamp_ns=time.time_ns(),
                step=step,
                token_id=result.token_id,
                token_rank=result.token_rank,
                token_prob=result.token_prob,
                num_candidates=result.num_candidates,
                end_token_mass=result.end_token_mass,
                emitted=emitted,
                stop_action=verdict.action.value,
                step_ms=(time.perf_counter() - started) * 1000.0,
            )
        )
