"""CDF-based sampling policy.

Implements the full token choice pipeline: temperature scaling -> stable
descending sort -> top-k -> softmax -> top-p -> renormalize -> CDF lookup with
a uniform value drawn from the entropy source.

Candidates are always kept in descending-score order with ties broken by
the lowest vocabulary index, so for a fixed sequence of uniform draws the
chosen tokens are fully determined by the logits and the options.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from recurrent_decoder.entropy.system import SystemEntropySource
from recurrent_decoder.exceptions import TokenSelectionError
from recurrent_decoder.sampling.types import SamplingResult

if TYPE_CHECKING:
    from recurrent_decoder.config import DecodingOptions
    from recurrent_decoder.entropy.base import EntropySource


class SamplingPolicy:
    """Chooses the next token from a logits vector.

    The policy holds no per-call state; the only mutable collaborator is the
    entropy source that supplies uniform draws.

    Args:
        entropy_source: Source of uniform draws. Defaults to
            :class:`SystemEntropySource`.
    """

    def __init__(self, entropy_source: EntropySource | None = None) -> None:
        if entropy_source is None:
            entropy_source = SystemEntropySource()
        self._entropy_source = entropy_source

    @property
    def entropy_source(self) -> EntropySource:
        """The source of uniform draws."""
        return self._entropy_source

    def choose(self, logits: np.ndarray, options: DecodingOptions) -> SamplingResult:
        """Choose one token from *logits*.

        Args:
            logits: 1-D logit array (vocab_size,).
            options: Options of the current call.

        Returns:
            SamplingResult with the chosen token and diagnostics.

        Raises:
            TokenSelectionError: If the logits are empty or not finite, or no
                candidate survives filtering.
        """
        scores = np.asarray(logits, dtype=np.float64)
        if scores.ndim != 1 or scores.size == 0:
            raise TokenSelectionError(
                f"Expected a non-empty 1-D logits vector, got shape {scores.shape}"
            )
        if not np.all(np.isfinite(scores)):
            raise TokenSelectionError("Logits contain non-finite values")

        if not options.use_sampling:
            return self._greedy(scores, options)

        # 1. Temperature scaling, shifted so the largest score is 0.
        with np.errstate(over="ignore"):
            scaled = (scores - np.max(scores)) / options.temperature

        # 2. Descending order, lowest index first among ties.
        order = self._descending_order(scaled)

        # 3. Top-k filtering.
        candidates = self._apply_top_k(order, options.top_k)
        effective_k = len(candidates)

        # 4. Softmax over the survivors.
        probs = self._stable_softmax(scaled[candidates])

        # 5. Top-p (nucleus) filtering and renormalization.
        candidates, probs = self._apply_top_p(candidates, probs, options.top_p)

        # 6. CDF selection.
        u = self._entropy_source.uniform()
        rank = self._cdf_select(probs, u)

        end_token_mass: float | None = None
        if options.end_threshold is not None:
            if options.end_threshold_basis == "filtered":
                end_token_mass = self._cumulative_mass_at(candidates, probs, options.end_token_id)
            else:
                raw = self._stable_softmax(scaled[order])
                end_token_mass = self._cumulative_mass_at(order, raw, options.end_token_id)

        return SamplingResult(
            token_id=int(candidates[rank]),
            token_rank=rank,
            token_prob=float(probs[rank]),
            num_candidates=len(candidates),
            end_token_mass=end_token_mass,
            diagnostics={
                "effective_top_k": effective_k,
                "effective_top_p_candidates": len(candidates),
                "u": u,
            },
        )

    def _greedy(self, scores: np.ndarray, options: DecodingOptions) -> SamplingResult:
        """Arg-max choice. ``np.argmax`` returns the lowest index among ties.

        Greedy decoding applies no filtering, so the end token mass is always
        measured on the raw distribution.
        """
        token_id = int(np.argmax(scores))
        order = self._descending_order(scores)
        probs = self._stable_softmax(scores[order])

        end_token_mass: float | None = None
        if options.end_threshold is not None:
            end_token_mass = self._cumulative_mass_at(order, probs, options.end_token_id)

        return SamplingResult(
            token_id=token_id,
            token_rank=0,
            token_prob=float(probs[0]),
            num_candidates=1,
            end_token_mass=end_token_mass,
            diagnostics={"greedy": True},
        )

    @staticmethod
    def _descending_order(scores: np.ndarray) -> np.ndarray:
        """Vocabulary indices sorted by descending score, stable on ties."""
        return np.argsort(-scores, kind="stable")

    @staticmethod
    def _apply_top_k(order: np.ndarray, k: int) -> np.ndarray:
        """Keep the first *k* entries of *order*. ``k <= 0`` disables filtering."""
        if k <= 0 or k >= len(order):
            return order
        return order[:k]

    @staticmethod
    def _stable_softmax(scores: np.ndarray) -> np.ndarray:
        """Numerically stable softmax via shift-by-max.

        Args:
            scores: 1-D array of finite scores.

        Returns:
            Probability array of the same shape, summing to 1.0.
        """
        shifted = scores - np.max(scores)
        exp_shifted = np.exp(shifted)
        result: np.ndarray = exp_shifted / np.sum(exp_shifted)
        return result

    @staticmethod
    def _apply_top_p(
        candidates: np.ndarray,
        probs: np.ndarray,
        top_p: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Nucleus filtering: keep the smallest prefix with cumulative prob >= top_p.

        Args:
            candidates: Vocabulary indices in descending-probability order.
            probs: Probabilities aligned with *candidates*, summing to 1.0.
            top_p: Cumulative probability threshold in (0, 1]. 1.0 disables.

        Returns:
            Tuple of (surviving candidates, renormalized probabilities).
        """
        if top_p >= 1.0:
            return candidates, probs

        cumulative = np.cumsum(probs)
        cutoff_mask = cumulative >= top_p
        # The token that crosses the threshold is included, so at least one survives.
        cutoff_idx = int(np.argmax(cutoff_mask)) if np.any(cutoff_mask) else len(probs) - 1

        kept = probs[: cutoff_idx + 1]
        return candidates[: cutoff_idx + 1], kept / np.sum(kept)

    @staticmethod
    def _cdf_select(probs: np.ndarray, u: float) -> int:
        """Return the rank whose CDF interval contains *u*.

        ``side="right"`` finds the first CDF value strictly above *u*, so an
        entry with zero probability can never be selected.

        Args:
            probs: Candidate probabilities in descending order.
            u: Uniform value in [0, 1).

        Raises:
            TokenSelectionError: If no candidate has non-zero probability.
        """
        nonzero = np.flatnonzero(probs > 0)
        if nonzero.size == 0:
            raise TokenSelectionError("No tokens with non-zero probability for CDF selection")

        cdf = np.cumsum(probs)
        rank = int(np.searchsorted(cdf, u, side="right"))
        # Rounding can leave cdf[-1] just below u.
        return min(rank, int(nonzero[-1]))

    @staticmethod
    def _cumulative_mass_at(
        candidates: np.ndarray,
        probs: np.ndarray,
        token_id: int,
    ) -> float | None:
        """Cumulative probability of *token_id* and every candidate ranked above it.

        Returns:
            The mass, or ``None`` if *token_id* is not among the candidates.
        """
        positions = np.flatnonzero(candidates == token_id)
        if positions.size == 0:
            return None
        return float(np.sum(probs[: int(positions[0]) + 1]))
