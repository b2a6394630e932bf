"""Diagnostic logger for per-step decoding events.

Uses the standard ``logging`` module with the ``"recurrent_decoder"`` logger.
No ``print()`` statements. Supports three verbosity levels and an
in-memory diagnostic mode for post-hoc analysis.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict
from typing import Any

from recurrent_decoder.logging.types import StepRecord

logger = logging.getLogger("recurrent_decoder")

_LOG_LEVELS = frozenset({"none", "summary", "full"})


class DecodeLogger:
    """Per-step diagnostic logger.

    Log levels:
        ``"none"``: No logging output. Records are still stored if
        ``diagnostic_mode=True``.

        ``"summary"``: One line per step with key metrics (step, token_id,
        rank, probability, stop action).

        ``"full"``: Full JSON dump of all record fields.

    Diagnostic mode stores all records in memory for post-hoc analysis via
    ``get_diagnostic_data()`` and ``get_summary_stats()``.

    Args:
        log_level: One of ``"none"``, ``"summary"``, ``"full"``.
        diagnostic_mode: Whether to keep every record in memory.

    Raises:
        ValueError: If *log_level* is unknown.
    """

    def __init__(self, log_level: str = "none", diagnostic_mode: bool = False) -> None:
        if log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Unknown log level {log_level!r}; expected one of {sorted(_LOG_LEVELS)}"
            )
        self._log_level = log_level
        self._diagnostic_mode = diagnostic_mode
        self._records: list[StepRecord] = []
        # Records arrive from producer threads.
        self._lock = threading.Lock()

    def log_step(self, record: StepRecord) -> None:
        """Log a single decoding step.

        Args:
            record: Immutable record of the step.
        """
        if self._diagnostic_mode:
            with self._lock:
                self._records.append(record)

        if self._log_level == "none":
            return

        if self._log_level == "summary":
            logger.info(
                "step=%d token=%d rank=%d prob=%.4f candidates=%d%s action=%s time=%.2fms",
                record.step,
                record.token_id,
                record.token_rank,
                record.token_prob,
                record.num_candidates,
                "" if record.emitted else " [SUPPRESSED]",
                record.stop_action,
                record.step_ms,
            )
        elif self._log_level == "full":
            logger.info("step_record: %s", json.dumps(asdict(record), default=str))

    def get_diagnostic_data(self) -> list[StepRecord]:
        """Return all stored records (requires ``diagnostic_mode=True``)."""
        with self._lock:
            return list(self._records)

    def get_summary_stats(self) -> dict[str, Any]:
        """Compute summary statistics over all stored records.

        Returns:
            Dictionary with aggregate stats, or empty dict if no records.
        """
        records = self.get_diagnostic_data()
        if not records:
            return {}

        n = len(records)
        step_times = [r.step_ms for r in records]
        emitted = sum(1 for r in records if r.emitted)
        return {
            "total_steps": n,
            "emitted_tokens": emitted,
            "suppressed_tokens": n - emitted,
            "mean_rank": sum(r.token_rank for r in records) / n,
            "mean_prob": sum(r.token_prob for r in records) / n,
            "mean_candidates": sum(r.num_candidates for r in records) / n,
            "mean_step_ms": sum(step_times) / n,
            "max_step_ms": max(step_times),
        }
