"""Bounded single-producer/single-consumer token channel.

The producer sends :class:`DecodingStep` events and closes the channel
exactly once with the :class:`GenerationResult`; the close marker travels
through the same queue, so the consumer sees every event before it learns
how the generation ended.
"""

from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from recurrent_decoder.decoding.cancel import CancellationToken
    from recurrent_decoder.decoding.types import DecodingStep, GenerationResult

_POLL_INTERVAL_S = 0.05


@dataclass(frozen=True, slots=True)
class _Close:
    result: GenerationResult


class TokenChannel:
    """Bounded queue of decoding events with an explicit end-of-stream marker.

    Iterating the channel yields events until the close marker arrives. If
    the producer failed, the failure is raised to the consumer after the
    last event.

    Args:
        capacity: Maximum number of undelivered events. A full channel blocks
            the producer (backpressure).

    Raises:
        ValueError: If *capacity* is not positive.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"Channel capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        # One extra slot keeps room for the close marker.
        self._queue: queue.Queue[DecodingStep | _Close] = queue.Queue(maxsize=capacity + 1)
        self._slots = threading.BoundedSemaphore(capacity)
        self._close_lock = threading.Lock()
        self._closed = False
        self._result: GenerationResult | None = None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        """Whether the producer has closed the channel."""
        return self._closed

    @property
    def result(self) -> GenerationResult | None:
        """How the generation ended, once the consumer reached the close marker."""
        return self._result

    def send(self, step: DecodingStep, cancel: CancellationToken | None = None) -> bool:
        """Enqueue *step*, blocking while the channel is full.

        Args:
            step: The event to deliver.
            cancel: If given, waiting on a full channel is abandoned once
                cancellation is requested.

        Returns:
            True if the event was enqueued, False if abandoned on cancellation.

        Raises:
            RuntimeError: If the channel is already closed.
        """
        if self._closed:
            raise RuntimeError("Cannot send on a closed channel")
        while not self._slots.acquire(timeout=_POLL_INTERVAL_S):
            if cancel is not None and cancel.is_cancelled:
                return False
        self._queue.put_nowait(step)
        return True

    def close(self, result: GenerationResult) -> None:
        """Publish the end-of-stream marker carrying *result*.

        Never blocks: a slot is always reserved for the marker.

        Raises:
            RuntimeError: If the channel was already closed.
        """
        with self._close_lock:
            if self._closed:
                raise RuntimeError("Channel already closed")
            self._closed = True
        self._queue.put_nowait(_Close(result))

    def __iter__(self) -> Iterator[DecodingStep]:
        while True:
            item = self._queue.get()
            if isinstance(item, _Close):
                self._result = item.result
                if item.result.error is not None:
                    raise item.result.error
                return
            self._slots.release()
            yield item

    def drain(self) -> GenerationResult:
        """Discard pending events until the close marker; return the result.

        Used by a consumer that stopped rendering early, so the producer is
        never left blocked on a full channel.
        """
        while True:
            item = self._queue.get()
            if isinstance(item, _Close):
                self._result = item.result
                return item.result
            self._slots.release()
