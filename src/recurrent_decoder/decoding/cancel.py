"""Cooperative cancellation.

A :class:`CancellationToken` is checked by the decode loop at step
boundaries. :func:`interrupt_on_signal` turns a process interrupt into a
cancellation for the duration of one call.
"""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("recurrent_decoder")


class CancellationToken:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or *timeout* elapses; return the flag."""
        return self._event.wait(timeout)


@contextmanager
def interrupt_on_signal(
    token: CancellationToken,
    signum: int = signal.SIGINT,
) -> Iterator[CancellationToken]:
    """Cancel *token* when *signum* arrives, restoring the previous handler on exit.

    Signal handlers can only be installed from the main thread; elsewhere
    the token is yielded unchanged and only explicit ``cancel()`` applies.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handler(received: int, frame: Any) -> None:
        logger.debug("Received signal %d, cancelling generation", received)
        token.cancel()

    previous = signal.signal(signum, _handler)
    try:
        yield token
    finally:
        signal.signal(signum, previous)
