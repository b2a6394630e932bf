"""Producer/consumer streaming of a generation.

One call runs its :class:`DecodeRun` on a dedicated producer thread that
feeds a :class:`TokenChannel`. The consumer drains the channel and renders
text. :meth:`StreamingDecoder.generate` waits for the consumer's completion
signal, then joins the producer, so both sides are finished when it returns.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING

from recurrent_decoder.decoding.cancel import CancellationToken
from recurrent_decoder.decoding.channel import TokenChannel
from recurrent_decoder.decoding.types import StopReason

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from typing import TextIO

    from recurrent_decoder.config import DecodingOptions
    from recurrent_decoder.decoding.loop import DecodeLoop, DecodeRun
    from recurrent_decoder.decoding.types import DecodingStep, GenerationResult
    from recurrent_decoder.model.vocabulary import TokenVocabulary

logger = logging.getLogger("recurrent_decoder")

_WAIT_INTERVAL_S = 0.1


def render_stream(
    channel: TokenChannel,
    writer: TextIO,
    token_by_id: Callable[[int], str],
    cancel: CancellationToken | None = None,
) -> GenerationResult | None:
    """Write the surface text of every event in *channel* to *writer*.

    A line break is written once the stream ends, also when it ends with an
    error. If rendering fails, the producer is cancelled and the channel
    drained before the error is re-raised.

    Returns:
        The generation result carried by the close marker.
    """
    try:
        for step in channel:
            writer.write(token_by_id(step.token_id))
            writer.flush()
    except Exception:
        if channel.result is None:
            if cancel is not None:
                cancel.cancel()
            channel.drain()
        raise
    finally:
        writer.write("\n")
        writer.flush()
    return channel.result


class GenerationHandle:
    """A running generation: its channel, cancellation token and producer."""

    def __init__(
        self,
        channel: TokenChannel,
        cancel: CancellationToken,
    ) -> None:
        self.channel = channel
        self.cancel = cancel
        self._result: GenerationResult | None = None
        self._thread: threading.Thread | None = None

    def __iter__(self) -> Iterator[DecodingStep]:
        return iter(self.channel)

    def join(self, timeout: float | None = None) -> GenerationResult | None:
        """Wait for the producer to finish and return its result."""
        if self._thread is not None:
            self._thread.join(timeout)
        return self._result

    def abort(self) -> GenerationResult | None:
        """Cancel, drain the channel and join the producer."""
        self.cancel.cancel()
        if self.channel.result is None:
            self.channel.drain()
        return self.join()

    def _start(self, run: DecodeRun) -> None:
        self._thread = threading.Thread(
            target=self._produce,
            args=(run,),
            daemon=True,
            name="recurrent-decoder-producer",
        )
        self._thread.start()

    def _produce(self, run: DecodeRun) -> None:
        sent = 0
        abandoned = False
        error: BaseException | None = None
        try:
            for step in run:
                if not self.channel.send(step, self.cancel):
                    abandoned = True
                    break
                sent += 1
        except Exception as exc:  # Delivered to the caller through the channel.
            error = exc
        result = dataclasses.replace(run.result(error), num_emitted=sent)
        if abandoned:
            result = dataclasses.replace(result, stop_reason=StopReason.CANCELLED)
        self._result = result
        self.channel.close(result)


class StreamingDecoder:
    """Runs generations through a bounded channel and renders them.

    Args:
        loop: The decode loop.
        vocabulary: Vocabulary used to render token ids.
        capacity: Channel capacity. ``<= 0`` sizes the channel to
            ``options.max_len``, so the producer never waits on the consumer.
    """

    def __init__(
        self,
        loop: DecodeLoop,
        vocabulary: TokenVocabulary,
        capacity: int = 0,
    ) -> None:
        self.loop = loop
        self.vocabulary = vocabulary
        self.capacity = capacity

    def stream(
        self,
        prompt: Sequence[int],
        options: DecodingOptions,
        cancel: CancellationToken | None = None,
    ) -> GenerationHandle:
        """Start a generation on a producer thread.

        The consumer must iterate the handle to the end (or call
        :meth:`GenerationHandle.abort`).

        Raises:
            ConfigurationError: If *options* or *prompt* are invalid; raised
                before the producer starts.
        """
        if cancel is None:
            cancel = CancellationToken()
        run = self.loop.decode(prompt, options, cancel)
        capacity = self.capacity if self.capacity > 0 else options.max_len
        handle = GenerationHandle(TokenChannel(capacity), cancel)
        handle._start(run)
        return handle

    def generate(
        self,
        prompt: Sequence[int],
        options: DecodingOptions,
        writer: TextIO,
        cancel: CancellationToken | None = None,
    ) -> GenerationResult:
        """Generate from *prompt*, writing the rendered text to *writer*.

        Returns once the consumer has drained the stream and the producer has
        finished.

        Returns:
            How the generation ended. Cancellation is not an error.

        Raises:
            ConfigurationError: If *options* or *prompt* are invalid.
            ModelInferenceError: If the model failed mid-generation.
            VocabularyLookupError: If a token could not be rendered.
        """
        if cancel is None:
            cancel = CancellationToken()
        handle = self.stream(prompt, options, cancel)

        done = threading.Event()
        consumer_errors: list[BaseException] = []

        def _consume() -> None:
            try:
                render_stream(handle.channel, writer, self.vocabulary.token_by_id, cancel)
            except Exception as exc:  # Re-raised below on the calling thread.
                consumer_errors.append(exc)
            finally:
                done.set()

        consumer = threading.Thread(
            target=_consume,
            daemon=True,
            name="recurrent-decoder-consumer",
        )
        consumer.start()

        # Short waits keep the calling thread responsive to signals.
        while not done.wait(_WAIT_INTERVAL_S):
            pass
        consumer.join()
        result = handle.join()

        if result is not None and result.error is not None:
            raise result.error
        if consumer_errors:
            raise consumer_errors[0]
        assert result is not None
        logger.debug(
            "Generation finished: reason=%s emitted=%d",
            result.stop_reason.value if result.stop_reason else None,
            result.num_emitted,
        )
        return result
