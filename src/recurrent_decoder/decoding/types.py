"""Data types shared by the decode loop, the stream and its consumers."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class StopReason(enum.Enum):
    """Why a generation ended."""

    END_TOKEN = "end_token"
    STOP_SEQUENCE = "stop_sequence"
    MAX_LENGTH = "max_length"
    CANCELLED = "cancelled"


class StopAction(enum.Enum):
    """What the decode loop does with the token of the current step.

    ``STOP_BEFORE_EMIT`` ends the generation at the end token. The token is
    withheld from the consumer only when ``skip_end_token_id`` is set.
    ``STOP_AFTER_EMIT`` emits the token, then ends the generation.
    """

    CONTINUE = "continue"
    STOP_BEFORE_EMIT = "stop_before_emit"
    STOP_AFTER_EMIT = "stop_after_emit"


@dataclass(frozen=True, slots=True)
class StopVerdict:
    """Result of a stop-condition check.

    Attributes:
        action: What to do with the current token.
        reason: Why the generation stops, ``None`` for ``CONTINUE``.
    """

    action: StopAction
    reason: StopReason | None = None

    @property
    def stops(self) -> bool:
        """Whether the generation ends at this step."""
        return self.action is not StopAction.CONTINUE


CONTINUE = StopVerdict(StopAction.CONTINUE)


@dataclass(frozen=True, slots=True)
class DecodingStep:
    """One emitted token.

    Attributes:
        token_id: Vocabulary index of the token.
        step: Zero-based generation step that produced it.
    """

    token_id: int
    step: int


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """How a generation call terminated.

    Attributes:
        stop_reason: Why the loop ended, ``None`` if it failed.
        num_generated: Tokens appended to the context.
        num_emitted: Tokens published to the stream.
        error: The failure that ended the call, if any.
    """

    stop_reason: StopReason | None
    num_generated: int
    num_emitted: int
    error: BaseException | None = None

    @property
    def cancelled(self) -> bool:
        """Whether the call stopped early on request, without error."""
        return self.stop_reason is StopReason.CANCELLED
