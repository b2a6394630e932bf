"""Configuration system for recurrent-decoder.

Two layers:

- ``DecodingOptions``: an immutable pydantic model holding the knobs of a
  single generation call. Semantic checks live in :func:`validate_options`,
  which the decode loop runs before its first model call.
- ``DecoderConfig``: pydantic-settings, resolved as
  init kwargs -> environment variables (RD_*) -> .env file -> field defaults.
  Holds infrastructure fields plus the default decoding knobs used by the CLI.

Per-call overrides are applied via resolve_options() which creates a new
options instance without mutating the defaults.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from recurrent_decoder.exceptions import ConfigurationError

# Default stop sequences for question-answer prompting with the GPT-NeoX
# tokenizer: "\nQuestion:", "\nQ & A:", "\nQ:".
_DEFAULT_STOP_SEQUENCES: tuple[tuple[int, ...], ...] = (
    (187, 23433, 27),
    (187, 50, 708, 329),
    (187, 50, 27),
)


class DecodingOptions(BaseModel):
    """Knobs of a single generation call.

    Instances are frozen: the options cannot change while a call is running.

    Attributes:
        min_len: The end token is not treated as a stop trigger before this
            many tokens have been generated.
        max_len: Upper bound on generated tokens.
        end_token_id: Token id that ends the generation.
        skip_end_token_id: Whether the end token is swallowed instead of
            emitted to the consumer.
        temperature: Logit scaling factor applied when sampling.
        top_p: Nucleus threshold in (0, 1]. 1.0 disables.
        top_k: Number of highest logits kept. 0 disables.
        use_sampling: False forces greedy arg-max decoding.
        end_threshold: Optional cumulative probability mass the end token
            (together with every token ranked above it) must fit within for
            the end token to stop the generation.
        end_threshold_basis: Distribution the end token mass is measured on:
            ``"raw"`` (temperature-scaled, unfiltered) or ``"filtered"``
            (after top-k and top-p).
        stop_sequences: Token-id sequences that stop the generation once the
            generated tokens end with one of them.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    min_len: int = 0
    max_len: int = 200
    end_token_id: int = 0
    skip_end_token_id: bool = True
    temperature: float = 1.0
    top_p: float = 1.0
    top_k: int = 0
    use_sampling: bool = True
    end_threshold: float | None = None
    end_threshold_basis: Literal["raw", "filtered"] = "raw"
    stop_sequences: tuple[tuple[int, ...], ...] = ()


def validate_options(options: DecodingOptions) -> None:
    """Check cross-field constraints of *options*.

    Args:
        options: The options of the upcoming call.

    Raises:
        ConfigurationError: If any constraint is violated.
    """
    if options.max_len < 1:
        raise ConfigurationError(f"max_len must be >= 1, got {options.max_len}")
    if options.min_len < 0:
        raise ConfigurationError(f"min_len must be >= 0, got {options.min_len}")
    if options.min_len > options.max_len:
        raise ConfigurationError(
            f"min_len ({options.min_len}) must not exceed max_len ({options.max_len})"
        )
    if options.end_token_id < 0:
        raise ConfigurationError(f"end_token_id must be >= 0, got {options.end_token_id}")
    if not 0.0 < options.top_p <= 1.0:
        raise ConfigurationError(f"top_p must be in (0, 1], got {options.top_p}")
    if options.top_k < 0:
        raise ConfigurationError(f"top_k must be >= 0, got {options.top_k}")
    if options.use_sampling and not options.temperature > 0.0:
        raise ConfigurationError(
            f"temperature must be > 0 when sampling, got {options.temperature}"
        )
    if options.end_threshold is not None and not 0.0 < options.end_threshold <= 1.0:
        raise ConfigurationError(
            f"end_threshold must be in (0, 1], got {options.end_threshold}"
        )
    for sequence in options.stop_sequences:
        if not sequence:
            raise ConfigurationError("stop sequences must not be empty")
        if any(token_id < 0 for token_id in sequence):
            raise ConfigurationError(f"stop sequence has a negative token id: {list(sequence)}")


def resolve_options(
    defaults: DecodingOptions,
    overrides: dict[str, Any] | None,
) -> DecodingOptions:
    """Create new options merging *defaults* with per-call *overrides*.

    Args:
        defaults: The base options.
        overrides: Field names mapped to new values.

    Returns:
        A new, validated DecodingOptions instance.

    Raises:
        ConfigurationError: If a key is unknown, a value has the wrong type,
            or the merged options violate a constraint.
    """
    if not overrides:
        return defaults

    # model_copy(update=...) skips validation; model_validate coerces and
    # rejects unknown keys.
    merged = defaults.model_dump()
    merged.update(overrides)
    try:
        options = DecodingOptions.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid decoding options: {exc}") from exc
    validate_options(options)
    return options


class DecoderConfig(BaseSettings):
    """Process-wide configuration for recurrent-decoder.

    Resolution order: init kwargs -> env vars (RD_*) -> .env file -> defaults.

    Fields are divided into two groups:
    - **Infrastructure**: entropy source, stream capacity, diagnostics.
    - **Decoding defaults**: the options every CLI prompt starts from.
    """

    model_config = SettingsConfigDict(
        env_prefix="RD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Infrastructure ---

    entropy_source_type: str = Field(
        default="system",
        description="Source of the uniform draws used for sampling: 'system' or 'seeded'",
    )
    seed: int | None = Field(
        default=None,
        description="Seed for the 'seeded' entropy source (None = fresh OS entropy)",
    )
    queue_capacity: int = Field(
        default=0,
        description="Token channel capacity (<=0 sizes the channel to max_len)",
    )

    # --- Logging ---

    log_level: str = Field(
        default="none",
        description="Per-step logging verbosity: 'none', 'summary', 'full'",
    )
    diagnostic_mode: bool = Field(
        default=False,
        description="Store all step records in memory for analysis",
    )

    # --- Decoding defaults ---

    min_len: int = Field(default=0, description="Minimum generated tokens before the end token")
    max_len: int = Field(default=200, description="Maximum generated tokens")
    end_token_id: int = Field(default=0, description="End-of-text token id")
    skip_end_token_id: bool = Field(default=True, description="Swallow the end token")
    temperature: float = Field(default=1.0, description="Sampling temperature")
    top_p: float = Field(default=0.8, description="Nucleus threshold (1.0 disables)")
    top_k: int = Field(default=120, description="Top-k filtering (0 disables)")
    use_sampling: bool = Field(default=True, description="False forces greedy decoding")
    end_threshold: float | None = Field(
        default=1.0,
        description="Cumulative mass the end token must fit within to stop",
    )
    end_threshold_basis: Literal["raw", "filtered"] = Field(
        default="raw",
        description="Distribution the end token mass is measured on",
    )
    stop_sequences: tuple[tuple[int, ...], ...] = Field(
        default=_DEFAULT_STOP_SEQUENCES,
        description="Token-id sequences that stop the generation",
    )

    def decoding_options(self, **overrides: Any) -> DecodingOptions:
        """Build the DecodingOptions described by this config.

        Args:
            **overrides: Per-call field overrides.

        Returns:
            Validated options.

        Raises:
            ConfigurationError: If the resulting options are invalid.
        """
        defaults = DecodingOptions.model_validate(
            self.model_dump(include=set(DecodingOptions.model_fields))
        )
        if overrides:
            return resolve_options(defaults, overrides)
        validate_options(defaults)
        return defaults
