"""Tests for recurrent_decoder.config.

Covers:
- DecodingOptions defaults and immutability
- validate_options constraint checks
- resolve_options merge logic and error conversion
- DecoderConfig defaults and environment variable loading
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from recurrent_decoder.config import (
    DecoderConfig,
    DecodingOptions,
    resolve_options,
    validate_options,
)
from recurrent_decoder.exceptions import ConfigurationError


class TestDecodingOptions:
    def test_defaults(self) -> None:
        options = DecodingOptions()
        assert options.min_len == 0
        assert options.max_len == 200
        assert options.end_token_id == 0
        assert options.skip_end_token_id is True
        assert options.temperature == 1.0
        assert options.top_p == 1.0
        assert options.top_k == 0
        assert options.use_sampling is True
        assert options.end_threshold is None
        assert options.end_threshold_basis == "raw"
        assert options.stop_sequences == ()

    def test_frozen(self) -> None:
        options = DecodingOptions()
        with pytest.raises(ValidationError):
            options.max_len = 5  # type: ignore[misc]

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DecodingOptions(max_length=5)  # type: ignore[call-arg]

    def test_stop_sequences_coerced_to_tuples(self) -> None:
        options = DecodingOptions(stop_sequences=[[1, 2], [3]])
        assert options.stop_sequences == ((1, 2), (3,))


class TestValidateOptions:
    def test_defaults_valid(self) -> None:
        validate_options(DecodingOptions())

    @pytest.mark.parametrize(
        ("overrides", "match"),
        [
            ({"max_len": 0}, "max_len"),
            ({"min_len": -1}, "min_len"),
            ({"min_len": 5, "max_len": 4}, "min_len"),
            ({"end_token_id": -1}, "end_token_id"),
            ({"top_p": 0.0}, "top_p"),
            ({"top_p": 1.5}, "top_p"),
            ({"top_k": -1}, "top_k"),
            ({"temperature": 0.0}, "temperature"),
            ({"end_threshold": 0.0}, "end_threshold"),
            ({"end_threshold": 1.1}, "end_threshold"),
            ({"stop_sequences": [[]]}, "empty"),
            ({"stop_sequences": [[1, -2]]}, "negative"),
        ],
    )
    def test_invalid(self, overrides: dict[str, object], match: str) -> None:
        with pytest.raises(ConfigurationError, match=match):
            validate_options(DecodingOptions(**overrides))  # type: ignore[arg-type]

    def test_zero_temperature_allowed_when_greedy(self) -> None:
        validate_options(DecodingOptions(temperature=0.0, use_sampling=False))

    def test_min_len_equal_to_max_len_allowed(self) -> None:
        validate_options(DecodingOptions(min_len=4, max_len=4))


class TestResolveOptions:
    def test_no_overrides_returns_defaults(self) -> None:
        defaults = DecodingOptions()
        assert resolve_options(defaults, None) is defaults
        assert resolve_options(defaults, {}) is defaults

    def test_overrides_applied(self) -> None:
        defaults = DecodingOptions()
        options = resolve_options(defaults, {"top_k": 5, "temperature": 0.7})
        assert options.top_k == 5
        assert options.temperature == 0.7
        assert defaults.top_k == 0

    def test_values_coerced(self) -> None:
        options = resolve_options(DecodingOptions(), {"max_len": "12"})
        assert options.max_len == 12

    def test_unknown_key_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid decoding options"):
            resolve_options(DecodingOptions(), {"no_such_knob": 1})

    def test_wrong_type_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            resolve_options(DecodingOptions(), {"top_k": "many"})

    def test_constraint_violation_raises(self) -> None:
        with pytest.raises(ConfigurationError, match="top_p"):
            resolve_options(DecodingOptions(), {"top_p": 2.0})


class TestDecoderConfig:
    def test_defaults(self) -> None:
        config = DecoderConfig(_env_file=None)  # type: ignore[call-arg]
        assert config.entropy_source_type == "system"
        assert config.seed is None
        assert config.queue_capacity == 0
        assert config.log_level == "none"
        assert config.top_p == 0.8
        assert config.top_k == 120
        assert config.end_threshold == 1.0
        assert config.stop_sequences == ((187, 23433, 27), (187, 50, 708, 329), (187, 50, 27))

    def test_decoding_options(self) -> None:
        config = DecoderConfig(_env_file=None)  # type: ignore[call-arg]
        options = config.decoding_options()
        assert isinstance(options, DecodingOptions)
        assert options.top_k == 120
        assert options.top_p == 0.8
        assert options.max_len == 200
        assert len(options.stop_sequences) == 3

    def test_decoding_options_overrides(self) -> None:
        config = DecoderConfig(_env_file=None)  # type: ignore[call-arg]
        options = config.decoding_options(max_len=10, use_sampling=False)
        assert options.max_len == 10
        assert options.use_sampling is False

    def test_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RD_TOP_K", "7")
        monkeypatch.setenv("RD_ENTROPY_SOURCE_TYPE", "seeded")
        monkeypatch.setenv("RD_SEED", "123")
        config = DecoderConfig(_env_file=None)  # type: ignore[call-arg]
        assert config.top_k == 7
        assert config.entropy_source_type == "seeded"
        assert config.seed == 123

    def test_invalid_defaults_raise_on_use(self) -> None:
        config = DecoderConfig(_env_file=None, max_len=0)  # type: ignore[call-arg]
        with pytest.raises(ConfigurationError):
            config.decoding_options()
