"""Tests for recurrent_decoder.cli."""

from __future__ import annotations

import argparse
import io
import logging
import re
from pathlib import Path

import numpy as np
import pytest
from conftest import make_rwkv_params, write_word_level_tokenizer
from safetensors.numpy import save_file

from recurrent_decoder.cli import build_parser, for_each_input, main, parse_log_level


class TestForEachInput:
    def test_skips_empty_lines_and_expands_newlines(self) -> None:
        reader = io.StringIO("hello\n\nQ: hi\\nA:\n")
        prompts = io.StringIO()
        seen: list[str] = []
        for_each_input(reader, seen.append, prompts)
        assert seen == ["hello", "Q: hi\nA:"]
        assert prompts.getvalue() == "> " * 4

    def test_last_line_without_newline(self) -> None:
        seen: list[str] = []
        for_each_input(io.StringIO("one\ntwo"), seen.append, io.StringIO())
        assert seen == ["one", "two"]

    def test_empty_input(self) -> None:
        seen: list[str] = []
        for_each_input(io.StringIO(""), seen.append, io.StringIO())
        assert seen == []


class TestLogLevels:
    @pytest.mark.parametrize(
        ("name", "level"),
        [
            ("trace", logging.DEBUG),
            ("debug", logging.DEBUG),
            ("info", logging.INFO),
            ("warn", logging.WARNING),
            ("ERROR", logging.ERROR),
            ("fatal", logging.CRITICAL),
            ("panic", logging.CRITICAL),
        ],
    )
    def test_known_levels(self, name: str, level: int) -> None:
        assert parse_log_level(name) == level

    def test_unknown_level(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_log_level("loud")


class TestParser:
    def test_inference_default_level(self) -> None:
        args = build_parser().parse_args(["inference", "models/org/model"])
        assert args.model_dir == "models/org/model"
        assert args.log_level == logging.DEBUG

    def test_inference_explicit_level(self) -> None:
        args = build_parser().parse_args(["inference", "models/org/model", "info"])
        assert args.log_level == logging.INFO

    def test_convert_flags(self) -> None:
        args = build_parser().parse_args(["convert", "dir", "--overwrite", "--rescale-layer", "6"])
        assert args.overwrite is True
        assert args.rescale_layer == 6


class TestMain:
    def test_no_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_convert_failure_exit_code(self, tmp_path: Path) -> None:
        assert main(["convert", str(tmp_path), "error"]) == 1

    def test_download_rejects_shallow_path(self) -> None:
        assert main(["download", "org/model", "error"]) == 1

    def test_inference_missing_model(self, tmp_path: Path) -> None:
        assert main(["inference", str(tmp_path / "missing"), "error"]) == 1


class TestInference:
    WORDS = ["<eos>", "a", "b", "c", "d", "[UNK]"]

    @pytest.fixture
    def model_dir(self, tmp_path: Path, rng: np.random.Generator) -> Path:
        model_dir = tmp_path / "models" / "org" / "tiny"
        model_dir.mkdir(parents=True)
        params = make_rwkv_params(rng, vocab_size=len(self.WORDS))
        save_file(params, str(model_dir / "model.safetensors"))
        write_word_level_tokenizer(model_dir / "tokenizer.json", self.WORDS)
        assert main(["convert", str(model_dir), "error"]) == 0
        return model_dir

    @pytest.fixture(autouse=True)
    def _greedy_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("RD_USE_SAMPLING", "false")
        monkeypatch.setenv("RD_MAX_LEN", "3")
        monkeypatch.setenv("RD_END_TOKEN_ID", "99")
        monkeypatch.setenv("RD_STOP_SEQUENCES", "[]")

    def test_failed_prompt_logged_and_next_prompt_served(
        self,
        model_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO("   \na b\n"))
        caplog.set_level(logging.ERROR, logger="recurrent_decoder")

        assert main(["inference", str(model_dir), "error"]) == 0

        failures = [r for r in caplog.records if r.getMessage().startswith("Generation failed")]
        assert len(failures) == 1
        assert "at least one token" in failures[0].getMessage()
        word = r"(?:<eos>|a|b|c|d|\[UNK\])"
        assert re.fullmatch(rf"> > {word}{{3}}\n> ", capsys.readouterr().out)

    def test_prompts_answered_in_order(
        self,
        model_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setattr("sys.stdin", io.StringIO("a b\na b\n"))

        assert main(["inference", str(model_dir), "error"]) == 0

        answers = capsys.readouterr().out.split("> ")
        assert answers[0] == ""
        assert answers[-1] == ""
        assert len(answers) == 4
        # Greedy decoding from a fresh state repeats itself.
        assert answers[1] == answers[2]
        assert answers[1].endswith("\n")
