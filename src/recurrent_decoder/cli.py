"""Command-line interface: ``download``, ``convert`` and ``inference``.

``inference`` reads one prompt per line from stdin (after a ``"> "``
prompt), streams the generated text to stdout and ends each answer with a
line break. An interrupt cancels the current generation only.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import TYPE_CHECKING

from recurrent_decoder.config import DecoderConfig
from recurrent_decoder.convert import convert_checkpoint
from recurrent_decoder.decoding import (
    CancellationToken,
    DecodeLoop,
    StreamingDecoder,
    interrupt_on_signal,
)
from recurrent_decoder.download import download_model, separate_model_name
from recurrent_decoder.entropy import EntropySourceRegistry
from recurrent_decoder.exceptions import DecoderError
from recurrent_decoder.logging import DecodeLogger
from recurrent_decoder.model import ModelStore
from recurrent_decoder.sampling import SamplingPolicy

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import TextIO

logger = logging.getLogger("recurrent_decoder")

LOG_LEVELS: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
}


def parse_log_level(name: str) -> int:
    """Map a level name (``trace`` ... ``panic``) to a stdlib logging level.

    Raises:
        argparse.ArgumentTypeError: If *name* is not a known level.
    """
    try:
        return LOG_LEVELS[name.lower()]
    except KeyError:
        raise argparse.ArgumentTypeError(f"invalid log level: {name}") from None


def for_each_input(
    reader: TextIO,
    callback: Callable[[str], None],
    prompt_writer: TextIO | None = None,
) -> None:
    """Call *callback* for each non-empty line of *reader*.

    ``"> "`` is written to *prompt_writer* before every read. A literal
    ``\\n`` in the line becomes a line break.
    """
    writer = prompt_writer if prompt_writer is not None else sys.stdout
    while True:
        writer.write("> ")
        writer.flush()
        line = reader.readline()
        if not line:
            return
        text = line.rstrip("\r\n")
        if not text:
            continue
        callback(text.replace("\\n", "\n"))


def _cmd_download(args: argparse.Namespace) -> None:
    models_dir, model_name = separate_model_name(args.model_dir)
    logger.debug("Downloading model in dir: %s", args.model_dir)
    download_model(models_dir, model_name, overwrite=args.overwrite, token=args.token)
    logger.debug("Done.")


def _cmd_convert(args: argparse.Namespace) -> None:
    logger.debug("Converting model in dir: %s", args.model_dir)
    convert_checkpoint(args.model_dir, overwrite=args.overwrite, rescale_layer=args.rescale_layer)
    logger.debug("Done.")


def _cmd_inference(args: argparse.Namespace) -> None:
    config = DecoderConfig()
    options = config.decoding_options()
    entropy_source = EntropySourceRegistry.build(config)

    logger.debug("Loading model...")
    try:
        with ModelStore.load(args.model_dir) as store:
            loop = DecodeLoop(
                store.model,
                policy=SamplingPolicy(entropy_source),
                decode_logger=DecodeLogger(config.log_level, config.diagnostic_mode),
            )
            decoder = StreamingDecoder(loop, store.vocabulary, capacity=config.queue_capacity)
            logger.debug("Ready.")

            def _generate(text: str) -> None:
                start = time.perf_counter()
                with interrupt_on_signal(CancellationToken()) as cancel:
                    try:
                        decoder.generate(store.tokenize(text), options, sys.stdout, cancel)
                    except DecoderError as exc:
                        logger.error("Generation failed: %s", exc)
                        return
                logger.debug("Inference time: %.2f seconds", time.perf_counter() - start)

            for_each_input(sys.stdin, _generate)
    finally:
        entropy_source.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recurrent-decoder",
        description="Streaming text generation with recurrent language models",
    )
    sub = parser.add_subparsers(dest="command")

    # --- download ---
    p_download = sub.add_parser("download", help="Download a model from the Hugging Face Hub")
    p_download.add_argument("model_dir", help="Target directory, <models_dir>/<org>/<model>")
    p_download.add_argument("--token", help="Hub token for gated/private repos")
    p_download.add_argument("--overwrite", action="store_true", help="Download even if present")
    p_download.set_defaults(func=_cmd_download)

    # --- convert ---
    p_convert = sub.add_parser("convert", help="Convert a safetensors checkpoint")
    p_convert.add_argument("model_dir", help="Model directory with *.safetensors")
    p_convert.add_argument("--overwrite", action="store_true", help="Replace existing output")
    p_convert.add_argument(
        "--rescale-layer", type=int, default=0, help="Halve activations every N layers (0 = off)"
    )
    p_convert.set_defaults(func=_cmd_convert)

    # --- inference ---
    p_inference = sub.add_parser("inference", help="Generate text for prompts read from stdin")
    p_inference.add_argument("model_dir", help="Converted model directory")
    p_inference.set_defaults(func=_cmd_inference)

    for p in (p_download, p_convert, p_inference):
        p.add_argument(
            "log_level",
            nargs="?",
            default="trace",
            type=parse_log_level,
            help="trace, debug, info, warn, error, fatal or panic (default: trace)",
        )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        stream=sys.stderr,
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        args.func(args)
    except (DecoderError, ValueError) as exc:
        logger.critical("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
