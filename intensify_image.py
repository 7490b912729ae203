#!/usr/bin/env -S uv run
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "pillow>=10.1",
#   "numpy>=1.26"
# ]
# ///
"""Turn an image and a caption into a shaking, looping GIF."""

from __future__ import annotations

import argparse
import logging
import random
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from domain.intensify import (
    DEFAULT_FRAME_COUNT,
    DEFAULT_FRAME_DELAY_CS,
    DEFAULT_MAX_FONT_SIZE,
    DEFAULT_MAX_SHAKE_INTENSITY,
    DEFAULT_SHAKE_INTENSITY,
    INVALID_CONFIG_CODE,
    OUTLINE_FILL_RGBA,
    CaptionStyle,
    IntensifyPipelineError,
    IntensifyValidationError,
    enforce_frame_limit,
    enforce_shake_limit,
    parse_hex_color_to_rgba,
)
from service.animation import decode_transport_text, encode_transport_text
from service.pipeline import generate

LOGGER = logging.getLogger("intensify_image")

DEFAULT_MAX_FRAME_COUNT = 16
INPUT_FILE_CODE = "intensify_image.input.file_error"
OUTPUT_FILE_CODE = "intensify_image.output.file_error"
GENERATE_FAILED_CODE = "intensify_image.generate.failed"


class IntensifyCliError(RuntimeError):
    """CLI error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class IntensifyRequest:
    """Parsed CLI request."""

    input_image: Path
    output_gif: Path
    caption: str
    frame_count: int
    shake_intensity: int
    frame_delay_cs: int
    style: CaptionStyle
    seed: int | None


def configure_logging() -> None:
    """Configure logging for CLI output."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")


def parse_args(argv: Sequence[str]) -> IntensifyRequest:
    """Parse CLI arguments into an IntensifyRequest."""
    parser = argparse.ArgumentParser(prog="intensify_image.py", add_help=True)
    parser.add_argument("--input-image", required=True)
    parser.add_argument("--output-gif", default="intensified.gif")
    parser.add_argument("--caption", default="")
    parser.add_argument("--frame-count", type=int, default=DEFAULT_FRAME_COUNT)
    parser.add_argument(
        "--shake-intensity", type=int, default=DEFAULT_SHAKE_INTENSITY
    )
    parser.add_argument("--max-font-size", type=float, default=DEFAULT_MAX_FONT_SIZE)
    parser.add_argument(
        "--color",
        default=None,
        help="#RRGGBB caption color; only used with --no-outline",
    )
    parser.add_argument("--no-outline", action="store_true")
    parser.add_argument("--frame-delay-cs", type=int, default=DEFAULT_FRAME_DELAY_CS)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument(
        "--max-frame-count", type=int, default=DEFAULT_MAX_FRAME_COUNT
    )
    parser.add_argument(
        "--max-shake-intensity", type=int, default=DEFAULT_MAX_SHAKE_INTENSITY
    )

    parsed = parser.parse_args(argv)
    if parsed.max_frame_count < 0:
        raise IntensifyValidationError(
            INVALID_CONFIG_CODE, "max-frame-count must be non-negative"
        )
    if parsed.max_shake_intensity < 0:
        raise IntensifyValidationError(
            INVALID_CONFIG_CODE, "max-shake-intensity must be non-negative"
        )
    enforce_frame_limit(parsed.frame_count, parsed.max_frame_count)
    enforce_shake_limit(parsed.shake_intensity, parsed.max_shake_intensity)
    if parsed.color is not None and not parsed.no_outline:
        raise IntensifyValidationError(
            INVALID_CONFIG_CODE, "color requires no-outline"
        )
    fill_rgba = (
        parse_hex_color_to_rgba(parsed.color)
        if parsed.color is not None
        else OUTLINE_FILL_RGBA
    )
    style = CaptionStyle(
        max_font_size=parsed.max_font_size,
        fill_rgba=fill_rgba,
        outline=not parsed.no_outline,
    )
    return IntensifyRequest(
        input_image=Path(parsed.input_image),
        output_gif=Path(parsed.output_gif),
        caption=parsed.caption,
        frame_count=parsed.frame_count,
        shake_intensity=parsed.shake_intensity,
        frame_delay_cs=parsed.frame_delay_cs,
        style=style,
        seed=parsed.seed,
    )


def read_input_image(image_path: Path) -> bytes:
    """Read the source image bytes."""
    try:
        return image_path.read_bytes()
    except FileNotFoundError as exc:
        raise IntensifyCliError(
            INPUT_FILE_CODE, f"input image not found: {image_path}"
        ) from exc
    except OSError as exc:
        raise IntensifyCliError(
            INPUT_FILE_CODE, f"failed to read input image: {image_path}"
        ) from exc


def write_output_gif(output_path: Path, gif_bytes: bytes) -> None:
    """Write the generated GIF to disk."""
    try:
        output_path.write_bytes(gif_bytes)
    except OSError as exc:
        raise IntensifyCliError(
            OUTPUT_FILE_CODE, f"failed to write output gif: {output_path}"
        ) from exc


def run(request: IntensifyRequest) -> None:
    """Run the pipeline for one CLI request."""
    image_bytes = read_input_image(request.input_image)
    result = generate(
        encode_transport_text(image_bytes),
        request.caption,
        request.frame_count,
        request.shake_intensity,
        style=request.style,
        rng=random.Random(request.seed),
        frame_delay_cs=request.frame_delay_cs,
    )
    if not result.ok or result.payload is None:
        raise IntensifyCliError(GENERATE_FAILED_CODE, result.error or "no output")
    write_output_gif(request.output_gif, decode_transport_text(result.payload))
    LOGGER.info(
        "intensify_image.output.written: %s (%d frames)",
        request.output_gif,
        request.frame_count,
    )


def main() -> int:
    """CLI entrypoint."""
    configure_logging()

    try:
        request = parse_args(sys.argv[1:])
        run(request)
        return 0
    except IntensifyValidationError as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except (IntensifyPipelineError, IntensifyCliError) as exc:
        LOGGER.error("%s: %s", exc.code, str(exc).strip())
        return 1
    except Exception as exc:
        LOGGER.error("intensify_image.unhandled_error: %s", str(exc).strip())
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
