"""End-to-end intensify pipeline: decode, caption, shake, encode."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import random

import numpy as np

from domain.intensify import (
    DEFAULT_FRAME_DELAY_CS,
    AnimatedArtifact,
    CaptionStyle,
    IntensifyConfig,
    IntensifyPipelineError,
    IntensifyValidationError,
)
from service.animation import (
    decode_image,
    decode_transport_text,
    encode_animation,
    encode_transport_text,
)
from service.canvas import build_canvas
from service.frames import RandomSource, sample_frames

LOGGER = logging.getLogger("intensify")


@dataclass(frozen=True)
class GenerateResult:
    """Either a base64 GIF payload or the message of the failed stage."""

    payload: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_artifact(
    pixels: np.ndarray,
    caption: str,
    config: IntensifyConfig,
    rng: RandomSource,
) -> AnimatedArtifact:
    """Caption the image and sample the shaking frames."""
    height, width = pixels.shape[:2]
    canvas = build_canvas(pixels, caption, config.shake_intensity, config.style)
    frames = sample_frames(
        canvas, (width, height), config.shake_intensity, config.frame_count, rng
    )
    return AnimatedArtifact(
        width=width,
        height=height,
        frames=frames,
        delay_cs=config.frame_delay_cs,
        loop_forever=True,
    )


def render_animation(
    image_bytes: bytes,
    caption: str,
    config: IntensifyConfig,
    rng: RandomSource | None = None,
) -> bytes:
    """Turn raw image bytes into GIF bytes, raising on the first failure."""
    pixels = decode_image(image_bytes)
    LOGGER.debug(
        "intensify.decode.done: %dx%d", pixels.shape[1], pixels.shape[0]
    )
    artifact = build_artifact(
        pixels, caption, config, rng if rng is not None else random.Random()
    )
    LOGGER.debug("intensify.frames.done: frames=%d", artifact.frame_count)
    return encode_animation(artifact)


def generate(
    encoded_image: str,
    caption: str,
    frame_count: int,
    shake_intensity: int,
    style: CaptionStyle | None = None,
    rng: RandomSource | None = None,
    frame_delay_cs: int = DEFAULT_FRAME_DELAY_CS,
) -> GenerateResult:
    """Run the pipeline on a base64 image and return a base64 GIF or an error."""
    try:
        config = IntensifyConfig(
            frame_count=frame_count,
            shake_intensity=shake_intensity,
            frame_delay_cs=frame_delay_cs,
            style=style if style is not None else CaptionStyle(),
        )
        image_bytes = decode_transport_text(encoded_image)
        gif_bytes = render_animation(image_bytes, caption, config, rng)
    except (IntensifyValidationError, IntensifyPipelineError) as exc:
        message = str(exc).strip()
        LOGGER.warning("%s: %s", exc.code, message)
        return GenerateResult(error=f"{exc.code}: {message}")
    return GenerateResult(payload=encode_transport_text(gif_bytes))
