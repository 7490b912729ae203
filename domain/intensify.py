"""Domain types and validation for intensify."""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Tuple

import numpy as np

TEXT_DECODE_CODE = "intensify.input.text_decode"
IMAGE_DECODE_CODE = "intensify.input.image_decode"
INVALID_CONFIG_CODE = "intensify.input.invalid_config"
INVALID_COLOR_CODE = "intensify.input.invalid_color"
FRAME_LIMIT_CODE = "intensify.input.frame_limit"
SHAKE_LIMIT_CODE = "intensify.input.shake_limit"
FONT_LOAD_CODE = "intensify.font.unavailable"
ENCODE_CODE = "intensify.output.encode"

DEFAULT_MAX_FONT_SIZE = 12.0
DEFAULT_FRAME_DELAY_CS = 2
DEFAULT_FRAME_COUNT = 3
DEFAULT_SHAKE_INTENSITY = 5
DEFAULT_MAX_SHAKE_INTENSITY = 255
BACKDROP_RGBA = (0, 0, 0, 255)
OUTLINE_FILL_RGBA = (255, 255, 255, 255)
CHANNELS = 4


class IntensifyValidationError(ValueError):
    """Validation error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class IntensifyPipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class TextDecodeError(IntensifyPipelineError):
    """The textual image payload is not valid base64."""

    def __init__(self, message: str) -> None:
        super().__init__(TEXT_DECODE_CODE, message)


class ImageDecodeError(IntensifyPipelineError):
    """The image bytes are unrecognized, truncated or corrupt."""

    def __init__(self, message: str) -> None:
        super().__init__(IMAGE_DECODE_CODE, message)


class EncodeError(IntensifyPipelineError):
    """The animation cannot be serialized."""

    def __init__(self, message: str) -> None:
        super().__init__(ENCODE_CODE, message)


class FontLoadError(IntensifyPipelineError):
    """The embedded caption font is unavailable."""

    def __init__(self, message: str) -> None:
        super().__init__(FONT_LOAD_CODE, message)


def validate_rgba(color_rgba: Tuple[int, ...], label: str) -> None:
    """Reject colors that are not four 8-bit channels."""
    if len(color_rgba) != CHANNELS:
        raise IntensifyValidationError(INVALID_COLOR_CODE, f"{label} is invalid")
    for channel in color_rgba:
        if channel < 0 or channel > 255:
            raise IntensifyValidationError(
                INVALID_COLOR_CODE, f"{label} channel out of range"
            )


@dataclass(frozen=True)
class CaptionStyle:
    """How the caption is burned into the canvas."""

    max_font_size: float = DEFAULT_MAX_FONT_SIZE
    fill_rgba: Tuple[int, int, int, int] = OUTLINE_FILL_RGBA
    outline: bool = True

    def __post_init__(self) -> None:
        if self.max_font_size <= 0:
            raise IntensifyValidationError(
                INVALID_CONFIG_CODE, "max_font_size must be positive"
            )
        validate_rgba(self.fill_rgba, "fill_rgba")


@dataclass(frozen=True)
class IntensifyConfig:
    """Validated parameters for one render."""

    frame_count: int
    shake_intensity: int
    frame_delay_cs: int = DEFAULT_FRAME_DELAY_CS
    style: CaptionStyle = field(default_factory=CaptionStyle)

    def __post_init__(self) -> None:
        if self.frame_count < 0:
            raise IntensifyValidationError(
                INVALID_CONFIG_CODE, "frame_count must be non-negative"
            )
        if self.shake_intensity < 0:
            raise IntensifyValidationError(
                INVALID_CONFIG_CODE, "shake_intensity must be non-negative"
            )
        if self.frame_delay_cs < 0 or self.frame_delay_cs > 0xFFFF:
            raise IntensifyValidationError(
                INVALID_CONFIG_CODE, "frame_delay_cs must fit in 16 bits"
            )


@dataclass(frozen=True, eq=False)
class AnimatedArtifact:
    """Ordered frames plus the timing they are played back with."""

    width: int
    height: int
    frames: Tuple[np.ndarray, ...]
    delay_cs: int = DEFAULT_FRAME_DELAY_CS
    loop_forever: bool = True

    @property
    def frame_count(self) -> int:
        return len(self.frames)


def enforce_frame_limit(frame_count: int, max_frame_count: int) -> None:
    """Reject frame counts above a caller-chosen ceiling."""
    if frame_count > max_frame_count:
        raise IntensifyValidationError(
            FRAME_LIMIT_CODE,
            f"frame_count {frame_count} exceeds limit {max_frame_count}",
        )


def enforce_shake_limit(shake_intensity: int, max_shake_intensity: int) -> None:
    """Reject shake intensities above a caller-chosen ceiling.

    The padded canvas grows with the square of the shake, so transports
    bound it before any pixels are allocated.
    """
    if shake_intensity > max_shake_intensity:
        raise IntensifyValidationError(
            SHAKE_LIMIT_CODE,
            f"shake_intensity {shake_intensity} exceeds limit {max_shake_intensity}",
        )


def parse_hex_color_to_rgba(color_value: str) -> Tuple[int, int, int, int]:
    """Parse a #RRGGBB token into an opaque RGBA tuple."""
    normalized = color_value.strip()
    match_value = re.fullmatch(r"#([0-9a-fA-F]{6})", normalized)
    if not match_value:
        raise IntensifyValidationError(
            INVALID_COLOR_CODE,
            f"invalid color value: {color_value!r}",
        )

    rgb_hex = match_value.group(1)
    red_value = int(rgb_hex[0:2], 16)
    green_value = int(rgb_hex[2:4], 16)
    blue_value = int(rgb_hex[4:6], 16)
    return (red_value, green_value, blue_value, 255)
