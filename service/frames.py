"""Jittered crops of the padded canvas."""

from __future__ import annotations

from typing import Protocol, Tuple

import numpy as np


class RandomSource(Protocol):
    """Anything that can draw an integer from a half-open range."""

    def randrange(self, start: int, stop: int) -> int: ...


def draw_offset(rng: RandomSource, shake_intensity: int) -> Tuple[int, int]:
    """Draw a (dx, dy) pair uniformly from [-shake, shake)."""
    if shake_intensity == 0:
        return (0, 0)
    dx = rng.randrange(-shake_intensity, shake_intensity)
    dy = rng.randrange(-shake_intensity, shake_intensity)
    return (dx, dy)


def crop_window(
    offset: Tuple[int, int], image_size: Tuple[int, int], shake_intensity: int
) -> Tuple[int, int, int, int]:
    """Return the (left, top, right, bottom) crop box for an offset."""
    width, height = image_size
    left = shake_intensity + offset[0]
    top = shake_intensity + offset[1]
    return (left, top, left + width, top + height)


def crop_frame(
    canvas: np.ndarray,
    offset: Tuple[int, int],
    image_size: Tuple[int, int],
    shake_intensity: int,
) -> np.ndarray:
    """Copy one frame of the original size out of the canvas."""
    left, top, right, bottom = crop_window(offset, image_size, shake_intensity)
    return canvas[top:bottom, left:right].copy()


def sample_frames(
    canvas: np.ndarray,
    image_size: Tuple[int, int],
    shake_intensity: int,
    frame_count: int,
    rng: RandomSource,
) -> Tuple[np.ndarray, ...]:
    """Produce exactly ``frame_count`` jittered frames in display order."""
    return tuple(
        crop_frame(canvas, draw_offset(rng, shake_intensity), image_size, shake_intensity)
        for _ in range(frame_count)
    )
