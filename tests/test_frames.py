"""Unit tests for jittered frame sampling."""

from __future__ import annotations

import random
from typing import Sequence

import numpy as np
import pytest

from service.canvas import pad_canvas
from service.frames import crop_frame, crop_window, draw_offset, sample_frames


class ScriptedRandom:
    """Random source that replays a fixed sequence of values."""

    def __init__(self, values: Sequence[int]) -> None:
        self.values = list(values)
        self.calls: list[tuple[int, int]] = []

    def randrange(self, start: int, stop: int) -> int:
        self.calls.append((start, stop))
        value = self.values.pop(0)
        assert start <= value < stop
        return value


def numbered_pixels(width: int, height: int) -> np.ndarray:
    """Build an opaque buffer whose pixels encode their coordinates."""
    yy, xx = np.mgrid[0:height, 0:width]
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = xx
    pixels[..., 1] = yy
    pixels[..., 3] = 255
    return pixels


def test_zero_shake_never_draws() -> None:
    """Stay centered without consuming randomness when shake is zero."""
    rng = ScriptedRandom([])

    assert draw_offset(rng, 0) == (0, 0)
    assert rng.calls == []


def test_offsets_are_drawn_from_half_open_range() -> None:
    """Draw dx then dy from [-shake, shake)."""
    rng = ScriptedRandom([-4, 3])

    assert draw_offset(rng, 4) == (-4, 3)
    assert rng.calls == [(-4, 4), (-4, 4)]


@pytest.mark.parametrize("shake_intensity", [0, 1, 2, 5, 8])
def test_every_crop_window_is_inside_canvas(shake_intensity: int) -> None:
    """Keep all reachable crop windows within the padded canvas."""
    width, height = 9, 6
    canvas_width = width + 2 * shake_intensity
    canvas_height = height + 2 * shake_intensity
    offsets = range(-shake_intensity, max(shake_intensity, 1))
    for dx in offsets:
        for dy in offsets:
            left, top, right, bottom = crop_window(
                (dx, dy), (width, height), shake_intensity
            )
            assert left >= 0 and top >= 0
            assert right <= canvas_width and bottom <= canvas_height
            assert (right - left, bottom - top) == (width, height)


def test_centered_crop_returns_source() -> None:
    """Recover the original pixels from the unshifted window."""
    pixels = numbered_pixels(8, 5)
    canvas = pad_canvas(pixels, 3)

    frame = crop_frame(canvas, (0, 0), (8, 5), 3)

    assert np.array_equal(frame, pixels)


def test_shifted_crop_exposes_transparent_padding() -> None:
    """Shift the window and reveal the transparent border."""
    pixels = numbered_pixels(8, 5)
    canvas = pad_canvas(pixels, 2)

    frame = crop_frame(canvas, (-2, 1), (8, 5), 2)

    assert frame.shape == (5, 8, 4)
    assert not frame[:, :2].any()
    assert np.array_equal(frame[:4, 2:], pixels[1:, :6])
    assert not frame[4, 2:].any()


def test_sample_frames_count_and_order() -> None:
    """Produce one frame per requested count in draw order."""
    pixels = numbered_pixels(6, 6)
    canvas = pad_canvas(pixels, 2)
    rng = ScriptedRandom([-2, -2, 0, 0, 1, -1])

    frames = sample_frames(canvas, (6, 6), 2, 3, rng)

    assert len(frames) == 3
    assert np.array_equal(frames[0], canvas[0:6, 0:6])
    assert np.array_equal(frames[1], pixels)
    assert np.array_equal(frames[2], canvas[1:7, 3:9])


def test_sample_zero_frames() -> None:
    """Return no frames when none are requested."""
    canvas = pad_canvas(numbered_pixels(4, 4), 1)

    assert sample_frames(canvas, (4, 4), 1, 0, random.Random(1)) == ()


def test_frames_are_independent_copies() -> None:
    """Mutating a frame leaves the canvas alone."""
    canvas = pad_canvas(numbered_pixels(4, 4), 1)
    frames = sample_frames(canvas, (4, 4), 1, 2, random.Random(7))

    frames[0][:] = 0

    assert canvas[1:5, 1:5].any()
    assert frames[1].shape == (4, 4, 4)
