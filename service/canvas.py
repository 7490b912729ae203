"""Padded canvas construction and caption compositing."""

from __future__ import annotations

import logging
from typing import Sequence, Tuple

import numpy as np

from domain.intensify import (
    BACKDROP_RGBA,
    CHANNELS,
    OUTLINE_FILL_RGBA,
    CaptionStyle,
)
from service.glyphs import GlyphRun, layout_glyphs, resolve_font_size

LOGGER = logging.getLogger("intensify")

BACKDROP_OFFSETS = ((-1, 0), (1, 0), (0, -1), (0, 1))
BASELINE_RATIO = 2.0 / 3.0


def pad_canvas(pixels: np.ndarray, shake_intensity: int) -> np.ndarray:
    """Surround the image with a transparent band as wide as the shake."""
    height, width = pixels.shape[:2]
    canvas = np.zeros(
        (height + 2 * shake_intensity, width + 2 * shake_intensity, CHANNELS),
        dtype=np.uint8,
    )
    canvas[
        shake_intensity : shake_intensity + height,
        shake_intensity : shake_intensity + width,
    ] = pixels
    return canvas


def blend_coverage(
    canvas: np.ndarray,
    coverage: np.ndarray,
    left: int,
    top: int,
    color_rgba: Tuple[int, int, int, int],
) -> None:
    """Burn a coverage mask into the canvas in place.

    Each covered channel becomes ``sqrt(bg * (1 - v) + fg * v * 255)``,
    truncated to 8 bits, and the pixel turns opaque. Pixels outside the
    canvas are dropped.
    """
    canvas_height, canvas_width = canvas.shape[:2]
    mask_height, mask_width = coverage.shape[:2]
    x_start = max(left, 0)
    y_start = max(top, 0)
    x_end = min(left + mask_width, canvas_width)
    y_end = min(top + mask_height, canvas_height)
    if x_start >= x_end or y_start >= y_end:
        return

    weight = coverage[y_start - top : y_end - top, x_start - left : x_end - left]
    covered = weight > 0
    if not covered.any():
        return

    region = canvas[y_start:y_end, x_start:x_end]
    background = region[..., :3].astype(np.float32)
    foreground = np.asarray(color_rgba[:3], dtype=np.float32)
    weight = weight[..., np.newaxis].astype(np.float32)
    blended = np.sqrt(
        background * (np.float32(1.0) - weight)
        + foreground * weight * np.float32(255.0)
    )
    blended = np.clip(blended, 0, 255).astype(np.uint8)
    region[covered, :3] = blended[covered]
    region[covered, 3] = 255


def draw_glyph_run(
    canvas: np.ndarray,
    run: GlyphRun,
    origin_x: int,
    baseline_y: int,
    color_rgba: Tuple[int, int, int, int],
) -> None:
    """Blend every glyph of a run at the given pen origin."""
    for glyph in run.glyphs:
        left, top, _, _ = glyph.bbox
        blend_coverage(
            canvas, glyph.coverage, origin_x + left, baseline_y + top, color_rgba
        )


def caption_origin(
    run_width: int, image_size: Tuple[int, int], shake_intensity: int
) -> Tuple[int, int]:
    """Center the run over the original image with its baseline at two thirds."""
    width, height = image_size
    origin_x = shake_intensity + int((width - run_width) / 2)
    baseline_y = shake_intensity + int(height * BASELINE_RATIO)
    return origin_x, baseline_y


def compose_caption(
    canvas: np.ndarray,
    caption: str,
    image_size: Tuple[int, int],
    shake_intensity: int,
    style: CaptionStyle,
) -> None:
    """Burn the caption into a padded canvas in place."""
    font_size = resolve_font_size(image_size[0], style.max_font_size)
    run = layout_glyphs(caption, font_size)
    if not run.glyphs:
        return

    origin_x, baseline_y = caption_origin(run.width, image_size, shake_intensity)
    LOGGER.debug(
        "intensify.caption.layout: glyphs=%d width=%d size=%.2f origin=(%d, %d)",
        len(run.glyphs),
        run.width,
        font_size,
        origin_x,
        baseline_y,
    )

    passes: Sequence[Tuple[int, int, Tuple[int, int, int, int]]]
    if style.outline:
        passes = tuple(
            (dx, dy, BACKDROP_RGBA) for dx, dy in BACKDROP_OFFSETS
        ) + ((0, 0, OUTLINE_FILL_RGBA),)
    else:
        passes = ((0, 0, style.fill_rgba),)

    for dx, dy, color_rgba in passes:
        draw_glyph_run(canvas, run, origin_x + dx, baseline_y + dy, color_rgba)


def build_canvas(
    pixels: np.ndarray,
    caption: str,
    shake_intensity: int,
    style: CaptionStyle,
) -> np.ndarray:
    """Pad the source image and burn in the caption."""
    height, width = pixels.shape[:2]
    canvas = pad_canvas(pixels, shake_intensity)
    compose_caption(canvas, caption, (width, height), shake_intensity, style)
    return canvas
