"""Caption glyph layout and coverage rasterization."""

from __future__ import annotations

from dataclasses import dataclass
import functools
import math
from typing import Iterator, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from domain.intensify import FontLoadError

MIN_FONT_SIZE = 1.0
WIDTH_TO_FONT_RATIO = 1.5


@dataclass(frozen=True, eq=False)
class GlyphCoverage:
    """Coverage mask for one glyph positioned relative to the run origin.

    The bounding box is in pixels, measured from the pen origin of the
    run on its baseline, so ``top`` is negative for glyphs rising above
    the baseline.
    """

    character: str
    bbox: Tuple[int, int, int, int]
    advance: float
    coverage: np.ndarray

    def iter_pixels(self) -> Iterator[Tuple[int, int, float]]:
        """Yield (x, y, coverage) for every pixel the glyph touches.

        This is the per-pixel view of the mask for callers that place glyphs
        themselves. The compositor blends ``coverage`` as a whole array.
        """
        left, top, _, _ = self.bbox
        rows, cols = np.nonzero(self.coverage > 0)
        for row, col in zip(rows.tolist(), cols.tolist()):
            yield left + col, top + row, float(self.coverage[row, col])


@dataclass(frozen=True, eq=False)
class GlyphRun:
    """Glyphs laid out left to right on a single baseline."""

    glyphs: Tuple[GlyphCoverage, ...]
    width: int


def resolve_font_size(image_width: int, max_font_size: float) -> float:
    """Shrink the caption for narrow images, never above the cap."""
    return max(MIN_FONT_SIZE, min(max_font_size, image_width / WIDTH_TO_FONT_RATIO))


@functools.lru_cache(maxsize=32)
def load_caption_font(font_size: float) -> ImageFont.FreeTypeFont:
    """Load the embedded caption face once per size."""
    try:
        font = ImageFont.load_default(size=font_size)
    except Exception as exc:
        raise FontLoadError(f"failed to load embedded font at size {font_size}") from exc
    if not isinstance(font, ImageFont.FreeTypeFont):
        raise FontLoadError("embedded font requires Pillow with FreeType support")
    return font


def render_glyph_coverage(
    character: str,
    font: ImageFont.FreeTypeFont,
    glyph_bbox: Tuple[int, int, int, int],
) -> np.ndarray:
    """Rasterize one glyph into a float coverage mask aligned to its box."""
    left, top, right, bottom = glyph_bbox
    glyph_width = right - left
    glyph_height = bottom - top
    if glyph_width <= 0 or glyph_height <= 0:
        return np.zeros((0, 0), dtype=np.float32)
    mask_image = Image.new("L", (glyph_width, glyph_height), 0)
    mask_draw = ImageDraw.Draw(mask_image)
    mask_draw.text((-left, -top), character, font=font, fill=255, anchor="ls")
    return np.asarray(mask_image, dtype=np.float32) / 255.0


def layout_glyphs(text_value: str, font_size: float) -> GlyphRun:
    """Lay out a caption using native advance widths, no kerning."""
    if not text_value:
        return GlyphRun(glyphs=(), width=0)

    font = load_caption_font(font_size)
    glyphs: list[GlyphCoverage] = []
    pen_x = 0.0
    for character in text_value:
        left, top, right, bottom = (
            int(value) for value in font.getbbox(character, anchor="ls")
        )
        advance = float(font.getlength(character))
        coverage = render_glyph_coverage(character, font, (left, top, right, bottom))
        origin_x = int(round(pen_x))
        glyphs.append(
            GlyphCoverage(
                character=character,
                bbox=(origin_x + left, top, origin_x + right, bottom),
                advance=advance,
                coverage=coverage,
            )
        )
        pen_x += advance

    return GlyphRun(glyphs=tuple(glyphs), width=int(math.ceil(pen_x)))
