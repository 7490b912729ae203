"""Image decoding, GIF assembly and the base64 transport codec."""

from __future__ import annotations

import base64
import binascii
from io import BytesIO
import struct

import numpy as np
from PIL import GifImagePlugin, Image

from domain.intensify import (
    AnimatedArtifact,
    EncodeError,
    ImageDecodeError,
    TextDecodeError,
)

GIF_MAX_DIMENSION = 0xFFFF
GIF_SIGNATURE = b"GIF89a"
GIF_TRAILER = b"\x3b"
GIF_LOOP_FOREVER = 0
GIF_PALETTE_SIZE = 256
TRANSPARENT_INDEX = GIF_PALETTE_SIZE - 1
DISPOSAL_RESTORE_BACKGROUND = 2
CENTISECONDS_TO_MS = 10


def decode_transport_text(payload: str) -> bytes:
    """Decode a base64 payload into raw bytes."""
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TextDecodeError("failed to decode base64 image payload") from exc


def encode_transport_text(data: bytes) -> str:
    """Encode raw bytes as base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode any image Pillow recognizes into an RGBA pixel buffer."""
    try:
        with Image.open(BytesIO(image_bytes)) as image:
            image.load()
            rgba_image = image.convert("RGBA")
    except Exception as exc:
        raise ImageDecodeError(f"failed to decode image in memory: {exc}") from exc
    return np.array(rgba_image, dtype=np.uint8)


def validate_dimensions(width: int, height: int) -> None:
    """Reject sizes the GIF logical screen cannot hold."""
    if not 0 < width <= GIF_MAX_DIMENSION or not 0 < height <= GIF_MAX_DIMENSION:
        raise EncodeError(f"cannot encode a {width}x{height} animation")


def build_empty_gif(width: int, height: int, loop_forever: bool) -> bytes:
    """Build a GIF stream with a logical screen and no image blocks."""
    parts = [
        GIF_SIGNATURE,
        struct.pack("<HHBBB", width, height, 0, 0, 0),
    ]
    if loop_forever:
        parts.append(
            b"\x21\xff\x0bNETSCAPE2.0\x03\x01"
            + struct.pack("<H", GIF_LOOP_FOREVER)
            + b"\x00"
        )
    parts.append(GIF_TRAILER)
    return b"".join(parts)


def quantize_frame(frame: np.ndarray) -> Image.Image:
    """Map an RGBA frame onto a palette image.

    Median cut is exact whenever the opaque pixels use no more colors than
    the palette holds. Fully transparent pixels share a reserved index.
    """
    transparent = frame[..., 3] == 0
    has_transparency = bool(transparent.any())
    rgb = frame[..., :3].copy()
    palette_size = GIF_PALETTE_SIZE
    if has_transparency:
        palette_size = GIF_PALETTE_SIZE - 1
        opaque = ~transparent
        if opaque.any():
            # Transparent pixels borrow an opaque color and take no palette slot.
            rgb[transparent] = rgb[opaque][0]

    quantized = Image.fromarray(rgb).quantize(
        colors=palette_size,
        method=Image.Quantize.MEDIANCUT,
        dither=Image.Dither.NONE,
    )
    palette = list(quantized.getpalette() or [])[: palette_size * 3]
    palette += [0] * (GIF_PALETTE_SIZE * 3 - len(palette))

    indices = np.array(quantized, dtype=np.uint8)
    if has_transparency:
        indices[transparent] = TRANSPARENT_INDEX
    paletted = Image.fromarray(indices)
    paletted.putpalette(palette)
    if has_transparency:
        paletted.info["transparency"] = TRANSPARENT_INDEX
    return paletted


def encode_animation(artifact: AnimatedArtifact) -> bytes:
    """Serialize frames into a GIF that loops with a fixed delay.

    Every frame becomes its own image block with a local color table, so
    identical consecutive frames are kept instead of merged.
    """
    validate_dimensions(artifact.width, artifact.height)
    if not artifact.frames:
        return build_empty_gif(artifact.width, artifact.height, artifact.loop_forever)

    images = []
    for frame in artifact.frames:
        if frame.shape[:2] != (artifact.height, artifact.width):
            raise EncodeError(
                f"frame of {frame.shape[1]}x{frame.shape[0]} does not match "
                f"{artifact.width}x{artifact.height}"
            )
        images.append(quantize_frame(frame))

    duration_ms = artifact.delay_cs * CENTISECONDS_TO_MS
    header_info: dict[str, object] = {"duration": duration_ms}
    if artifact.loop_forever:
        header_info["loop"] = GIF_LOOP_FOREVER
    images[0].info["version"] = b"89a"

    try:
        header, _ = GifImagePlugin.getheader(images[0], info=header_info)
        parts = list(header)
        for image in images:
            frame_params: dict[str, object] = {
                "duration": duration_ms,
                "disposal": DISPOSAL_RESTORE_BACKGROUND,
                "include_color_table": True,
            }
            if "transparency" in image.info:
                frame_params["transparency"] = image.info["transparency"]
            parts.extend(GifImagePlugin.getdata(image, **frame_params))
    except (OSError, ValueError, struct.error) as exc:
        raise EncodeError(f"failed to write gif: {exc}") from exc
    parts.append(GIF_TRAILER)
    return b"".join(parts)
