import numpy as np
import numpy.typing as npt
from PIL import Image, ImageDraw
from typing import Tuple

from smart_diff.types import Color, RasterImage

# Type aliases for clarity
FloatArray = npt.NDArray[np.float32 | np.float64]
UInt8Array = npt.NDArray[np.uint8]
BoolArray = npt.NDArray[np.bool_]


def blank(width: int, height: int) -> RasterImage:
    """Fully transparent RGBA array of the given size."""
    return np.zeros((height, width, 4), dtype=np.uint8)


def blit_opaque(dst: RasterImage, src: RasterImage, x: int, y: int) -> None:
    """Copy the opaque pixels of ``src`` into ``dst`` at ``(x, y)`` in place.

    ``src`` is clipped to ``dst``. Pixels with alpha 0 leave ``dst`` untouched.
    """
    h = min(src.shape[0], dst.shape[0] - y)
    w = min(src.shape[1], dst.shape[1] - x)
    if h <= 0 or w <= 0:
        return
    patch = src[:h, :w]
    region = dst[y : y + h, x : x + w]
    visible: BoolArray = patch[..., 3] > 0
    region[visible] = patch[visible]


def scale_nearest(image: RasterImage, factor: int) -> RasterImage:
    """Integer nearest-neighbor upscale by pixel replication."""
    if factor == 1:
        return image.copy()
    return np.repeat(np.repeat(image, factor, axis=0), factor, axis=1)


def dim(image: RasterImage, factor: float) -> RasterImage:
    """Scale RGB of every pixel by ``factor``; alpha unchanged."""
    out: UInt8Array = image.copy()
    rgb: FloatArray = out[..., :3].astype(np.float32) * np.float32(factor)
    out[..., :3] = np.clip(rgb, 0, 255).astype(np.uint8)
    return out


def checker(size: int, a: Color, b: Color, cell: int = 4) -> RasterImage:
    """Opaque two-color checkerboard, ``size`` x ``size``."""
    yy, xx = np.mgrid[0:size, 0:size]
    odd: BoolArray = ((xx // cell + yy // cell) % 2).astype(bool)
    out: UInt8Array = np.empty((size, size, 4), dtype=np.uint8)
    out[...] = (*a, 255)
    out[odd] = (*b, 255)
    return out


def flatten(image: RasterImage, backdrop: Color) -> UInt8Array:
    """Composite RGBA onto an opaque backdrop; returns H x W x 3.

    Alpha is either 0 or 255 throughout the renderer, so this is a select
    rather than a blend.
    """
    out: UInt8Array = np.empty(image.shape[:2] + (3,), dtype=np.uint8)
    out[...] = backdrop
    visible: BoolArray = image[..., 3] > 0
    out[visible] = image[..., :3][visible]
    return out


def to_pil(image: UInt8Array) -> Image.Image:
    mode = "RGBA" if image.shape[-1] == 4 else "RGB"
    return Image.fromarray(np.ascontiguousarray(image), mode=mode)


def draw_banner(
    size: Tuple[int, int], lines: Tuple[str, ...], fill: Color, text: Color
) -> RasterImage:
    """
    Draw an opaque image of ``size`` (width, height) filled with ``fill`` and
    the given text lines near the top-left corner. Used for placeholders.
    """
    width, height = max(1, size[0]), max(1, size[1])
    image = Image.new("RGBA", (width, height), (*fill, 255))
    draw = ImageDraw.Draw(image)
    # Diagonal cross so the placeholder reads as "no image" at any zoom
    draw.line([(0, 0), (width - 1, height - 1)], fill=(*text, 255), width=1)
    draw.line([(0, height - 1), (width - 1, 0)], fill=(*text, 255), width=1)
    y = 4
    for line in lines:
        draw.text((4, y), line, fill=(*text, 255))
        y += 12
    return np.array(image, dtype=np.uint8)
