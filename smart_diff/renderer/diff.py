"""Per-pixel difference of two rasterized room versions.

There is no tolerance: rasterization is deterministic, so any tile,
attribute or palette change between versions shows up as an exact pixel
difference, and identical content always compares equal.
"""

import numpy as np

from smart_diff.config import RenderConfig
from smart_diff.errors import DimensionMismatch
from smart_diff.types import DiffMask, RasterImage
from smart_diff.utils.image import dim


def diff(working: RasterImage, reference: RasterImage) -> DiffMask:
    """Return a mask that is ``True`` where the two images differ.

    All four channels take part, so a pixel that is transparent on one side
    and opaque black on the other counts as changed.

    Raises:
        DimensionMismatch: If the images do not have the same shape (e.g. the
            room was resized between versions).
    """
    if working.shape != reference.shape:
        raise DimensionMismatch(tuple(working.shape), tuple(reference.shape))
    return np.any(working != reference, axis=-1)


def highlight(
    working: RasterImage, mask: DiffMask, config: RenderConfig = RenderConfig()
) -> RasterImage:
    """Build the difference view.

    Differing pixels are drawn opaque in ``config.diff_color``. Unchanged
    pixels come from the working image dimmed by
    ``config.difference_baseline`` for positional context; unchanged
    transparent pixels stay transparent so the backdrop shows through.
    """
    if working.shape[:2] != mask.shape:
        raise DimensionMismatch(tuple(working.shape[:2]), tuple(mask.shape))
    out = dim(working, config.difference_baseline)
    out[mask] = (*config.diff_color, 255)
    return out


def changed_fraction(mask: DiffMask) -> float:
    """Share of pixels that differ, for status display."""
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask)) / float(mask.size)
