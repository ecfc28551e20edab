"""Stand-in images for things that cannot be drawn.

Placeholders are ordinary RGBA arrays so the viewer can blit them like any
rasterized room. They are fully opaque, which keeps them visually distinct
from a room whose layers are simply hidden.
"""

from functools import lru_cache
from typing import Tuple

from smart_diff.config import BLACK, RenderConfig
from smart_diff.types import RasterImage, TILE_SIZE
from smart_diff.utils.image import checker, draw_banner

UNKNOWN_TILE_COLOR = (255, 0, 255)

DEFAULT_PLACEHOLDER_SIZE = (256, 256)

NO_REFERENCE = "No reference data"
INCOMPARABLE = "Incomparable"
DECODE_FAILED = "Cannot display"
LOADING = "Loading..."


@lru_cache(maxsize=4)
def unknown_tile(size: int = TILE_SIZE) -> RasterImage:
    """Magenta/black checker drawn for unresolved tile references."""
    tile = checker(size, UNKNOWN_TILE_COLOR, BLACK, cell=max(1, size // 4))
    tile.setflags(write=False)
    return tile


def placeholder(
    size: Tuple[int, int],
    title: str,
    detail: str = "",
    config: RenderConfig = RenderConfig(),
) -> RasterImage:
    """Opaque banner image of ``size`` (width, height) explaining ``title``."""
    lines = (title,) + ((detail,) if detail else ())
    return draw_banner(
        size, lines, config.placeholder_color, config.placeholder_text_color
    )
