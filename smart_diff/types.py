"""Common type aliases and enumerations.

``RasterImage`` and ``DiffMask`` are plain NumPy arrays; the aliases exist to
make signatures readable. ``Key`` lists every key the view state machine
understands (see :mod:`smart_diff.view`).
"""

from enum import StrEnum, auto
from typing import Mapping, Tuple

import numpy as np
import numpy.typing as npt

Color = Tuple[int, int, int]

# H x W x 4, uint8
RasterImage = npt.NDArray[np.uint8]
# H x W, bool
DiffMask = npt.NDArray[np.bool_]

# Relative path (e.g. "SCE/0A/palette.snes") -> raw file content
TilesetFiles = Mapping[str, bytes]

TILE_SIZE = 16
GFX_SIZE = 8
SCREEN_TILES = 16


class DisplayMode(StrEnum):
    """Which image the viewer blits."""

    WORKING = auto()
    REFERENCE = auto()
    DIFFERENCE = auto()


class Version(StrEnum):
    """The two sides of a comparison."""

    WORKING = auto()
    REFERENCE = auto()


class Key(StrEnum):
    ZOOM_IN = "="
    ZOOM_OUT = "-"
    TOGGLE_LAYER1 = "1"
    TOGGLE_LAYER2 = "2"
    TOGGLE_TRANSPARENCY = "t"
    SHOW_WORKING = "w"
    SHOW_REFERENCE = "r"
    SHOW_DIFFERENCE = "d"
    NEXT_STATE = "]"
    PREV_STATE = "["
