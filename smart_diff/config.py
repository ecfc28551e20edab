"""Viewer configuration.

Both config objects are frozen dataclasses; derive variants with
``dataclasses.replace``. Defaults mirror the desktop tool this viewer is
modelled on (zoom 1-8, 30% dimming of unchanged pixels, pink transparency
highlight).
"""

from dataclasses import dataclass, field
from typing import Tuple

from smart_diff.types import Color

PINK: Color = (255, 105, 180)
BLACK: Color = (0, 0, 0)
WHITE: Color = (255, 255, 255)


@dataclass(frozen=True)
class RenderConfig:
    """Rasterization and diff appearance.

    Attributes:
        stacking_order: Layer indices from bottom to top. An opaque pixel of a
            later layer replaces the pixel beneath; there is no blending.
        difference_baseline: Brightness factor for unchanged pixels in the
            difference view (0 hides them, 1 shows them unchanged).
        diff_color: Color of differing pixels in the difference view.
        transparency_color: Backdrop when transparent highlight is on.
        backdrop_color: Backdrop when transparent highlight is off.
        placeholder_color: Fill of error / incomparable placeholders.
        placeholder_text_color: Text color of placeholders.
    """

    stacking_order: Tuple[int, ...] = (1, 2)
    difference_baseline: float = 0.3
    diff_color: Color = WHITE
    transparency_color: Color = PINK
    backdrop_color: Color = BLACK
    placeholder_color: Color = (64, 0, 0)
    placeholder_text_color: Color = WHITE


@dataclass(frozen=True)
class ViewerConfig:
    """Interactive viewer knobs.

    Attributes:
        min_zoom: Smallest pixel replication factor.
        max_zoom: Largest pixel replication factor.
        viewport: Visible ``(width, height)`` in screen pixels.
        pan_step: Pixels moved per pan key press.
        frame_interval: Seconds between frames in ``Viewer.run``; 0 renders
            on demand only.
        max_workers: Size of the background decode pool.
        render: Rasterization settings.
    """

    min_zoom: int = 1
    max_zoom: int = 8
    viewport: Tuple[int, int] = (1024, 768)
    pan_step: int = 64
    frame_interval: float = 1 / 30
    max_workers: int = 2
    render: RenderConfig = field(default_factory=RenderConfig)
