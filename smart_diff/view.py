"""View state and its transitions.

:class:`ViewState` is an immutable value object owned by the viewer loop.
Every input produces a *new* ``ViewState`` through :func:`apply_key` or
:func:`apply_pan`; nothing is mutated in place, so a frame can never observe
a half-applied change.

Transitions are total: unknown keys return the state unchanged, and zoom /
room-state / pan changes are clamped rather than refused.

Cache invalidation is derived from the fields a transition changed
(:func:`changed_fields`, :func:`invalidated`) instead of observer callbacks;
the loop checks it once per frame.
"""

from dataclasses import dataclass, fields, replace
from enum import StrEnum, auto
from typing import FrozenSet, Optional, Tuple

from smart_diff.config import ViewerConfig
from smart_diff.types import DisplayMode, Key


class CacheEntry(StrEnum):
    """Derived images held by the frame cache."""

    WORKING = auto()
    REFERENCE = auto()
    MASK = auto()
    HIGHLIGHT = auto()


@dataclass(frozen=True)
class ViewState:
    """Current display configuration.

    Attributes:
        display_mode: Which image is shown.
        layer1_visible: Draw layer 1.
        layer2_visible: Draw layer 2.
        transparent_highlight: Show transparent pixels in pink instead of black.
        zoom: Integer pixel replication factor.
        pan_x: Left edge of the viewport in zoomed image pixels.
        pan_y: Top edge of the viewport in zoomed image pixels.
        state_index: Selected room state.
    """

    display_mode: DisplayMode = DisplayMode.WORKING
    layer1_visible: bool = True
    layer2_visible: bool = True
    transparent_highlight: bool = False
    zoom: int = 1
    pan_x: int = 0
    pan_y: int = 0
    state_index: int = 0


# Fields whose change requires re-rasterizing both versions (and re-diffing)
RASTER_FIELDS: FrozenSet[str] = frozenset(
    {"layer1_visible", "layer2_visible", "zoom", "state_index"}
)

_ALL_ENTRIES: FrozenSet[CacheEntry] = frozenset(CacheEntry)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def apply_key(
    view: ViewState,
    key: str,
    config: ViewerConfig = ViewerConfig(),
    num_states: int = 1,
) -> ViewState:
    """Apply one key press.

    Args:
        view: Current state.
        key: Character of the pressed key (see :class:`smart_diff.types.Key`).
        config: Zoom limits.
        num_states: Number of selectable room states.

    Returns:
        ViewState: Next state (the same object for unrecognized keys).
    """
    try:
        k = Key(key)
    except ValueError:
        return view

    if k == Key.ZOOM_IN:
        return replace(view, zoom=_clamp(view.zoom + 1, config.min_zoom, config.max_zoom))
    if k == Key.ZOOM_OUT:
        return replace(view, zoom=_clamp(view.zoom - 1, config.min_zoom, config.max_zoom))
    if k == Key.TOGGLE_LAYER1:
        return replace(view, layer1_visible=not view.layer1_visible)
    if k == Key.TOGGLE_LAYER2:
        return replace(view, layer2_visible=not view.layer2_visible)
    if k == Key.TOGGLE_TRANSPARENCY:
        return replace(view, transparent_highlight=not view.transparent_highlight)
    if k == Key.SHOW_WORKING:
        return replace(view, display_mode=DisplayMode.WORKING)
    if k == Key.SHOW_REFERENCE:
        return replace(view, display_mode=DisplayMode.REFERENCE)
    if k == Key.SHOW_DIFFERENCE:
        return replace(view, display_mode=DisplayMode.DIFFERENCE)
    if k == Key.NEXT_STATE:
        return replace(view, state_index=_clamp(view.state_index + 1, 0, num_states - 1))
    if k == Key.PREV_STATE:
        return replace(view, state_index=_clamp(view.state_index - 1, 0, num_states - 1))
    return view


def clamp_pan(
    view: ViewState, content_size: Tuple[int, int], viewport: Tuple[int, int]
) -> ViewState:
    """Keep the viewport inside an image of ``content_size`` (width, height).

    Images smaller than the viewport pin the pan to 0.
    """
    max_x = max(0, content_size[0] - viewport[0])
    max_y = max(0, content_size[1] - viewport[1])
    pan_x = _clamp(view.pan_x, 0, max_x)
    pan_y = _clamp(view.pan_y, 0, max_y)
    if (pan_x, pan_y) == (view.pan_x, view.pan_y):
        return view
    return replace(view, pan_x=pan_x, pan_y=pan_y)


def apply_pan(
    view: ViewState,
    dx: int,
    dy: int,
    content_size: Tuple[int, int],
    viewport: Tuple[int, int],
) -> ViewState:
    """Move the viewport by ``(dx, dy)`` pixels, clamped to the image."""
    moved = replace(view, pan_x=view.pan_x + dx, pan_y=view.pan_y + dy)
    return clamp_pan(moved, content_size, viewport)


def changed_fields(old: ViewState, new: ViewState) -> FrozenSet[str]:
    if old is new:
        return frozenset()
    return frozenset(
        f.name for f in fields(ViewState) if getattr(old, f.name) != getattr(new, f.name)
    )


def invalidated(changed: FrozenSet[str]) -> FrozenSet[CacheEntry]:
    """Cache entries that depend on any of the ``changed`` fields.

    Layer visibility, zoom and room state feed rasterization, so they drop
    both rasters and everything derived from them. Display mode, pan and
    transparent highlight only affect selection and blitting.
    """
    if changed & RASTER_FIELDS:
        return _ALL_ENTRIES
    return frozenset()


def describe(view: ViewState, state_name: Optional[str] = None) -> str:
    """One-line human readable summary used in status bars."""
    layers = "".join(
        name
        for name, visible in (("1", view.layer1_visible), ("2", view.layer2_visible))
        if visible
    )
    parts = [
        view.display_mode.name.capitalize(),
        f"layers [{layers or '-'}]",
        f"zoom {view.zoom}x",
    ]
    if view.transparent_highlight:
        parts.append("transparency")
    if state_name:
        parts.append(state_name)
    return ", ".join(parts)
