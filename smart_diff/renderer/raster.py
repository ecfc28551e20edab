"""Room rasterization.

:func:`rasterize` composites the visible layers of a :class:`RoomData` into a
single RGBA array and applies zoom by integer pixel replication. It is a pure
function of ``(room, view fields that affect composition)``: equal inputs
always produce byte-identical output, which is what makes the viewer's frame
cache safe.

Drawing rules:

* 4-bit color index 0 is transparent. Transparent pixels are stored as
  ``(0, 0, 0, 0)`` so equal appearance means equal bytes.
* A metatile flip mirrors the whole 16x16 tile (equivalent to swapping the
  quadrants and toggling each quadrant's own flip).
* Layer 2 draws its background maps first, then its metatile grid.
* Layers stack in ``RenderConfig.stacking_order`` (layer 1 beneath layer 2 by
  default). An opaque pixel replaces whatever lies beneath it.
* Hidden layers contribute nothing, so image dimensions never change.
* Unresolved placements draw the magenta/black "unknown" tile.

Native (zoom 1) layer images are memoized per ``(RoomData, layer)``; callers
receive read-only arrays from the memo and copies from :func:`rasterize`.
"""

from functools import lru_cache
from typing import Dict, Tuple

import numpy as np

from smart_diff.config import RenderConfig
from smart_diff.renderer.placeholder import unknown_tile
from smart_diff.room import BG_SCREEN_WORDS, BackgroundMap, Layer, RoomData, TileRef
from smart_diff.tileset import GfxRef, Tileset
from smart_diff.types import GFX_SIZE, RasterImage, TILE_SIZE
from smart_diff.utils.image import blank, blit_opaque, scale_nearest
from smart_diff.view import ViewState

BG_SCREEN_PIXELS = 256


def render_gfx(tileset: Tileset, ref: GfxRef) -> RasterImage:
    """Render one 8x8 graphic to RGBA."""
    pixels = tileset.gfx[ref.idx]
    if ref.flip_x:
        pixels = pixels[:, ::-1]
    if ref.flip_y:
        pixels = pixels[::-1, :]
    out = np.zeros((GFX_SIZE, GFX_SIZE, 4), dtype=np.uint8)
    opaque = pixels != 0
    colors = tileset.palette[ref.palette * 16 + pixels[opaque].astype(np.intp)]
    out[opaque, :3] = colors
    out[opaque, 3] = 255
    return out


def render_metatile(tileset: Tileset, ref: TileRef) -> RasterImage:
    """Render one 16x16 placement to RGBA (placeholder if unresolved)."""
    if ref.unresolved:
        return unknown_tile(TILE_SIZE).copy()
    out = np.zeros((TILE_SIZE, TILE_SIZE, 4), dtype=np.uint8)
    for gfx_ref, x, y in tileset.metatile(ref.index).quadrants():
        blit_opaque(out, render_gfx(tileset, gfx_ref), x, y)
    if ref.flip_x:
        out = out[:, ::-1]
    if ref.flip_y:
        out = out[::-1, :]
    return np.ascontiguousarray(out)


def _render_background_screen(tileset: Tileset, bg: BackgroundMap) -> RasterImage:
    """Render a background map as one 256-pixel-high strip (256 or 512 wide)."""
    strip = blank(BG_SCREEN_PIXELS * bg.screens, BG_SCREEN_PIXELS)
    placeholder = unknown_tile(GFX_SIZE)
    for i, ref in enumerate(bg.refs):
        screen, local = divmod(i, BG_SCREEN_WORDS)
        x = screen * BG_SCREEN_PIXELS + (local % 32) * GFX_SIZE
        y = (local // 32) * GFX_SIZE
        tile = placeholder if i in bg.unresolved else render_gfx(tileset, ref)
        blit_opaque(strip, tile, x, y)
    return strip


def _draw_background(
    image: RasterImage, tileset: Tileset, bg: BackgroundMap
) -> None:
    strip = _render_background_screen(tileset, bg)
    strip_w = strip.shape[1]
    height, width = image.shape[:2]
    # Only whole strips are repeated across the room
    for sy in range(height // BG_SCREEN_PIXELS):
        for sx in range(width // strip_w):
            blit_opaque(image, strip, sx * strip_w, sy * BG_SCREEN_PIXELS)


def render_layer(layer: Layer, tileset: Tileset, width: int, height: int) -> RasterImage:
    """Render a layer at native resolution (16 pixels per metatile)."""
    image = blank(width * TILE_SIZE, height * TILE_SIZE)
    for bg in layer.backgrounds:
        _draw_background(image, tileset, bg)

    tiles: Dict[TileRef, RasterImage] = {}
    for y, row in enumerate(layer.grid):
        for x, ref in enumerate(row):
            if ref is None:
                continue
            if ref not in tiles:
                tiles[ref] = render_metatile(tileset, ref)
            blit_opaque(image, tiles[ref], x * TILE_SIZE, y * TILE_SIZE)
    return image


@lru_cache(maxsize=64)
def layer_image(room: RoomData, index: int) -> RasterImage:
    """Memoized native render of layer ``index`` (read-only array)."""
    layer = room.layer(index)
    if layer is None:
        image = blank(*room.pixel_size)
    else:
        image = render_layer(layer, room.tileset, room.width, room.height)
    image.setflags(write=False)
    return image


def layer_visible(view: ViewState, index: int) -> bool:
    if index == 1:
        return view.layer1_visible
    if index == 2:
        return view.layer2_visible
    return False


def raster_size(room: RoomData, zoom: int) -> Tuple[int, int]:
    """``(width, height)`` in pixels of ``rasterize(room, view)`` at ``zoom``."""
    width, height = room.pixel_size
    return width * zoom, height * zoom


def rasterize(
    room: RoomData, view: ViewState, config: RenderConfig = RenderConfig()
) -> RasterImage:
    """Composite the visible layers of ``room`` and scale by ``view.zoom``.

    Reads only ``layer1_visible``, ``layer2_visible`` and ``zoom`` from the
    view. Pan is applied later, at blit time.

    Returns:
        RasterImage: ``(height * 16 * zoom, width * 16 * zoom, 4)`` uint8.
    """
    out = blank(*room.pixel_size)
    for index in config.stacking_order:
        if layer_visible(view, index):
            blit_opaque(out, layer_image(room, index), 0, 0)
    return scale_nearest(out, view.zoom)
