from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from pyrsistent import pmap
from pyrsistent.typing import PMap

from smart_diff.room import make_room_data
from smart_diff.tileset import (
    CRE_DIR,
    GFX_FILE,
    PALETTE_FILE,
    TTB_FILE,
    Tileset,
    load_tileset,
    sce_dir,
)

GFX_SET = 0x0A

RED = (248, 0, 0)
GREEN = (0, 248, 0)
BLUE = (0, 0, 248)
PALETTE = [(0, 0, 0), RED, GREEN, BLUE] + [(0, 0, 0)] * 12

# Combined gfx indices (scene graphics come first)
GFX_EMPTY = 0
GFX_RED = 1
GFX_GREEN = 2
GFX_HALF_RED = 3  # left 4 columns red, rest transparent
GFX_BLUE = 4  # from CRE

# Combined metatile indices (CRE metatiles come first)
TILE_EMPTY = 0
TILE_RED = 1
TILE_GREEN = 2
TILE_CORNER = 3  # only the top-left 4x8 pixels are red
TILE_BLUE = 4
TILE_BAD_PALETTE = 5
NUM_TILES = 6


def solid_gfx(color: int) -> np.ndarray:
    return np.full((8, 8), color, dtype=np.uint8)


def encode_gfx(pixels: np.ndarray) -> bytes:
    """Encode an 8x8 array of 4-bit color indices as SNES 4bpp planar."""
    out = bytearray(32)
    for y in range(8):
        for bit, offset in enumerate((0, 1, 16, 17)):
            byte = 0
            for x in range(8):
                if (int(pixels[y][x]) >> bit) & 1:
                    byte |= 0x80 >> x
            out[offset + 2 * y] = byte
    return bytes(out)


def encode_palette(colors: Sequence[Tuple[int, int, int]]) -> bytes:
    words = [(r // 8) | ((g // 8) << 5) | ((b // 8) << 10) for r, g, b in colors]
    return encode_words(words)


def encode_words(words: Sequence[int]) -> bytes:
    return b"".join(int(w).to_bytes(2, "little") for w in words)


def gfx_word(
    idx: int, palette: int = 0, flip_x: bool = False, flip_y: bool = False
) -> int:
    return idx | (palette << 10) | (int(flip_x) << 14) | (int(flip_y) << 15)


def tile_word(
    index: int, flip_x: bool = False, flip_y: bool = False, block_type: int = 0
) -> int:
    return index | (0x400 if flip_x else 0) | (0x800 if flip_y else 0) | (block_type << 12)


def metatile_words(tl: int, tr: int, bl: int, br: int) -> List[int]:
    return [gfx_word(tl), gfx_word(tr), gfx_word(bl), gfx_word(br)]


def make_tileset_files(
    gfx_set: int = GFX_SET, palette: Sequence[Tuple[int, int, int]] = PALETTE
) -> PMap[str, bytes]:
    """Tileset files for a small graphics set.

    Scene gfx: empty, red, green, half red. CRE gfx: blue.
    CRE metatiles: empty. Scene metatiles: red, green, corner, blue and one
    referencing a palette row that does not exist.
    """
    half = np.zeros((8, 8), dtype=np.uint8)
    half[:, :4] = 1
    sce_gfx = b"".join(
        encode_gfx(g) for g in (solid_gfx(0), solid_gfx(1), solid_gfx(2), half)
    )
    cre_gfx = encode_gfx(solid_gfx(3))
    cre_ttb = encode_words(metatile_words(GFX_EMPTY, GFX_EMPTY, GFX_EMPTY, GFX_EMPTY))
    sce_ttb = encode_words(
        metatile_words(GFX_RED, GFX_RED, GFX_RED, GFX_RED)
        + metatile_words(GFX_GREEN, GFX_GREEN, GFX_GREEN, GFX_GREEN)
        + metatile_words(GFX_HALF_RED, GFX_EMPTY, GFX_EMPTY, GFX_EMPTY)
        + metatile_words(GFX_BLUE, GFX_BLUE, GFX_BLUE, GFX_BLUE)
        + [gfx_word(GFX_RED, palette=1)] * 4
    )
    scene = sce_dir(gfx_set)
    return pmap(
        {
            f"{CRE_DIR}/{GFX_FILE}": cre_gfx,
            f"{CRE_DIR}/{TTB_FILE}": cre_ttb,
            f"{scene}/{GFX_FILE}": sce_gfx,
            f"{scene}/{TTB_FILE}": sce_ttb,
            f"{scene}/{PALETTE_FILE}": encode_palette(palette),
        }
    )


def make_tileset(gfx_set: int = GFX_SET) -> Tileset:
    return load_tileset(make_tileset_files(gfx_set), gfx_set)


def make_grid_room(grid: Sequence[Sequence[Optional[int]]], **kwargs):
    """``RoomData`` from metatile words against the standard test tileset."""
    return make_room_data(grid, make_tileset(), **kwargs)


# --------- Room XML ---------


def screen_words(
    fill: int = TILE_EMPTY, overrides: Optional[Mapping[Tuple[int, int], int]] = None
) -> List[int]:
    """256 tile words of one screen; ``overrides`` maps local (x, y) to a word."""
    words = [fill] * 256
    for (x, y), word in (overrides or {}).items():
        words[y * 16 + x] = word
    return words


def screen_xml(x: int, y: int, words: Sequence[int]) -> str:
    body = " ".join(f"{w:04X}" for w in words)
    return f'<Screen X="{x:02X}" Y="{y:02X}">{body}</Screen>'


def state_xml(
    layer1: Optional[Dict[Tuple[int, int], Sequence[int]]] = None,
    layer2: Optional[Dict[Tuple[int, int], Sequence[int]]] = None,
    gfx_set: int = GFX_SET,
    condition: str = "Default",
    arg: int = 0,
    background: Optional[Sequence[int]] = None,
) -> str:
    """One ``<State>``; layers map screen (x, y) to its 256 tile words."""
    layer1 = {(0, 0): screen_words()} if layer1 is None else layer1
    l1 = "".join(screen_xml(x, y, w) for (x, y), w in layer1.items())
    l2 = ""
    if layer2 is not None:
        l2 = "<Layer2>" + "".join(screen_xml(x, y, w) for (x, y), w in layer2.items()) + "</Layer2>"
    bg = ""
    if background is not None:
        source = " ".join(f"{w:04X}" for w in background)
        bg = f"<BGData><Data><Type>DECOMP</Type><SOURCE>{source}</SOURCE></Data></BGData>"
    return (
        "<State>"
        f"<condition>{condition}</condition><Arg>{arg:X}</Arg><GFXset>{gfx_set:02X}</GFXset>"
        f"<LevelData><Layer1>{l1}</Layer1>{l2}</LevelData>"
        f"{bg}"
        "</State>"
    )


def room_xml(
    states: Optional[Sequence[str]] = None, width: int = 1, height: int = 1
) -> bytes:
    """Room export with the given ``<State>`` fragments (one empty state by default)."""
    body = "".join(states if states is not None else [state_xml()])
    return (
        f"<Room><width>{width:X}</width><height>{height:X}</height>"
        f"<States>{body}</States></Room>"
    ).encode()
