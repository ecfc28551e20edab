"""Tileset decoding.

A room state draws from one *graphics set*: the shared CRE tileset
(``CRE/00``) combined with a scene tileset (``SCE/<gfx_set>``). Each set is
exported as three raw files:

* ``8x8tiles.gfx``: 4bpp planar SNES graphics, 32 bytes per 8x8 tile.
* ``16x16tiles.ttb``: metatile table, four little-endian words per 16x16 tile.
* ``palette.snes``: BGR555 colors, two bytes each (scene tileset only).

The combined tileset orders graphics as ``SCE + CRE`` and metatiles as
``CRE + SCE``, matching how the game lays out VRAM and the tile table.

Decoding is cached on file *content*, so two versions whose tileset files are
byte-identical share a single :class:`Tileset` instance.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np
import numpy.typing as npt

from smart_diff.errors import MalformedRoom
from smart_diff.types import TilesetFiles

logger = logging.getLogger(__name__)

CRE_DIR = "CRE/00"
SCE_DIR = "SCE"
GFX_FILE = "8x8tiles.gfx"
TTB_FILE = "16x16tiles.ttb"
PALETTE_FILE = "palette.snes"

GFX_BYTES = 32
METATILE_BYTES = 8
COLORS_PER_PALETTE = 16


@dataclass(frozen=True)
class GfxRef:
    """Placement of one 8x8 graphic.

    Attributes:
        idx: Index into ``Tileset.gfx``.
        palette: Palette row (16 colors each).
        priority: SNES priority bit; decoded but not used for stacking.
        flip_x: Mirror horizontally.
        flip_y: Mirror vertically.
    """

    idx: int
    palette: int
    priority: bool = False
    flip_x: bool = False
    flip_y: bool = False

    @staticmethod
    def from_word(word: int) -> "GfxRef":
        return GfxRef(
            idx=word & 0x3FF,
            palette=(word >> 10) & 7,
            priority=bool((word >> 13) & 1),
            flip_x=bool((word >> 14) & 1),
            flip_y=bool((word >> 15) & 1),
        )


@dataclass(frozen=True)
class Metatile:
    top_left: GfxRef
    top_right: GfxRef
    bottom_left: GfxRef
    bottom_right: GfxRef

    def quadrants(self) -> Tuple[Tuple[GfxRef, int, int], ...]:
        """Return ``(ref, x, y)`` for each quadrant in drawing order."""
        return (
            (self.top_left, 0, 0),
            (self.top_right, 8, 0),
            (self.bottom_left, 0, 8),
            (self.bottom_right, 8, 8),
        )


@dataclass(frozen=True, eq=False)
class Tileset:
    """Decoded graphics for one graphics set.

    Compared and hashed by identity: the content cache guarantees equal file
    bytes map to the same instance.

    Attributes:
        gfx: ``(N, 8, 8)`` array of 4-bit color indices (0 is transparent).
        tiles: ``(M, 4)`` array of metatile words (TL, TR, BL, BR).
        palette: ``(C, 3)`` array of RGB colors.
    """

    gfx: npt.NDArray[np.uint8]
    tiles: npt.NDArray[np.uint16]
    palette: npt.NDArray[np.uint8]

    @property
    def num_gfx(self) -> int:
        return int(self.gfx.shape[0])

    @property
    def num_tiles(self) -> int:
        return int(self.tiles.shape[0])

    @property
    def num_colors(self) -> int:
        return int(self.palette.shape[0])

    def metatile(self, index: int) -> Metatile:
        tl, tr, bl, br = (int(w) for w in self.tiles[index])
        return Metatile(
            GfxRef.from_word(tl),
            GfxRef.from_word(tr),
            GfxRef.from_word(bl),
            GfxRef.from_word(br),
        )

    def gfx_problem(self, ref: GfxRef) -> Optional[str]:
        """Return why ``ref`` cannot be drawn, or ``None`` if it resolves."""
        if ref.idx >= self.num_gfx:
            return f"gfx {ref.idx:#05x} out of range"
        max_color = int(self.gfx[ref.idx].max())
        if max_color and ref.palette * COLORS_PER_PALETTE + max_color >= self.num_colors:
            return f"palette {ref.palette} out of range"
        return None

    def tile_problem(self, index: int) -> Optional[str]:
        """Return why metatile ``index`` cannot be drawn, or ``None``."""
        if index >= self.num_tiles:
            return "metatile out of range"
        for ref, _, _ in self.metatile(index).quadrants():
            problem = self.gfx_problem(ref)
            if problem is not None:
                return problem
        return None


def decode_gfx(data: bytes, name: str = GFX_FILE) -> npt.NDArray[np.uint8]:
    """Decode 4bpp planar SNES graphics into ``(N, 8, 8)`` color indices.

    Row ``y`` of a tile stores bitplanes 0/1 at bytes ``2y, 2y+1`` and
    bitplanes 2/3 at ``16+2y, 17+2y``; the most significant bit is the
    leftmost pixel.
    """
    if len(data) % GFX_BYTES != 0:
        raise MalformedRoom(name, f"length {len(data)} is not a multiple of {GFX_BYTES}")
    raw = np.frombuffer(data, dtype=np.uint8).reshape(-1, GFX_BYTES)
    planes = (raw[:, 0:16:2], raw[:, 1:16:2], raw[:, 16:32:2], raw[:, 17:32:2])
    out = np.zeros((raw.shape[0], 8, 8), dtype=np.uint8)
    for bit, plane in enumerate(planes):
        out |= np.unpackbits(plane[..., None], axis=-1) << bit
    return out


def decode_palette(data: bytes, name: str = PALETTE_FILE) -> npt.NDArray[np.uint8]:
    """Decode BGR555 words into ``(C, 3)`` RGB (each channel scaled by 8)."""
    if len(data) % 2 != 0:
        raise MalformedRoom(name, f"odd length {len(data)}")
    words = np.frombuffer(data, dtype="<u2").astype(np.uint16)
    rgb = np.stack([words & 0x1F, (words >> 5) & 0x1F, (words >> 10) & 0x1F], axis=-1)
    return (rgb * 8).astype(np.uint8)


def decode_metatiles(data: bytes, name: str = TTB_FILE) -> npt.NDArray[np.uint16]:
    if len(data) % METATILE_BYTES != 0:
        raise MalformedRoom(
            name, f"length {len(data)} is not a multiple of {METATILE_BYTES}"
        )
    return np.frombuffer(data, dtype="<u2").astype(np.uint16).reshape(-1, 4)


def sce_dir(gfx_set: int) -> str:
    return f"{SCE_DIR}/{gfx_set:02X}"


@lru_cache(maxsize=32)
def _decode_tileset(
    cre_gfx: bytes,
    cre_ttb: bytes,
    sce_palette: bytes,
    sce_gfx: bytes,
    sce_ttb: bytes,
    sce_path: str,
) -> Tileset:
    gfx = np.concatenate(
        [
            decode_gfx(sce_gfx, f"{sce_path}/{GFX_FILE}"),
            decode_gfx(cre_gfx, f"{CRE_DIR}/{GFX_FILE}"),
        ]
    )
    tiles = np.concatenate(
        [
            decode_metatiles(cre_ttb, f"{CRE_DIR}/{TTB_FILE}"),
            decode_metatiles(sce_ttb, f"{sce_path}/{TTB_FILE}"),
        ]
    )
    palette = decode_palette(sce_palette, f"{sce_path}/{PALETTE_FILE}")
    for array in (gfx, tiles, palette):
        array.setflags(write=False)
    logger.debug(
        "Decoded tileset %s: %d gfx, %d metatiles, %d colors",
        sce_path,
        gfx.shape[0],
        tiles.shape[0],
        palette.shape[0],
    )
    return Tileset(gfx=gfx, tiles=tiles, palette=palette)


def load_tileset(files: TilesetFiles, gfx_set: int, field: str = "GFXset") -> Tileset:
    """Build the combined tileset for ``gfx_set`` from raw tileset files.

    Args:
        files: Mapping of paths relative to ``Export/Tileset`` to content.
        gfx_set: Scene tileset number.
        field: Room field reported if a file is missing.

    Raises:
        MalformedRoom: If a required file is missing or truncated.
    """
    scene = sce_dir(gfx_set)
    paths = (
        f"{CRE_DIR}/{GFX_FILE}",
        f"{CRE_DIR}/{TTB_FILE}",
        f"{scene}/{PALETTE_FILE}",
        f"{scene}/{GFX_FILE}",
        f"{scene}/{TTB_FILE}",
    )
    missing = [path for path in paths if path not in files]
    if missing:
        raise MalformedRoom(
            field, f"graphics set {gfx_set:02X} is missing {', '.join(missing)}"
        )
    return _decode_tileset(*(bytes(files[path]) for path in paths), scene)
