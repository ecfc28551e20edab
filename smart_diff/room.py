"""Room decoding.

Turns a SMART room export (XML) plus its tileset files into immutable
:class:`Room` / :class:`RoomData` values. Decoding is a pure function: it
either returns a fully populated ``Room`` or raises :class:`MalformedRoom`
naming the offending field. Tile placements that do not resolve against the
tileset are *not* fatal; they are kept as ``unresolved`` :class:`TileRef`
values (drawn as the placeholder tile) and reported as
:class:`UnresolvedTile` warnings on the owning ``RoomData``.

Room export layout (values are hexadecimal)::

    <Room>
      <width>2</width><height>1</height>
      <States>
        <State>
          <condition>Default</condition><Arg>0</Arg><GFXset>0A</GFXset>
          <LevelData>
            <Layer1><Screen X="00" Y="00">8000 8001 ... (256 words)</Screen></Layer1>
            <Layer2>...</Layer2>
          </LevelData>
          <BGData><Data><Type>DECOMP</Type><SOURCE>...</SOURCE></Data></BGData>
        </State>
      </States>
    </Room>

``width`` / ``height`` count screens; each screen is 16x16 metatiles.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from xml.etree import ElementTree

from pyrsistent import PVector, pvector

from smart_diff.errors import MalformedRoom, UnresolvedTile
from smart_diff.tileset import GfxRef, Tileset, load_tileset
from smart_diff.types import SCREEN_TILES, TILE_SIZE, TilesetFiles

logger = logging.getLogger(__name__)

SCREEN_WORDS = SCREEN_TILES * SCREEN_TILES
BG_SCREEN_WORDS = 1024
BG_DECOMP = "DECOMP"
# Larger than any room the game can load
MAX_SCREENS = 0x40


@dataclass(frozen=True)
class TileRef:
    """One metatile placement in a layer.

    Attributes:
        index: Metatile index (10 bits).
        flip_x: Mirror the whole metatile horizontally.
        flip_y: Mirror the whole metatile vertically.
        block_type: Upper four bits (collision type); not drawn.
        unresolved: Index or its graphics do not exist in the tileset.
    """

    index: int
    flip_x: bool = False
    flip_y: bool = False
    block_type: int = 0
    unresolved: bool = False

    @staticmethod
    def from_word(word: int) -> "TileRef":
        return TileRef(
            index=word & 0x3FF,
            flip_x=bool(word & 0x400),
            flip_y=bool(word & 0x800),
            block_type=(word >> 12) & 0xF,
        )


@dataclass(frozen=True)
class BackgroundMap:
    """A decompressed background tilemap (layer 2 only).

    ``refs`` holds 1024 (one 32x32 screen) or 2048 (two screens side by side)
    8x8 placements. ``unresolved`` lists indices of placements that do not
    resolve against the tileset.
    """

    refs: Tuple[GfxRef, ...]
    unresolved: frozenset = frozenset()

    @property
    def screens(self) -> int:
        return len(self.refs) // BG_SCREEN_WORDS


TileGrid = Tuple[Tuple[Optional[TileRef], ...], ...]


@dataclass(frozen=True)
class Layer:
    """A grid of metatile placements.

    Attributes:
        index: 1 or 2.
        grid: ``grid[y][x]`` placement, ``None`` where no screen covers the cell.
        backgrounds: Background maps drawn beneath the grid (layer 2).
    """

    index: int
    grid: TileGrid
    backgrounds: Tuple[BackgroundMap, ...] = ()

    @property
    def width(self) -> int:
        return len(self.grid[0]) if self.grid else 0

    @property
    def height(self) -> int:
        return len(self.grid)


@dataclass(frozen=True, eq=False)
class RoomData:
    """One decoded room state of one version.

    Hashed by identity so rendered layers can be memoized per instance.

    Attributes:
        name: ``"<condition>: <arg>"`` label of the room state.
        width: Width in metatiles.
        height: Height in metatiles.
        layers: Layer 1 then layer 2.
        tileset: Graphics the layers resolve against.
        gfx_set: Scene tileset number.
        warnings: Unresolved placements found while decoding.
    """

    name: str
    width: int
    height: int
    layers: Tuple[Layer, ...]
    tileset: Tileset
    gfx_set: int = 0
    warnings: PVector = pvector()

    @property
    def pixel_size(self) -> Tuple[int, int]:
        return self.width * TILE_SIZE, self.height * TILE_SIZE

    def layer(self, index: int) -> Optional[Layer]:
        return next((layer for layer in self.layers if layer.index == index), None)


@dataclass(frozen=True)
class Room:
    """A decoded room file: its size in screens and its states."""

    name: str
    width: int
    height: int
    states: Tuple[RoomData, ...]

    @property
    def warnings(self) -> List[UnresolvedTile]:
        return [w for state in self.states for w in state.warnings]


# --------- XML helpers ---------


def _value(elem: ElementTree.Element, name: str) -> Optional[str]:
    """Read ``name`` as an attribute or a child element's text."""
    if name in elem.attrib:
        return elem.attrib[name]
    child = elem.find(name)
    if child is None:
        return None
    return child.text or ""


def _hex(elem: ElementTree.Element, name: str, path: str, default: Optional[int] = None) -> int:
    text = _value(elem, name)
    field = f"{path}/{name}" if path else name
    if text is None:
        if default is not None:
            return default
        raise MalformedRoom(field, "missing")
    try:
        return int(text.strip(), 16)
    except ValueError:
        raise MalformedRoom(field, f"not a hex number: {text.strip()!r}") from None


def _hex_words(text: Optional[str], field: str, limit: int = 0xFFFF) -> List[int]:
    words: List[int] = []
    for token in (text or "").split():
        try:
            word = int(token, 16)
        except ValueError:
            raise MalformedRoom(field, f"not a hex word: {token!r}") from None
        if word > limit:
            raise MalformedRoom(field, f"word {token} out of range")
        words.append(word)
    return words


# --------- Layers ---------


def _resolve(
    word: int, tileset: Tileset, layer: int, x: int, y: int, warnings: List[UnresolvedTile]
) -> TileRef:
    ref = TileRef.from_word(word)
    problem = tileset.tile_problem(ref.index)
    if problem is None:
        return ref
    warning = UnresolvedTile(layer, x, y, ref.index, problem)
    logger.warning("%s", warning)
    warnings.append(warning)
    return TileRef(ref.index, ref.flip_x, ref.flip_y, ref.block_type, unresolved=True)


def _decode_layer(
    elem: Optional[ElementTree.Element],
    index: int,
    path: str,
    width: int,
    height: int,
    tileset: Tileset,
    warnings: List[UnresolvedTile],
    backgrounds: Tuple[BackgroundMap, ...] = (),
) -> Layer:
    tiles_w, tiles_h = width * SCREEN_TILES, height * SCREEN_TILES
    grid: List[List[Optional[TileRef]]] = [[None] * tiles_w for _ in range(tiles_h)]
    seen: Dict[Tuple[int, int], int] = {}

    screens = elem.findall("Screen") if elem is not None else []
    for n, screen in enumerate(screens):
        field = f"{path}/Screen[{n}]"
        sx = _hex(screen, "X", field)
        sy = _hex(screen, "Y", field)
        if not (0 <= sx < width and 0 <= sy < height):
            raise MalformedRoom(
                field, f"screen ({sx}, {sy}) outside room of {width}x{height} screens"
            )
        if (sx, sy) in seen:
            raise MalformedRoom(field, f"duplicates Screen[{seen[(sx, sy)]}]")
        seen[(sx, sy)] = n
        words = _hex_words(screen.text, field)
        if len(words) != SCREEN_WORDS:
            raise MalformedRoom(
                field, f"expected {SCREEN_WORDS} tiles, found {len(words)}"
            )
        for i, word in enumerate(words):
            x = sx * SCREEN_TILES + i % SCREEN_TILES
            y = sy * SCREEN_TILES + i // SCREEN_TILES
            grid[y][x] = _resolve(word, tileset, index, x, y, warnings)

    return Layer(
        index=index,
        grid=tuple(tuple(row) for row in grid),
        backgrounds=backgrounds,
    )


def _decode_backgrounds(
    elem: Optional[ElementTree.Element],
    path: str,
    tileset: Tileset,
    warnings: List[UnresolvedTile],
) -> Tuple[BackgroundMap, ...]:
    if elem is None:
        return ()
    backgrounds: List[BackgroundMap] = []
    for n, data in enumerate(elem.findall("Data")):
        field = f"{path}/Data[{n}]"
        if (_value(data, "Type") or "").strip() != BG_DECOMP:
            continue
        words = _hex_words(_value(data, "SOURCE"), f"{field}/SOURCE", limit=0xFFFFFFFF)
        if len(words) not in (BG_SCREEN_WORDS, 2 * BG_SCREEN_WORDS):
            logger.debug("Skipping %s with %d words", field, len(words))
            continue
        refs = tuple(GfxRef.from_word(word & 0xFFFF) for word in words)
        unresolved = set()
        for i, ref in enumerate(refs):
            problem = tileset.gfx_problem(ref)
            if problem is not None:
                warning = UnresolvedTile(2, i % 32, i // 32, ref.idx, f"background: {problem}")
                logger.warning("%s", warning)
                warnings.append(warning)
                unresolved.add(i)
        backgrounds.append(BackgroundMap(refs=refs, unresolved=frozenset(unresolved)))
    return tuple(backgrounds)


def _decode_state(
    elem: ElementTree.Element,
    path: str,
    width: int,
    height: int,
    tileset_files: TilesetFiles,
) -> RoomData:
    condition = (_value(elem, "condition") or "").strip()
    arg = _hex(elem, "Arg", path, default=0)
    gfx_set = _hex(elem, "GFXset", path)
    tileset = load_tileset(tileset_files, gfx_set, field=f"{path}/GFXset")

    level_data = elem.find("LevelData")
    if level_data is None:
        raise MalformedRoom(f"{path}/LevelData", "missing")
    layer1 = level_data.find("Layer1")
    if layer1 is None:
        raise MalformedRoom(f"{path}/LevelData/Layer1", "missing")

    warnings: List[UnresolvedTile] = []
    backgrounds = _decode_backgrounds(elem.find("BGData"), f"{path}/BGData", tileset, warnings)
    layers = (
        _decode_layer(
            layer1, 1, f"{path}/LevelData/Layer1", width, height, tileset, warnings
        ),
        _decode_layer(
            level_data.find("Layer2"),
            2,
            f"{path}/LevelData/Layer2",
            width,
            height,
            tileset,
            warnings,
            backgrounds,
        ),
    )
    return RoomData(
        name=f"{condition}: {arg:X}",
        width=width * SCREEN_TILES,
        height=height * SCREEN_TILES,
        layers=layers,
        tileset=tileset,
        gfx_set=gfx_set,
        warnings=pvector(warnings),
    )


def decode_room(room_bytes: bytes, tileset_files: TilesetFiles, name: str = "") -> Room:
    """Decode a room export against its tileset files.

    Args:
        room_bytes: Raw XML content of ``Export/Rooms/<name>.xml``.
        tileset_files: Files under ``Export/Tileset`` keyed by relative path.
        name: Room name used in messages.

    Returns:
        Room: Fully decoded room with one ``RoomData`` per state.

    Raises:
        MalformedRoom: On any structural inconsistency.
    """
    try:
        root = ElementTree.fromstring(room_bytes)
    except ElementTree.ParseError as e:
        raise MalformedRoom("Room", f"invalid XML: {e}") from None

    width = _hex(root, "width", "")
    height = _hex(root, "height", "")
    for field, value in (("width", width), ("height", height)):
        if value <= 0:
            raise MalformedRoom(field, f"must be positive, got {value}")
        if value > MAX_SCREENS:
            raise MalformedRoom(
                field, f"{value:#x} screens exceeds the limit of {MAX_SCREENS:#x}"
            )

    states_elem = root.find("States")
    state_elems = states_elem.findall("State") if states_elem is not None else []
    if not state_elems:
        raise MalformedRoom("States", "room has no states")

    states = tuple(
        _decode_state(elem, f"States/State[{i}]", width, height, tileset_files)
        for i, elem in enumerate(state_elems)
    )
    room = Room(name=name, width=width, height=height, states=states)
    if room.warnings:
        logger.warning(
            "Room %s decoded with %d unresolved tiles", name or "?", len(room.warnings)
        )
    return room


def make_room_data(
    grid: Sequence[Sequence[Optional[int]]],
    tileset: Tileset,
    layer2: Optional[Sequence[Sequence[Optional[int]]]] = None,
    name: str = "Default: 0",
) -> RoomData:
    """Build a ``RoomData`` directly from metatile words (no XML).

    Useful for tools and tests that work below the screen granularity of the
    export format. ``None`` leaves a cell empty.
    """
    height = len(grid)
    width = len(grid[0]) if height else 0
    warnings: List[UnresolvedTile] = []

    def build(index: int, words: Sequence[Sequence[Optional[int]]]) -> Layer:
        if len(words) != height or any(len(row) != width for row in words):
            raise MalformedRoom(f"Layer{index}", f"grid is not {width}x{height}")
        return Layer(
            index=index,
            grid=tuple(
                tuple(
                    None if word is None else _resolve(word, tileset, index, x, y, warnings)
                    for x, word in enumerate(row)
                )
                for y, row in enumerate(words)
            ),
        )

    empty = [[None] * width for _ in range(height)]
    layers = (build(1, grid), build(2, layer2 if layer2 is not None else empty))
    return RoomData(
        name=name,
        width=width,
        height=height,
        layers=layers,
        tileset=tileset,
        warnings=pvector(warnings),
    )
