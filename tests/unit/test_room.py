# tests/unit/test_room.py

import pytest

from smart_diff.errors import MalformedRoom, UnresolvedTile
from smart_diff.room import MAX_SCREENS, TileRef, decode_room, make_room_data
from tests.test_utils import (
    GFX_SET,
    NUM_TILES,
    TILE_BAD_PALETTE,
    TILE_BLUE,
    TILE_RED,
    make_tileset,
    make_tileset_files,
    room_xml,
    screen_words,
    screen_xml,
    state_xml,
    tile_word,
)


def _decode(data: bytes):
    return decode_room(data, make_tileset_files(), name="Test Room")


def _malformed_field(data: bytes) -> str:
    with pytest.raises(MalformedRoom) as exc:
        _decode(data)
    return exc.value.field


def test_tile_ref_from_word() -> None:
    ref = TileRef.from_word(0x5C01)
    assert ref == TileRef(index=1, flip_x=True, flip_y=True, block_type=5)
    assert TileRef.from_word(tile_word(0x3FF)).index == 0x3FF


def test_decode_minimal_room() -> None:
    words = screen_words(overrides={(3, 2): tile_word(TILE_RED, flip_x=True)})
    room = _decode(room_xml([state_xml({(0, 0): words})]))

    assert (room.width, room.height) == (1, 1)
    assert len(room.states) == 1
    state = room.states[0]
    assert state.name == "Default: 0"
    assert state.gfx_set == GFX_SET
    assert (state.width, state.height) == (16, 16)
    assert state.pixel_size == (256, 256)
    assert not state.warnings

    layer1 = state.layer(1)
    assert layer1 is not None
    assert (layer1.width, layer1.height) == (16, 16)
    assert layer1.grid[2][3] == TileRef(index=TILE_RED, flip_x=True)
    assert layer1.grid[0][0] == TileRef(index=0)


def test_layer2_is_empty_without_screens() -> None:
    state = _decode(room_xml()).states[0]
    layer2 = state.layer(2)
    assert layer2 is not None
    assert all(ref is None for row in layer2.grid for ref in row)


def test_multi_screen_room_places_screens() -> None:
    right = screen_words(overrides={(0, 0): tile_word(TILE_BLUE)})
    state = state_xml({(0, 0): screen_words(), (1, 0): right})
    room = _decode(room_xml([state], width=2, height=1))
    data = room.states[0]
    assert (data.width, data.height) == (32, 16)
    assert data.layers[0].grid[0][16].index == TILE_BLUE
    assert data.layers[0].grid[0][0].index == 0


def test_uncovered_screen_is_empty() -> None:
    room = _decode(room_xml([state_xml()], width=2, height=1))
    grid = room.states[0].layers[0].grid
    assert grid[0][0] is not None
    assert grid[0][16] is None


def test_multiple_states() -> None:
    states = [
        state_xml(),
        state_xml(condition="Events", arg=0x1A),
    ]
    room = _decode(room_xml(states))
    assert [s.name for s in room.states] == ["Default: 0", "Events: 1A"]


def test_unresolved_tile_is_recorded_not_fatal() -> None:
    words = screen_words(overrides={(3, 2): tile_word(NUM_TILES + 10)})
    room = _decode(room_xml([state_xml({(0, 0): words})]))

    state = room.states[0]
    assert state.layers[0].grid[2][3].unresolved
    assert len(state.warnings) == 1
    warning = state.warnings[0]
    assert isinstance(warning, UnresolvedTile)
    assert (warning.layer, warning.x, warning.y, warning.index) == (1, 3, 2, NUM_TILES + 10)
    assert room.warnings == [warning]


def test_bad_palette_row_is_unresolved() -> None:
    words = screen_words(overrides={(0, 0): tile_word(TILE_BAD_PALETTE)})
    state = _decode(room_xml([state_xml(layer1={}, layer2={(0, 0): words})])).states[0]
    assert state.layers[1].grid[0][0].unresolved
    assert state.warnings[0].layer == 2
    assert "palette" in str(state.warnings[0])


def test_background_map_decodes() -> None:
    state = _decode(room_xml([state_xml(background=[0x0001] * 1024)])).states[0]
    layer2 = state.layer(2)
    assert layer2 is not None
    assert len(layer2.backgrounds) == 1
    assert layer2.backgrounds[0].screens == 1
    assert layer2.backgrounds[0].refs[0].idx == 1


def test_background_of_wrong_size_is_skipped() -> None:
    state = _decode(room_xml([state_xml(background=[0x0001] * 100)])).states[0]
    assert state.layers[1].backgrounds == ()


def test_invalid_xml() -> None:
    assert _malformed_field(b"<Room><width>") == "Room"


@pytest.mark.parametrize(
    "data, field",
    [
        (b"<Room><height>1</height><States/></Room>", "width"),
        (b"<Room><width>1</width><height>0</height><States/></Room>", "height"),
        (b"<Room><width>ZZ</width><height>1</height></Room>", "width"),
        (b"<Room><width>1</width><height>1</height><States/></Room>", "States"),
        (b"<Room><width>FFFF</width><height>1</height><States/></Room>", "width"),
        (b"<Room><width>1</width><height>41</height><States/></Room>", "height"),
    ],
)
def test_room_header_errors(data: bytes, field: str) -> None:
    assert _malformed_field(data) == field


def test_bad_gfx_set() -> None:
    state = state_xml().replace(f"<GFXset>{GFX_SET:02X}</GFXset>", "<GFXset>xy</GFXset>")
    assert _malformed_field(room_xml([state])) == "States/State[0]/GFXset"


def test_missing_tileset_for_gfx_set() -> None:
    assert _malformed_field(room_xml([state_xml(gfx_set=0x0B)])) == "States/State[0]/GFXset"


def test_missing_level_data() -> None:
    state = "<State><condition>Default</condition><GFXset>0A</GFXset></State>"
    assert _malformed_field(room_xml([state])) == "States/State[0]/LevelData"


def test_missing_layer1() -> None:
    state = (
        "<State><condition>Default</condition><GFXset>0A</GFXset>"
        "<LevelData><Layer2/></LevelData></State>"
    )
    assert _malformed_field(room_xml([state])) == "States/State[0]/LevelData/Layer1"


def test_second_state_error_names_state() -> None:
    states = [state_xml(), state_xml(gfx_set=0x0C)]
    assert _malformed_field(room_xml(states)) == "States/State[1]/GFXset"


def test_short_screen() -> None:
    state = state_xml({(0, 0): screen_words()[:255]})
    assert _malformed_field(room_xml([state])) == "States/State[0]/LevelData/Layer1/Screen[0]"


def test_screen_outside_room() -> None:
    state = state_xml({(1, 0): screen_words()})
    assert _malformed_field(room_xml([state])) == "States/State[0]/LevelData/Layer1/Screen[0]"


def test_duplicate_screen() -> None:
    screens = screen_xml(0, 0, screen_words()) * 2
    state = state_xml().replace(screen_xml(0, 0, screen_words()), screens)
    assert _malformed_field(room_xml([state])) == "States/State[0]/LevelData/Layer1/Screen[1]"


def test_non_hex_tile_word() -> None:
    state = state_xml().replace("0000", "QQQQ", 1)
    assert _malformed_field(room_xml([state])) == "States/State[0]/LevelData/Layer1/Screen[0]"


def test_make_room_data() -> None:
    room = make_room_data(
        [[tile_word(TILE_RED), None], [None, tile_word(NUM_TILES)]], make_tileset()
    )
    assert (room.width, room.height) == (2, 2)
    assert room.pixel_size == (32, 32)
    assert room.layers[0].grid[0][1] is None
    assert room.layers[0].grid[1][1].unresolved
    assert len(room.warnings) == 1
    assert all(ref is None for row in room.layers[1].grid for ref in row)


def test_make_room_data_rejects_ragged_layer2() -> None:
    with pytest.raises(MalformedRoom):
        make_room_data([[0, 0]], make_tileset(), layer2=[[0]])


def test_largest_allowed_room_size_is_accepted() -> None:
    room = _decode(room_xml([state_xml()], width=MAX_SCREENS, height=1))
    assert room.states[0].width == MAX_SCREENS * 16
