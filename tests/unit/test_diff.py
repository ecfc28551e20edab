# tests/unit/test_diff.py

import numpy as np
import pytest

from smart_diff.config import RenderConfig
from smart_diff.errors import DimensionMismatch
from smart_diff.renderer.diff import changed_fraction, diff, highlight
from smart_diff.renderer.raster import rasterize
from smart_diff.view import ViewState
from tests.test_utils import (
    RED,
    TILE_BLUE,
    TILE_EMPTY,
    TILE_GREEN,
    TILE_RED,
    make_grid_room,
    tile_word,
)


def _image(seed: int, shape=(8, 8, 4)) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 4, size=shape, dtype=np.uint8)


def test_diff_matches_pixel_inequality() -> None:
    a, b = _image(1), _image(2)
    mask = diff(a, b)
    assert mask.shape == (8, 8)
    assert mask.dtype == np.bool_
    expected = [[not np.array_equal(a[y, x], b[y, x]) for x in range(8)] for y in range(8)]
    assert mask.tolist() == expected


def test_diff_is_symmetric() -> None:
    a, b = _image(3), _image(4)
    assert np.array_equal(diff(a, b), diff(b, a))


def test_self_diff_is_empty() -> None:
    a = _image(5)
    assert not diff(a, a).any()
    assert not diff(a, a.copy()).any()


def test_alpha_only_change_is_a_difference() -> None:
    a = np.zeros((1, 2, 4), dtype=np.uint8)
    b = a.copy()
    b[0, 1, 3] = 255  # opaque black vs transparent
    assert diff(a, b).tolist() == [[False, True]]


def test_dimension_mismatch() -> None:
    with pytest.raises(DimensionMismatch) as exc:
        diff(np.zeros((16, 16, 4), np.uint8), np.zeros((16, 32, 4), np.uint8))
    assert exc.value.working_shape == (16, 16, 4)
    assert exc.value.reference_shape == (16, 32, 4)


@pytest.mark.parametrize("zoom", [1, 2, 3])
def test_single_changed_tile(zoom: int) -> None:
    # 2x2 room: tiles (0,0), (1,0), (0,1) identical, (1,1) changed
    working = make_grid_room(
        [[tile_word(TILE_RED), tile_word(TILE_GREEN)], [tile_word(TILE_EMPTY), tile_word(TILE_RED)]]
    )
    reference = make_grid_room(
        [[tile_word(TILE_RED), tile_word(TILE_GREEN)], [tile_word(TILE_EMPTY), tile_word(TILE_BLUE)]]
    )
    view = ViewState(zoom=zoom)
    mask = diff(rasterize(working, view), rasterize(reference, view))

    size = 16 * zoom
    assert mask.shape == (2 * size, 2 * size)
    assert mask[size:, size:].all()
    mask[size:, size:] = False
    assert not mask.any()


def test_highlight_colors_only_changed_pixels() -> None:
    working = np.zeros((2, 2, 4), dtype=np.uint8)
    working[...] = (200, 100, 50, 255)
    working[1, 1] = 0  # transparent
    mask = np.array([[True, False], [False, False]])
    config = RenderConfig(difference_baseline=0.5, diff_color=(1, 2, 3))

    out = highlight(working, mask, config)
    assert out[0, 0].tolist() == [1, 2, 3, 255]
    assert out[0, 1].tolist() == [100, 50, 25, 255]
    assert out[1, 1].tolist() == [0, 0, 0, 0]
    # Input untouched
    assert working[0, 0].tolist() == [200, 100, 50, 255]


def test_highlight_baseline_zero_hides_unchanged() -> None:
    room = make_grid_room([[tile_word(TILE_RED)]])
    image = rasterize(room, ViewState())
    mask = np.zeros(image.shape[:2], dtype=bool)
    out = highlight(image, mask, RenderConfig(difference_baseline=0.0))
    assert not out[..., :3].any()
    assert image[0, 0, :3].tolist() == list(RED)


def test_highlight_rejects_mismatched_mask() -> None:
    with pytest.raises(DimensionMismatch):
        highlight(np.zeros((2, 2, 4), np.uint8), np.zeros((3, 2), bool))


def test_changed_fraction() -> None:
    mask = np.array([[True, False], [False, False]])
    assert changed_fraction(mask) == 0.25
    assert changed_fraction(np.zeros((0, 0), bool)) == 0.0
