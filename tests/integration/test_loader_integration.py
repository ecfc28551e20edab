# tests/integration/test_loader_integration.py

import threading

import pytest

from smart_diff.config import ViewerConfig
from smart_diff.errors import MissingReferenceContent
from smart_diff.loader import RoomLoader
from smart_diff.sources import ComparisonInputs
from smart_diff.viewer import Viewer
from tests.test_utils import make_tileset_files, room_xml


def _inputs(room_id: str, reference: bool = True) -> ComparisonInputs:
    files = make_tileset_files()
    data = room_xml()
    return ComparisonInputs(
        room_id=room_id,
        working=data,
        reference=data if reference else None,
        tileset_working=files,
        tileset_reference=files,
        reference_name="HEAD",
    )


@pytest.fixture
def loader():
    loader = RoomLoader(ViewerConfig(max_workers=2))
    yield loader
    loader.close()


def test_wait_returns_session(loader: RoomLoader) -> None:
    generation = loader.request("A", lambda: _inputs("A"))
    assert generation == 1
    assert loader.busy
    session = loader.wait(timeout=10)
    assert session is not None
    assert session.room_id == "A"
    assert not loader.busy
    assert loader.poll() is None


def test_errors_are_carried_by_session(loader: RoomLoader) -> None:
    loader.request("A", lambda: _inputs("A", reference=False))
    session = loader.wait(timeout=10)
    assert session is not None
    assert isinstance(session.errors[0], MissingReferenceContent)


def test_superseded_request_is_discarded(loader: RoomLoader) -> None:
    release = threading.Event()

    def slow() -> ComparisonInputs:
        release.wait(timeout=10)
        return _inputs("slow")

    loader.request("slow", slow)
    loader.request("fast", lambda: _inputs("fast"))
    assert loader.generation == 2
    assert loader.discarded == 1
    release.set()

    session = loader.wait(timeout=10)
    assert session is not None
    assert session.room_id == "fast"


def test_poll_does_not_block(loader: RoomLoader) -> None:
    release = threading.Event()

    def slow() -> ComparisonInputs:
        release.wait(timeout=10)
        return _inputs("slow")

    loader.request("slow", slow)
    assert loader.poll() is None
    assert loader.busy
    release.set()
    assert loader.wait(timeout=10) is not None


def test_input_failure_propagates_on_poll(loader: RoomLoader) -> None:
    def broken() -> ComparisonInputs:
        raise OSError("repository unreadable")

    loader.request("broken", broken)
    with pytest.raises(OSError):
        loader.wait(timeout=10)


def test_viewer_adopts_loaded_session(loader: RoomLoader) -> None:
    viewer = Viewer(config=ViewerConfig(viewport=(32, 32)), loader=loader)
    loader.request("A", lambda: _inputs("A"))
    assert viewer.pending
    loader._inflight[2].result(timeout=10)  # type: ignore[index]
    assert viewer.poll_loader()
    assert viewer.session is not None
    assert viewer.session.room_id == "A"
    assert not viewer.pending


def test_viewer_shows_input_failure_and_keeps_session(loader: RoomLoader) -> None:
    viewer = Viewer(config=ViewerConfig(viewport=(32, 32)), loader=loader)
    loader.request("A", lambda: _inputs("A"))
    session = loader.wait(timeout=10)
    assert session is not None
    viewer.switch(session)
    previous = viewer.session

    def broken() -> ComparisonInputs:
        raise OSError("repository unreadable")

    loader.request("broken", broken)
    loader._inflight[2].exception(timeout=10)  # type: ignore[index]
    image = viewer.tick()

    assert image.size == (32, 32)
    assert isinstance(viewer.load_error, OSError)
    assert viewer.session is previous
    frame = viewer.frame()
    assert (frame[..., 3] == 255).all()

    # The next request clears the failure
    loader.request("A", lambda: _inputs("A"))
    loader._inflight[2].result(timeout=10)  # type: ignore[index]
    viewer.tick()
    assert viewer.load_error is None
    assert viewer.session is not previous
