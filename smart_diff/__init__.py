"""smart_diff: visual diff of SMART room exports between two versions.

Typical use::

    from smart_diff import open_comparison

    session = open_comparison(
        "Landing Site", working_xml, reference_xml, tiles_now, tiles_then
    )
    session.handle_key("d")  # difference view
    frame = session.current_frame()  # H x W x 4 uint8

See :mod:`smart_diff.session` for the session API and :mod:`smart_diff.viewer`
for the interactive loop.
"""

from smart_diff.errors import (
    DimensionMismatch,
    MalformedRoom,
    MissingReferenceContent,
    SmartDiffError,
    SourceNotFound,
    UnresolvedTile,
)
from smart_diff.room import Room, RoomData, decode_room
from smart_diff.renderer.diff import diff, highlight
from smart_diff.renderer.raster import rasterize
from smart_diff.session import ComparisonSession, open_comparison
from smart_diff.types import DisplayMode, Key, Version
from smart_diff.view import ViewState, apply_key

__all__ = [
    "ComparisonSession",
    "DimensionMismatch",
    "DisplayMode",
    "Key",
    "MalformedRoom",
    "MissingReferenceContent",
    "Room",
    "RoomData",
    "SmartDiffError",
    "SourceNotFound",
    "UnresolvedTile",
    "Version",
    "ViewState",
    "apply_key",
    "decode_room",
    "diff",
    "highlight",
    "open_comparison",
    "rasterize",
]
