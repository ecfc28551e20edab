"""Comparison sessions.

A :class:`ComparisonSession` pairs the decoded working copy and reference
version of one room with a :class:`ViewState` and a :class:`FrameCache`.
It is the surface the viewer shell talks to:

* :func:`open_comparison` decodes both versions independently. A failure on
  one side is recorded in :attr:`ComparisonSession.errors` and never stops
  the other side from being shown.
* :meth:`ComparisonSession.handle_key` / :meth:`handle_pan` /
  :meth:`apply_events` move the view state and invalidate exactly the cache
  entries that depend on what changed.
* :meth:`ComparisonSession.current_frame` returns the image for the current
  display mode, computing missing cache entries on demand. Decode and diff
  failures come back as placeholder images, not exceptions.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Tuple, Union

from smart_diff.cache import FrameCache
from smart_diff.config import ViewerConfig
from smart_diff.errors import (
    DimensionMismatch,
    MissingReferenceContent,
    SmartDiffError,
    SourceNotFound,
    UnresolvedTile,
)
from smart_diff.renderer.diff import changed_fraction, diff, highlight
from smart_diff.renderer.placeholder import (
    DECODE_FAILED,
    DEFAULT_PLACEHOLDER_SIZE,
    INCOMPARABLE,
    NO_REFERENCE,
    placeholder,
)
from smart_diff.renderer.raster import raster_size, rasterize
from smart_diff.room import Room, RoomData, decode_room
from smart_diff.types import DiffMask, DisplayMode, RasterImage, TilesetFiles, Version
from smart_diff.view import (
    CacheEntry,
    ViewState,
    apply_key,
    apply_pan,
    changed_fields,
    clamp_pan,
    describe,
    invalidated,
)

logger = logging.getLogger(__name__)

_RASTER_ENTRY = {
    Version.WORKING: CacheEntry.WORKING,
    Version.REFERENCE: CacheEntry.REFERENCE,
}


@dataclass(frozen=True)
class KeyEvent:
    key: str


@dataclass(frozen=True)
class PanEvent:
    dx: int
    dy: int


Event = Union[KeyEvent, PanEvent]


@dataclass(frozen=True)
class VersionResult:
    """Outcome of decoding one side: exactly one of ``room`` / ``error``."""

    version: Version
    room: Optional[Room] = None
    error: Optional[SmartDiffError] = None

    @property
    def ok(self) -> bool:
        return self.room is not None


def decode_version(
    version: Version,
    room_id: str,
    room_bytes: Optional[bytes],
    tileset_files: Optional[TilesetFiles],
    reference_name: Optional[str] = None,
) -> VersionResult:
    """Decode one side of a comparison, containing any failure."""
    if room_bytes is None:
        error: SmartDiffError
        if version == Version.REFERENCE:
            error = MissingReferenceContent(room_id, reference_name)
        else:
            error = SourceNotFound(room_id, "working copy")
        logger.info("%s", error)
        return VersionResult(version, error=error)
    try:
        room = decode_room(room_bytes, tileset_files or {}, name=room_id)
    except SmartDiffError as e:
        logger.error("Failed to decode %s version of %s: %s", version, room_id, e)
        return VersionResult(version, error=e)
    return VersionResult(version, room=room)


class ComparisonSession:
    """Working copy vs reference comparison of one room."""

    def __init__(
        self,
        room_id: str,
        working: VersionResult,
        reference: VersionResult,
        config: ViewerConfig = ViewerConfig(),
        view: Optional[ViewState] = None,
    ):
        self.room_id = room_id
        self.config = config
        self.results = {Version.WORKING: working, Version.REFERENCE: reference}
        self.cache = FrameCache()
        self.view = view if view is not None else ViewState()
        self.view = clamp_pan(
            replace(self.view, state_index=min(self.view.state_index, self.num_states - 1)),
            self.content_size(),
            config.viewport,
        )

    # --------- Inspection ---------

    @property
    def errors(self) -> List[SmartDiffError]:
        return [r.error for r in self.results.values() if r.error is not None]

    @property
    def warnings(self) -> List[UnresolvedTile]:
        return [w for r in self.results.values() if r.room for w in r.room.warnings]

    @property
    def num_states(self) -> int:
        counts = [len(r.room.states) for r in self.results.values() if r.room]
        return max(counts, default=1)

    def room_data(
        self, version: Version, view: Optional[ViewState] = None
    ) -> Optional[RoomData]:
        """Decoded data for the selected room state, if that side has it."""
        index = (view or self.view).state_index
        room = self.results[version].room
        if room is None or index >= len(room.states):
            return None
        return room.states[index]

    def version_error(self, version: Version) -> Optional[SmartDiffError]:
        result = self.results[version]
        if result.error is not None:
            return result.error
        if self.room_data(version) is None:
            return SmartDiffError(
                f"Room state {self.view.state_index} not present in {version} version"
            )
        return None

    def state_name(self) -> Optional[str]:
        for version in Version:
            room = self.room_data(version)
            if room is not None:
                return room.name
        return None

    def content_size(self, view: Optional[ViewState] = None) -> Tuple[int, int]:
        """Largest ``(width, height)`` of the two rasters under ``view``."""
        view = view or self.view
        zoom = view.zoom
        sizes = [
            raster_size(room, zoom)
            for room in (self.room_data(v, view) for v in Version)
            if room is not None
        ]
        if not sizes:
            return DEFAULT_PLACEHOLDER_SIZE[0] * zoom, DEFAULT_PLACEHOLDER_SIZE[1] * zoom
        return max(w for w, _ in sizes), max(h for _, h in sizes)

    # --------- Transitions ---------

    def _reduce(self, view: ViewState, event: Event) -> ViewState:
        if isinstance(event, KeyEvent):
            view = apply_key(view, event.key, self.config, self.num_states)
            # Zoom changes the image size; keep the viewport inside it
            return clamp_pan(view, self.content_size(view), self.config.viewport)
        return apply_pan(
            view, event.dx, event.dy, self.content_size(view), self.config.viewport
        )

    def apply_events(self, events: Iterable[Event]) -> ViewState:
        """Apply events in order, then publish the resulting view at once."""
        new = self.view
        for event in events:
            new = self._reduce(new, event)
        changed = changed_fields(self.view, new)
        if changed:
            self.cache.invalidate(invalidated(changed))
            logger.debug("View changed: %s", ", ".join(sorted(changed)))
        self.view = new
        return new

    def handle_key(self, key: str) -> ViewState:
        return self.apply_events([KeyEvent(key)])

    def handle_pan(self, dx: int, dy: int) -> ViewState:
        return self.apply_events([PanEvent(dx, dy)])

    # --------- Images ---------

    def _placeholder_for(self, version: Version, error: SmartDiffError) -> RasterImage:
        title = NO_REFERENCE if isinstance(error, MissingReferenceContent) else DECODE_FAILED
        return placeholder(
            self.content_size(),
            f"{version.name.capitalize()}: {title}",
            str(error),
            self.config.render,
        )

    def image(self, version: Version) -> RasterImage:
        """Raster of one side, or its placeholder if it cannot be drawn."""
        entry = _RASTER_ENTRY[version]
        cached = self.cache.get(entry)
        if cached is not None:
            return cached
        self.cache.mark_pending(entry)
        room = self.room_data(version)
        error = self.version_error(version)
        if room is None or error is not None:
            image = self._placeholder_for(version, error or SmartDiffError("no data"))
        else:
            image = rasterize(room, self.view, self.config.render)
        return self.cache.put(entry, image)

    def _mask_or_error(self) -> Union[DiffMask, SmartDiffError]:
        cached = self.cache.get(CacheEntry.MASK)
        if cached is not None:
            return cached
        self.cache.mark_pending(CacheEntry.MASK)
        error = self.version_error(Version.WORKING) or self.version_error(Version.REFERENCE)
        value: Union[DiffMask, SmartDiffError]
        if error is not None:
            value = error
        else:
            try:
                value = diff(self.image(Version.WORKING), self.image(Version.REFERENCE))
            except DimensionMismatch as e:
                logger.warning("Room %s is incomparable: %s", self.room_id, e)
                value = e
        return self.cache.put(CacheEntry.MASK, value)

    def diff_mask(self) -> DiffMask:
        """Difference mask for the current view.

        Raises:
            SmartDiffError: The reason no mask exists (``DimensionMismatch``,
                ``MissingReferenceContent`` or a decode error).
        """
        value = self._mask_or_error()
        if isinstance(value, SmartDiffError):
            raise value
        return value

    def comparable(self) -> bool:
        return not isinstance(self._mask_or_error(), SmartDiffError)

    def current_frame(self) -> RasterImage:
        """Image for the current display mode (never raises on bad data)."""
        mode = self.view.display_mode
        if mode == DisplayMode.WORKING:
            return self.image(Version.WORKING)
        if mode == DisplayMode.REFERENCE:
            return self.image(Version.REFERENCE)

        cached = self.cache.get(CacheEntry.HIGHLIGHT)
        if cached is not None:
            return cached
        mask = self._mask_or_error()
        if isinstance(mask, SmartDiffError):
            image = placeholder(self.content_size(), INCOMPARABLE, str(mask), self.config.render)
        else:
            image = highlight(self.image(Version.WORKING), mask, self.config.render)
        return self.cache.put(CacheEntry.HIGHLIGHT, image)

    def status_line(self) -> str:
        parts = [self.room_id, describe(self.view, self.state_name())]
        mask = self._mask_or_error()
        if isinstance(mask, SmartDiffError):
            parts.append(str(mask))
        else:
            parts.append(f"{changed_fraction(mask):.2%} changed")
        if self.warnings:
            parts.append(f"{len(self.warnings)} unresolved tiles")
        return " | ".join(parts)


def open_comparison(
    room_id: str,
    working_bytes: Optional[bytes],
    reference_bytes: Optional[bytes],
    tileset_bytes_working: Optional[TilesetFiles],
    tileset_bytes_reference: Optional[TilesetFiles],
    config: ViewerConfig = ViewerConfig(),
    view: Optional[ViewState] = None,
    reference_name: Optional[str] = None,
) -> ComparisonSession:
    """Decode both versions of a room and start a session.

    Args:
        room_id: Room name, used in messages.
        working_bytes: Working copy room XML, ``None`` if absent.
        reference_bytes: Reference room XML, ``None`` if the reference does
            not contain the room (reported as ``MissingReferenceContent``).
        tileset_bytes_working: Working copy tileset files.
        tileset_bytes_reference: Reference tileset files.
        config: Viewer settings.
        view: Initial view; display toggles carry over between rooms.
        reference_name: Name of the reference (branch, tag, commit).

    Returns:
        ComparisonSession: Always; failures are recorded in ``errors``.
    """
    working = decode_version(
        Version.WORKING, room_id, working_bytes, tileset_bytes_working
    )
    reference = decode_version(
        Version.REFERENCE,
        room_id,
        reference_bytes,
        tileset_bytes_reference,
        reference_name,
    )
    session = ComparisonSession(room_id, working, reference, config, view)
    logger.info(
        "Opened comparison of %s (%d states, %d errors, %d warnings)",
        room_id,
        session.num_states,
        len(session.errors),
        len(session.warnings),
    )
    return session
