"""Render/input loop.

:class:`Viewer` owns the active :class:`ComparisonSession`, a FIFO of pending
input events and the blit step. One :meth:`Viewer.tick` is one frame:

1. Drain pending events in arrival order and apply them as one transition
   (the frame only ever sees the fully updated view state).
2. Let the session recompute whatever that transition invalidated.
3. Select the image for the display mode, crop the viewport at the pan
   offset and composite it onto the backdrop (pink when transparent
   highlight is on, black otherwise).

The loop is single threaded. Room switches arrive through
:class:`smart_diff.loader.RoomLoader`, which decodes off-thread and hands
finished sessions back to :meth:`Viewer.poll_loader` on this thread.
"""

import logging
import time
from collections import deque
from dataclasses import replace
from typing import Callable, Deque, Iterable, Optional

import numpy as np
from PIL import Image

from smart_diff.config import ViewerConfig
from smart_diff.loader import RoomLoader
from smart_diff.renderer.placeholder import DECODE_FAILED, LOADING, placeholder
from smart_diff.session import ComparisonSession, Event, KeyEvent, PanEvent
from smart_diff.types import RasterImage
from smart_diff.utils.image import blank, flatten, to_pil

logger = logging.getLogger(__name__)

Display = Callable[[Image.Image], None]


def blit(
    frame: RasterImage, pan_x: int, pan_y: int, viewport: tuple
) -> RasterImage:
    """Crop ``frame`` to the viewport at the pan offset.

    The crop is padded with transparent pixels when the frame is smaller than
    the viewport, so the output is always exactly ``viewport`` sized.
    """
    width, height = viewport
    out = blank(width, height)
    crop = frame[pan_y : pan_y + height, pan_x : pan_x + width]
    out[: crop.shape[0], : crop.shape[1]] = crop
    return out


class Viewer:
    """Interactive viewer loop for one comparison at a time."""

    def __init__(
        self,
        session: Optional[ComparisonSession] = None,
        config: ViewerConfig = ViewerConfig(),
        loader: Optional[RoomLoader] = None,
    ):
        self.session = session
        self.config = config
        self.loader = loader
        self.events: Deque[Event] = deque()
        self.frames = 0
        self.load_error: Optional[Exception] = None

    # --------- Input ---------

    def push_key(self, key: str) -> None:
        self.events.append(KeyEvent(key))

    def push_pan(self, dx: int, dy: int) -> None:
        self.events.append(PanEvent(dx, dy))

    def push(self, events: Iterable[Event]) -> None:
        self.events.extend(events)

    # --------- Sessions ---------

    def switch(self, session: ComparisonSession) -> None:
        """Replace the active session, keeping display toggles and zoom."""
        if self.session is not None:
            session.view = replace(self.session.view, state_index=0, pan_x=0, pan_y=0)
            session.cache.clear()
        self.session = session
        self.load_error = None
        logger.info("Showing %s", session.room_id)

    def poll_loader(self) -> bool:
        """Adopt a finished background decode, if any. Never blocks.

        A failure while gathering the room's files is kept in
        :attr:`load_error` and shown in place of the frame; the previous
        session stays loaded.
        """
        if self.loader is None:
            return False
        try:
            session = self.loader.poll()
        except Exception as e:
            logger.error("Loading room failed: %s", e)
            self.load_error = e
            return False
        if session is None:
            if self.loader.busy:
                # A newer request supersedes the failed one
                self.load_error = None
            return False
        self.switch(session)
        return True

    @property
    def pending(self) -> bool:
        return self.loader is not None and self.loader.busy

    # --------- Frames ---------

    def frame(self) -> RasterImage:
        """Current frame as RGBA, cropped to the viewport."""
        if self.load_error is not None:
            return placeholder(
                self.config.viewport,
                DECODE_FAILED,
                str(self.load_error),
                config=self.config.render,
            )
        if self.session is None:
            return placeholder(self.config.viewport, LOADING, config=self.config.render)
        view = self.session.view
        return blit(
            self.session.current_frame(), view.pan_x, view.pan_y, self.config.viewport
        )

    def composite(self) -> np.ndarray:
        """Current frame as RGB on the backdrop selected by the view."""
        render = self.config.render
        backdrop = render.backdrop_color
        if self.session is not None and self.session.view.transparent_highlight:
            backdrop = render.transparency_color
        return flatten(self.frame(), backdrop)

    def tick(self) -> Image.Image:
        """Run one frame: apply input, recompute, blit."""
        self.poll_loader()
        if self.session is not None and self.events:
            events = list(self.events)
            self.events.clear()
            self.session.apply_events(events)
        self.frames += 1
        return to_pil(self.composite())

    def run(
        self,
        display: Display,
        max_frames: Optional[int] = None,
        interval: Optional[float] = None,
        should_stop: Callable[[], bool] = lambda: False,
    ) -> int:
        """Tick at a steady cadence and hand each frame to ``display``.

        With ``interval`` 0 frames are only produced when input is pending or
        a background decode finished (on demand).

        Returns:
            int: Number of frames displayed.
        """
        interval = self.config.frame_interval if interval is None else interval
        shown = 0
        while not should_stop() and (max_frames is None or shown < max_frames):
            started = time.monotonic()
            if interval > 0 or self.events or shown == 0 or self.pending:
                display(self.tick())
                shown += 1
            elapsed = time.monotonic() - started
            time.sleep(max(0.0, (interval or 0.01) - elapsed))
        return shown
