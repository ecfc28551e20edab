"""Background room decoding.

Decoding and the first rasterization of a large room can take long enough
to stall input handling, so :class:`RoomLoader` runs
:func:`smart_diff.session.open_comparison` on a bounded thread pool. The
viewer loop calls :meth:`RoomLoader.poll` once per frame; it never blocks.

Each :meth:`RoomLoader.request` bumps a generation counter. Only the result
of the newest request is ever returned, so switching rooms mid-decode simply
drops the abandoned result instead of racing it into the viewer.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Tuple

from smart_diff.config import ViewerConfig
from smart_diff.session import ComparisonSession, open_comparison
from smart_diff.sources import ComparisonInputs

logger = logging.getLogger(__name__)

InputsFn = Callable[[], ComparisonInputs]


class RoomLoader:
    def __init__(self, config: ViewerConfig = ViewerConfig()):
        self.config = config
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, config.max_workers), thread_name_prefix="room-decode"
        )
        self._generation = 0
        self._inflight: Optional[Tuple[int, str, "Future[ComparisonSession]"]] = None
        self.discarded = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def busy(self) -> bool:
        return self._inflight is not None

    def _open(self, inputs_fn: InputsFn) -> ComparisonSession:
        inputs = inputs_fn()
        return open_comparison(
            inputs.room_id,
            inputs.working,
            inputs.reference,
            inputs.tileset_working,
            inputs.tileset_reference,
            config=self.config,
            reference_name=inputs.reference_name,
        )

    def request(self, room_id: str, inputs_fn: InputsFn) -> int:
        """Start loading ``room_id``; supersedes any earlier request.

        ``inputs_fn`` runs on the worker thread so file reads do not block the
        caller either.

        Returns:
            int: Generation number of this request.
        """
        self._generation += 1
        if self._inflight is not None:
            _, old_room, old_future = self._inflight
            if old_future.cancel() or not old_future.done():
                self.discarded += 1
                logger.info("Abandoning decode of %s", old_room)
        future = self._executor.submit(self._open, inputs_fn)
        self._inflight = (self._generation, room_id, future)
        logger.debug("Requested %s (generation %d)", room_id, self._generation)
        return self._generation

    def poll(self) -> Optional[ComparisonSession]:
        """Return the newest finished session, or ``None`` if not ready.

        Exceptions raised while gathering inputs (e.g. an unreadable
        repository) propagate here, on the loop thread.
        """
        if self._inflight is None:
            return None
        generation, room_id, future = self._inflight
        if not future.done():
            return None
        self._inflight = None
        if generation != self._generation:
            self.discarded += 1
            return None
        return future.result()

    def wait(self, timeout: Optional[float] = None) -> Optional[ComparisonSession]:
        """Block until the newest request finishes (for scripts and tests)."""
        if self._inflight is None:
            return None
        self._inflight[2].result(timeout=timeout)
        return self.poll()

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._inflight = None
