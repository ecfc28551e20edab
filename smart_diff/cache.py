"""Frame cache for derived images.

Entries live in a persistent map that is swapped wholesale on every write.
Readers therefore always see either a complete image, the :data:`PENDING`
marker, or nothing; never a partially written entry. Only the thread that
owns the viewer loop writes.
"""

from typing import Any, Iterable, Optional

from pyrsistent import PMap, pmap

from smart_diff.view import CacheEntry


class _Pending:
    def __repr__(self) -> str:
        return "PENDING"


PENDING: Any = _Pending()


class FrameCache:
    """Keyed store of rasters, the diff mask and the highlight image.

    Values are whatever the session computes for an entry: an image array,
    a mask, or an exception recording why it could not be computed.
    """

    def __init__(self) -> None:
        self._entries: PMap[CacheEntry, Any] = pmap()
        self.hits = 0
        self.misses = 0

    def __contains__(self, entry: CacheEntry) -> bool:
        value = self._entries.get(entry)
        return value is not None and value is not PENDING

    def get(self, entry: CacheEntry) -> Optional[Any]:
        value = self._entries.get(entry)
        if value is None or value is PENDING:
            self.misses += 1
            return None
        self.hits += 1
        return value

    def is_pending(self, entry: CacheEntry) -> bool:
        return self._entries.get(entry) is PENDING

    def mark_pending(self, entry: CacheEntry) -> None:
        self._entries = self._entries.set(entry, PENDING)

    def put(self, entry: CacheEntry, value: Any) -> Any:
        self._entries = self._entries.set(entry, value)
        return value

    def invalidate(self, entries: Iterable[CacheEntry]) -> None:
        remaining = self._entries
        for entry in entries:
            remaining = remaining.discard(entry)
        self._entries = remaining

    def clear(self) -> None:
        self._entries = pmap()

    def snapshot(self) -> PMap[CacheEntry, Any]:
        """Immutable view of all entries (for diagnostics)."""
        return self._entries
