"""
Tile Cache - bounded LRU cache with single-flight loading
"""

import logging
import threading
from collections import OrderedDict

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 2048


class _Flight:
    """A fetch in progress, shared by every caller asking for the same key."""

    def __init__(self):
        self.done = threading.Event()
        self.value = None
        self.error = None


class TileCache:
    """
    Least-recently-used cache of decoded tiles.

    At most one load runs per key at any time: concurrent callers asking for
    a key that is being loaded wait for that load and share its result (or
    its exception). Failed loads are not cached.
    """

    def __init__(self, max_entries=DEFAULT_MAX_ENTRIES):
        """
        Args:
            max_entries: maximum number of cached tiles, values <= 0 select
                the default of 2048
        """
        if not max_entries or max_entries <= 0:
            max_entries = DEFAULT_MAX_ENTRIES
        self.max_entries = max_entries
        self._entries = OrderedDict()
        self._in_flight = {}
        self._lock = threading.Lock()

        self.hits = 0
        self.misses = 0
        self.coalesced = 0
        self.evictions = 0

    def get(self, key, loader):
        """
        Return the cached value for key, calling loader() on a miss.

        Args:
            key: hashable tile key
            loader: zero-argument callable producing the value

        Returns:
            The cached or freshly loaded value
        """
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self.hits += 1
                return self._entries[key]

            flight = self._in_flight.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._in_flight[key] = flight
                self.misses += 1
            else:
                self.coalesced += 1

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.value

        try:
            value = loader()
        except BaseException as e:
            flight.error = e
            with self._lock:
                del self._in_flight[key]
            flight.done.set()
            raise

        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1
            del self._in_flight[key]
        flight.value = value
        flight.done.set()
        return value

    def reclaim(self, fraction=0.5):
        """
        Evict the least recently used share of the cache.

        Called under memory pressure, an evicted tile is simply loaded
        again on its next access.

        Returns:
            int: number of evicted entries
        """
        with self._lock:
            count = len(self._entries)
            n = min(count, max(1, int(count * fraction))) if count else 0
            for _ in range(n):
                self._entries.popitem(last=False)
            self.evictions += n
        logger.debug("Reclaimed %d of %d cached tiles", n, count)
        return n

    def clear(self):
        with self._lock:
            self.evictions += len(self._entries)
            self._entries.clear()

    def __contains__(self, key):
        with self._lock:
            return key in self._entries

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def stats(self):
        """Cache counters."""
        with self._lock:
            return {
                'entries': len(self._entries),
                'max_entries': self.max_entries,
                'hits': self.hits,
                'misses': self.misses,
                'coalesced': self.coalesced,
                'evictions': self.evictions,
                'in_flight': len(self._in_flight),
            }
