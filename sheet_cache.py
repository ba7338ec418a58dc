import logging
import threading
import time

from eventlet.event import Event

logger = logging.getLogger(__name__)

DEFAULT_TTL = 120.0  # seconds


class SheetCache:
    """
    In-process TTL cache for sheet reads, shared by every route.

    Entries expire lazily: a stale entry is dropped the next time its key is
    read. ``get_or_fetch`` collapses concurrent misses for the same key into a
    single producer call; every waiter gets the producer's value or its
    exception, and a failed producer never writes to the cache.
    """

    def __init__(self, default_ttl=DEFAULT_TTL, clock=time.time):
        self.default_ttl = float(default_ttl)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries = {}   # key -> {'data', 'timestamp', 'ttl'}
        self._pending = {}   # key -> Event
        self._hits = 0
        self._misses = 0
        self._deduplicated = 0

    # ─── plain cache operations ─────────────────────────────────────────

    def _lookup(self, key, now):
        # caller holds self._lock
        ent = self._entries.get(key)
        if ent is None:
            self._misses += 1
            return False, None
        if now - ent['timestamp'] > ent['ttl']:
            del self._entries[key]
            self._misses += 1
            return False, None
        self._hits += 1
        return True, ent['data']

    def get(self, key):
        with self._lock:
            _, data = self._lookup(key, self._clock())
            return data

    def set(self, key, value, ttl=None):
        with self._lock:
            self._store(key, value, ttl)

    def _store(self, key, value, ttl):
        self._entries[key] = {
            'data': value,
            'timestamp': self._clock(),
            'ttl': self.default_ttl if ttl is None else float(ttl),
        }

    def invalidate(self, key):
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_by_prefix(self, prefix):
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
        if doomed:
            logger.info("[cache] invalidated %d entries with prefix %r", len(doomed), prefix)
        return len(doomed)

    def clear(self):
        with self._lock:
            n = len(self._entries)
            self._entries.clear()
        return n

    def stats(self):
        with self._lock:
            total = self._hits + self._misses
            hit_rate = "%.2f%%" % (self._hits * 100.0 / total) if total else "0%"
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hitRate": hit_rate,
                "pending": len(self._pending),
                "deduplicated": self._deduplicated,
            }

    def reset_stats(self):
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._deduplicated = 0

    # ─── request deduplication ──────────────────────────────────────────

    def get_or_fetch(self, key, producer, ttl=None):
        """
        Return the cached value for ``key`` or run ``producer()`` to fill it.

        Only one producer runs per key at a time; concurrent callers wait on
        the in-flight call and share its outcome.
        """
        with self._lock:
            found, data = self._lookup(key, self._clock())
            if found:
                return data
            waiter = self._pending.get(key)
            if waiter is None:
                event = self._pending[key] = Event()
            else:
                self._deduplicated += 1

        if waiter is not None:
            logger.debug("[cache] deduplicating request for %s", key)
            return waiter.wait()

        logger.info("[cache] fetching %s", key)
        try:
            data = producer()
        except BaseException as e:
            with self._lock:
                self._pending.pop(key, None)
            logger.warning("[cache] fetch failed for %s: %s", key, e)
            event.send_exception(e)
            raise

        with self._lock:
            self._store(key, data, ttl)
            self._pending.pop(key, None)
        event.send(data)
        return data


# Process-wide instance used by server.py
sheet_cache = SheetCache()
