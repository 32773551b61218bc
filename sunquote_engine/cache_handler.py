import logging
import time
from collections import deque

logger = logging.getLogger(__name__)

# Seconds
CACHE_TTL = {
    "SOLAR_DATA": 60 * 60,
    "ADDRESSES": 24 * 60 * 60,
    "INCENTIVES": 7 * 24 * 60 * 60,
    "UTILITY_RATES": 24 * 60 * 60,
}
DEFAULT_TTL = CACHE_TTL["SOLAR_DATA"]


def generate_cache_key(*parts):
    """Joins key parts with '::', e.g. generate_cache_key('pvwatts', 40.1, -88.2, 8.0)."""
    return "::".join(str(part) for part in parts)


class ResponseCache:
    """
    TTL cache for upstream API responses.

    Entries expire lazily: an expired entry is dropped when it is next read.
    `store` can be any mutable mapping (a plain dict by default), so a shared
    backing store can be plugged in without changing callers. `clock` is
    injectable for tests.
    """

    def __init__(self, default_ttl=DEFAULT_TTL, store=None, clock=time.monotonic):
        self.default_ttl = default_ttl
        self._store = store if store is not None else {}
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def get(self, key):
        entry = self._store.get(key)
        if entry is None:
            self.misses += 1
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._store[key]
            self.misses += 1
            return None
        self.hits += 1
        logger.debug("Cache hit for %s", key)
        return value

    def set(self, key, value, ttl=None):
        ttl = self.default_ttl if ttl is None else ttl
        self._store[key] = (value, self._clock() + ttl)

    def has(self, key):
        entry = self._store.get(key)
        return entry is not None and self._clock() < entry[1]

    def delete(self, key):
        return self._store.pop(key, None) is not None

    def clear(self):
        self._store.clear()
        self.hits = 0
        self.misses = 0

    def get_stats(self):
        total = self.hits + self.misses
        return {
            "size": len(self._store),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total else 0.0,
        }


class SlidingWindowRateLimiter:
    """
    Allows at most `max_requests` calls in any `window_seconds` span.
    """

    def __init__(self, max_requests, window_seconds, clock=time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._timestamps = deque()

    def _prune(self, now):
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    def can_request(self):
        """Records the request and returns True if it fits in the window."""
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) >= self.max_requests:
            return False
        self._timestamps.append(now)
        return True

    def get_remaining(self):
        self._prune(self._clock())
        return max(0, self.max_requests - len(self._timestamps))

    def get_reset_time(self):
        """Seconds until the oldest request leaves the window (0 if nothing is pending)."""
        now = self._clock()
        self._prune(now)
        if not self._timestamps:
            return 0.0
        return max(0.0, self._timestamps[0] + self.window_seconds - now)

    def reset(self):
        self._timestamps.clear()
