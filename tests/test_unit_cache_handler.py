import sys
import os
import pytest

current_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(current_dir)
sys.path.insert(0, project_root)

from sunquote_engine.cache_handler import (
    CACHE_TTL, ResponseCache, SlidingWindowRateLimiter, generate_cache_key
)


class FakeClock:
    """Manually advanced clock for TTL and window tests."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def test_cache_ttls():
    assert CACHE_TTL["SOLAR_DATA"] == 3600
    assert CACHE_TTL["ADDRESSES"] == 86400
    assert CACHE_TTL["INCENTIVES"] == 7 * 86400
    assert CACHE_TTL["UTILITY_RATES"] == 86400


def test_generate_cache_key():
    assert generate_cache_key("pvwatts", 40.1, -88.2, 8.0) == "pvwatts::40.1::-88.2::8.0"


def test_cache_returns_value_until_expiry(clock):
    cache = ResponseCache(default_ttl=60, clock=clock)
    cache.set("zip::60601", {"rate": 0.15})
    clock.advance(59)
    assert cache.get("zip::60601") == {"rate": 0.15}
    clock.advance(1)
    assert cache.get("zip::60601") is None


def test_expired_entries_are_dropped_on_read(clock):
    store = {}
    cache = ResponseCache(default_ttl=10, store=store, clock=clock)
    cache.set("a", 1)
    clock.advance(11)
    assert "a" in store  # Lazy: nothing is evicted until the key is read
    assert cache.get("a") is None
    assert "a" not in store


def test_per_entry_ttl_overrides_default(clock):
    cache = ResponseCache(default_ttl=10, clock=clock)
    cache.set("long", "x", ttl=CACHE_TTL["ADDRESSES"])
    clock.advance(3600)
    assert cache.has("long")


def test_cache_stats_and_clear(clock):
    cache = ResponseCache(clock=clock)
    cache.set("a", 1)
    cache.get("a")
    cache.get("missing")
    assert cache.get_stats() == {"size": 1, "hits": 1, "misses": 1, "hit_rate": 0.5}
    assert cache.delete("a") is True
    assert cache.delete("a") is False
    cache.clear()
    assert cache.get_stats()["hit_rate"] == 0.0


def test_falsy_values_are_cached(clock):
    cache = ResponseCache(clock=clock)
    cache.set("empty", [])
    assert cache.get("empty") == []


def test_rate_limiter_blocks_after_limit(clock):
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)
    assert limiter.can_request() is True
    assert limiter.can_request() is True
    assert limiter.can_request() is False
    assert limiter.get_remaining() == 0
    assert limiter.get_reset_time() == pytest.approx(60)


def test_rate_limiter_window_slides(clock):
    limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, clock=clock)
    limiter.can_request()
    clock.advance(30)
    limiter.can_request()
    clock.advance(30)
    # The first request has left the window
    assert limiter.get_remaining() == 1
    assert limiter.can_request() is True
    assert limiter.can_request() is False
    limiter.reset()
    assert limiter.get_remaining() == 2
    assert limiter.get_reset_time() == 0.0
