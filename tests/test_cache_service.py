"""
Cache Service Tests

Tests that CacheService:
1. Stores and returns values until their TTL elapses
2. Evicts expired entries lazily on get
3. Never exceeds max_size (expired first, then oldest expiry)
4. Reports total / expired / active counts
5. Builds stable, content-addressed keys

Time is controlled with an injected fake clock.

Run with: pytest tests/test_cache_service.py -v
"""

import threading

from giftfinder.services.cache import CacheService, make_cache_key


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_cache(max_size: int = 10) -> tuple[CacheService, FakeClock]:
    clock = FakeClock()
    return CacheService(max_size=max_size, clock=clock), clock


# ======================================================================
# Basic get / set
# ======================================================================

class TestGetSet:
    """Values round-trip until expiry."""

    def test_returns_stored_value(self):
        """A fresh entry is returned as the identical object."""
        cache, _ = _make_cache()
        value = {"budget_strategy": "balanced"}
        cache.set("intent_a", value, ttl_seconds=60)
        assert cache.get("intent_a") is value

    def test_missing_key_returns_none(self):
        cache, _ = _make_cache()
        assert cache.get("nope") is None

    def test_value_available_at_exact_expiry(self):
        """Entries expire strictly after expires_at."""
        cache, clock = _make_cache()
        cache.set("k", "v", ttl_seconds=60)
        clock.advance(60)
        assert cache.get("k") == "v"

    def test_expired_just_past_ttl(self):
        cache, clock = _make_cache()
        cache.set("k", "v", ttl_seconds=60)
        clock.advance(60.001)
        assert cache.get("k") is None

    def test_expired_entry_is_removed_on_get(self):
        cache, clock = _make_cache()
        cache.set("k", "v", ttl_seconds=60)
        clock.advance(61)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_overwrite_refreshes_ttl(self):
        cache, clock = _make_cache()
        cache.set("k", "old", ttl_seconds=10)
        clock.advance(8)
        cache.set("k", "new", ttl_seconds=10)
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_delete_and_clear(self):
        cache, _ = _make_cache()
        cache.set("a", 1, ttl_seconds=60)
        cache.set("b", 2, ttl_seconds=60)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert "a" not in cache
        assert "b" in cache
        cache.clear()
        assert len(cache) == 0


# ======================================================================
# Capacity
# ======================================================================

class TestCapacity:
    """The store never grows beyond max_size."""

    def test_expired_entries_removed_first(self):
        cache, clock = _make_cache(max_size=3)
        cache.set("short", 1, ttl_seconds=5)
        cache.set("long1", 2, ttl_seconds=100)
        cache.set("long2", 3, ttl_seconds=100)
        clock.advance(10)

        cache.set("new", 4, ttl_seconds=100)

        assert len(cache) == 3
        assert cache.get("long1") == 2
        assert cache.get("long2") == 3
        assert cache.get("new") == 4

    def test_evicts_closest_to_expiry_when_full(self):
        cache, _ = _make_cache(max_size=3)
        cache.set("soonest", 1, ttl_seconds=10)
        cache.set("middle", 2, ttl_seconds=50)
        cache.set("latest", 3, ttl_seconds=100)

        cache.set("new", 4, ttl_seconds=100)

        assert len(cache) <= 3
        assert cache.get("soonest") is None
        assert cache.get("new") == 4

    def test_size_never_exceeds_max(self):
        cache, _ = _make_cache(max_size=20)
        for i in range(200):
            cache.set(f"k{i}", i, ttl_seconds=1000 + i)
            assert len(cache) <= 20

    def test_updating_existing_key_when_full_does_not_evict(self):
        cache, _ = _make_cache(max_size=2)
        cache.set("a", 1, ttl_seconds=10)
        cache.set("b", 2, ttl_seconds=20)
        cache.set("a", 3, ttl_seconds=30)
        assert cache.get("a") == 3
        assert cache.get("b") == 2


# ======================================================================
# Stats and concurrency
# ======================================================================

class TestStats:
    def test_counts_expired_and_active(self):
        cache, clock = _make_cache()
        cache.set("a", 1, ttl_seconds=5)
        cache.set("b", 2, ttl_seconds=50)
        clock.advance(10)
        assert cache.get_stats() == {"total": 2, "expired": 1, "active": 1}

    def test_concurrent_sets_keep_store_bounded(self):
        """Parallel writers never corrupt the store or exceed capacity."""
        cache = CacheService(max_size=50)

        def writer(offset: int) -> None:
            for i in range(200):
                cache.set(f"k{offset}-{i}", i, ttl_seconds=60)
                cache.get(f"k{offset}-{i // 2}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) <= 50
        stats = cache.get_stats()
        assert stats["total"] == stats["active"] + stats["expired"]


# ======================================================================
# Key helpers
# ======================================================================

class TestMakeCacheKey:
    def test_prefix_and_digest(self):
        key = make_cache_key("intent", {"a": 1})
        assert key.startswith("intent_")
        assert len(key) == len("intent_") + 32

    def test_key_order_independent(self):
        assert make_cache_key("p", {"a": 1, "b": 2}) == make_cache_key("p", {"b": 2, "a": 1})

    def test_different_payloads_differ(self):
        assert make_cache_key("p", {"budget": 50}) != make_cache_key("p", {"budget": 75})
