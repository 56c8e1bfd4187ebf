"""
Cache Service — bounded, in-process TTL cache.

Memoizes intent-extraction and catalog-search results for the gift finder
pipeline. Entries carry an absolute expiry; expired entries are evicted
lazily on ``get`` and in bulk when the store reaches capacity.

A cache miss is a normal outcome that the caller answers by recomputing;
no method raises. Values are treated as immutable once stored, so a
concurrent get-miss-then-set for the same key only costs a duplicate
recompute.
"""

import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from giftfinder.core.config import CACHE_MAX_SIZE

logger = logging.getLogger(__name__)

# Fraction of max_size evicted (oldest expiry first) when cleanup of
# expired entries alone does not free room.
EVICTION_FRACTION = 0.1


@dataclass(frozen=True)
class CacheEntry:
    data: Any
    expires_at: float


class CacheService:
    """
    Generic key/value store with per-entry TTL and bounded capacity.

    Usage:
        cache = CacheService(max_size=1000)
        cache.set("intent_abc", intent, ttl_seconds=1800)
        cached = cache.get("intent_abc")  # None on miss or expiry
    """

    def __init__(
        self,
        max_size: int = CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def set(self, key: str, data: Any, ttl_seconds: float) -> None:
        """Store ``data`` with absolute expiry now + ttl_seconds."""
        with self._lock:
            if len(self._entries) >= self.max_size and key not in self._entries:
                self._cleanup()
            self._entries[key] = CacheEntry(
                data=data, expires_at=self._clock() + ttl_seconds,
            )

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expires_at:
                del self._entries[key]
                logger.debug("Cache entry expired: %s", key)
                return None
            return entry.data

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_stats(self) -> dict[str, int]:
        """Counts of total, expired (not yet evicted) and active entries."""
        with self._lock:
            now = self._clock()
            expired = sum(
                1 for entry in self._entries.values() if now > entry.expires_at
            )
            total = len(self._entries)
        return {"total": total, "expired": expired, "active": total - expired}

    def _cleanup(self) -> None:
        """
        Free capacity before an insert.

        1. Remove every expired entry.
        2. If still at capacity, evict the entries closest to expiry until
           EVICTION_FRACTION of max_size has been freed.
        """
        now = self._clock()
        expired_keys = [
            key for key, entry in self._entries.items() if now > entry.expires_at
        ]
        for key in expired_keys:
            del self._entries[key]

        evicted = 0
        if len(self._entries) >= self.max_size:
            by_expiry = sorted(
                self._entries.items(), key=lambda item: item[1].expires_at,
            )
            # At least one slot, so tiny caches still respect max_size.
            to_remove = max(1, int(self.max_size * EVICTION_FRACTION))
            for key, _ in by_expiry[:to_remove]:
                del self._entries[key]
                evicted += 1

        logger.debug(
            "Cache cleanup: %d expired removed, %d evicted by age, %d remain",
            len(expired_keys), evicted, len(self._entries),
        )


# ======================================================================
# Key helpers
# ======================================================================

def make_cache_key(prefix: str, payload: Any) -> str:
    """
    Build a stable, content-addressed cache key.

    ``payload`` is serialized as sorted-key JSON and hashed with SHA-256,
    so equal payloads always map to the same key.
    """
    serialized = json.dumps(payload, sort_keys=True, default=str)
    digest = hashlib.sha256(serialized.encode("utf-8")).hexdigest()[:32]
    return f"{prefix}_{digest}"
