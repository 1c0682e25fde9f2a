"""TTL + LRU cache for compiled chapters keyed by normalized requests."""
from __future__ import annotations

import logging
import pickle
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from .models import CacheEntry, Request
from .observability import CACHE_LOOKUPS

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ChapterCache:
    """In-memory store with lazy expiry, periodic purge and least-recently-used eviction."""

    def __init__(self, max_entries: int = 100, ttl: timedelta = timedelta(hours=24), clock: Clock = utcnow) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, request: Request) -> Any | None:
        key = request.cache_key
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is not None and now >= entry.expires_at:
                del self._entries[key]
                logger.info("Expired cache entry removed: %s", key)
                entry = None
            if entry is None:
                self.misses += 1
                CACHE_LOOKUPS.labels("miss").inc()
                return None
            entry.access_count += 1
            entry.last_accessed_at = now
            self.hits += 1
        CACHE_LOOKUPS.labels("hit").inc()
        logger.info("Cache hit for %s", key)
        return entry.payload

    def set(self, request: Request, payload: Any) -> None:
        key = request.cache_key
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._evict_least_recently_used()
            now = self._clock()
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                created_at=now,
                last_accessed_at=now,
                expires_at=now + self.ttl,
            )
        logger.info("Cached content for %s", key)

    def contains(self, request: Request) -> bool:
        key = request.cache_key
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return False
            return True

    def remove(self, request: Request) -> bool:
        with self._lock:
            removed = self._entries.pop(request.cache_key, None) is not None
        if removed:
            logger.info("Removed from cache: %s", request.cache_key)
        return removed

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cleared %d cache entries", count)
        return count

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Cleaned up %d expired cache entries", len(expired))
        return len(expired)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def configure(self, max_entries: int | None = None, ttl: timedelta | None = None) -> None:
        with self._lock:
            if max_entries is not None:
                if max_entries < 1:
                    raise ValueError("max_entries must be at least 1")
                self.max_entries = max_entries
                while len(self._entries) > self.max_entries:
                    self._evict_least_recently_used()
            if ttl is not None:
                self.ttl = ttl
        logger.info("Cache config updated: max_entries=%d ttl=%s", self.max_entries, self.ttl)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            entries = list(self._entries.values())
            hits, misses = self.hits, self.misses
        if not entries:
            return {
                "count": 0,
                "approx_size_bytes": 0,
                "oldest_key": None,
                "newest_key": None,
                "most_accessed_key": None,
                "hits": hits,
                "misses": misses,
            }
        by_creation = sorted(entries, key=lambda entry: entry.created_at)
        most_accessed = max(entries, key=lambda entry: entry.access_count)
        return {
            "count": len(entries),
            "approx_size_bytes": sum(self._approx_size(entry.payload) for entry in entries),
            "oldest_key": by_creation[0].key,
            "newest_key": by_creation[-1].key,
            "most_accessed_key": most_accessed.key,
            "hits": hits,
            "misses": misses,
        }

    def _evict_least_recently_used(self) -> None:
        if not self._entries:
            return
        oldest = min(self._entries.values(), key=lambda entry: entry.last_accessed_at)
        del self._entries[oldest.key]
        logger.info("Evicted from cache: %s", oldest.key)

    @staticmethod
    def _approx_size(payload: Any) -> int:
        try:
            return len(pickle.dumps(payload))
        except (pickle.PicklingError, TypeError, AttributeError):
            return len(repr(payload).encode("utf-8"))
