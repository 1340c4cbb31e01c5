"""
Bounded, time-expiring response cache with LRU eviction.

Keys are request fingerprints (see fingerprint()). The cache never starts
background timers: expired entries are dropped lazily on lookup, or in bulk
when the embedding application calls prune() on its own schedule.
"""

import hashlib
import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Optional, TypeVar

import structlog

from enrichment_layer.models.cache_models import CacheEntry, CacheStats
from enrichment_layer.monitoring.metrics import cache_events_total


logger = structlog.get_logger(__name__)

V = TypeVar("V")


def fingerprint(*parts: Any) -> str:
    """
    Deterministic cache key for a request.

    Parts are serialized as canonical JSON (sorted keys, no whitespace) and
    hashed, so two semantically equal requests always share a key and any
    differing field yields a different one.

    Args:
        *parts: JSON-serializable request components

    Returns:
        Hex SHA-256 digest
    """
    canonical = json.dumps(parts, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class ResponseCache(Generic[V]):
    """
    LRU cache whose entries expire after a fixed TTL.

    The OrderedDict's insertion order is the recency order: the first key is
    the least recently used one. A read that hits moves the key to the end.

    Attributes:
        ttl_seconds: Lifetime of each entry, fixed at construction
        max_size: Maximum number of entries
        name: Label used in logs and metrics
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_size: int = 1000,
        name: str = "response",
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        if max_size < 1:
            raise ValueError("max_size must be >= 1")

        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.name = name
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry[V]]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        """
        Look up a key.

        Absent or expired keys count as a miss (expired entries are removed).
        A hit promotes the key to most-recently-used.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                cache_events_total.labels(cache=self.name, event="miss").inc()
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                cache_events_total.labels(cache=self.name, event="expired").inc()
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            cache_events_total.labels(cache=self.name, event="hit").inc()
            return entry.value

    def set(self, key: str, value: V) -> None:
        """Insert or replace a key, evicting the LRU entry when full."""
        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                cache_events_total.labels(cache=self.name, event="eviction").inc()
                logger.debug("Cache eviction", cache=self.name, key=evicted_key[:16])

            self._entries[key] = CacheEntry(
                value=value,
                created_at=now,
                expires_at=now + self.ttl_seconds,
            )

    def delete(self, key: str) -> bool:
        """Remove a key. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def prune(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.debug("Cache pruned", cache=self.name, removed=len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = round(self._hits / total, 2) if total > 0 else 0.0
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                hit_rate=hit_rate,
            )

    def peek(self, key: str) -> Optional[V]:
        """Read a live value without touching recency or hit/miss counters."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return entry.value

    def __contains__(self, key: str) -> bool:
        return self.peek(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
