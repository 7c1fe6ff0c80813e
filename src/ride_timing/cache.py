"""Caching utilities for ride-timing.

Route-level results (shape, turnaround name) are deterministic for a given
route, so they can be cached under a fingerprint of the route's endpoints
and length. The cache is passed in by the caller; nothing here is global.
"""

import hashlib
import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Protocol

from ride_timing.models import Coordinate

DEFAULT_TTL_SECONDS = 30 * 24 * 3600  # 30 days


class ResultCache(Protocol):
    def get(self, fingerprint: str) -> Any | None:
        ...

    def put(self, fingerprint: str, value: Any) -> None:
        ...


def calibration_hash(settings: Any) -> str:
    """Short hash of the settings a cached result was computed under."""
    return hashlib.md5(repr(settings).encode()).hexdigest()[:8]


def route_fingerprint(start: Coordinate, end: Coordinate, total_distance: float, calibration: str = "") -> str:
    """Cache key for a route: endpoints to 4 decimals, distance to the meter.

    Pass a calibration_hash when the cached value depends on tunable settings.
    """
    key_str = f"{start.lat:.4f}_{start.lon:.4f}|{end.lat:.4f}_{end.lon:.4f}|{round(total_distance)}"
    if calibration:
        key_str = f"{key_str}|{calibration}"
    return hashlib.md5(key_str.encode()).hexdigest()


class MemoryResultCache:
    """Thread-safe LRU cache with TTL for route-level results."""

    def __init__(self, max_size: int = 200, ttl_seconds: float | None = DEFAULT_TTL_SECONDS, clock=time.time):
        self.max_size = max_size
        self.ttl = ttl_seconds
        self._clock = clock
        self.cache: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self.lock = Lock()
        self.hits = 0
        self.misses = 0

    def get(self, fingerprint: str) -> Any | None:
        """Get cached value if available and not expired."""
        with self.lock:
            if fingerprint in self.cache:
                value, timestamp = self.cache[fingerprint]
                if self.ttl is None or (self._clock() - timestamp < self.ttl):
                    # Move to end (most recently used)
                    self.cache.move_to_end(fingerprint)
                    self.hits += 1
                    return value
                del self.cache[fingerprint]
            self.misses += 1
            return None

    def put(self, fingerprint: str, value: Any) -> None:
        """Store value; last write wins."""
        with self.lock:
            if fingerprint in self.cache:
                self.cache.move_to_end(fingerprint)
            self.cache[fingerprint] = (value, self._clock())
            # Evict oldest if over limit
            while len(self.cache) > self.max_size:
                self.cache.popitem(last=False)

    def clear(self) -> int:
        """Clear all cached entries. Returns number of entries cleared."""
        with self.lock:
            count = len(self.cache)
            self.cache.clear()
            self.hits = 0
            self.misses = 0
            return count

    def __len__(self) -> int:
        return len(self.cache)

    def stats(self) -> dict:
        """Return cache statistics."""
        with self.lock:
            total = self.hits + self.misses
            hit_rate = (self.hits / total * 100) if total > 0 else 0
            return {
                "hit_rate": f"{hit_rate:.1f}%",
                "hits": self.hits,
                "max_size": self.max_size,
                "misses": self.misses,
                "size": len(self.cache),
            }
