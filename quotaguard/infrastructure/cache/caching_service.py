"""Concrete implementation of the in-memory Caching Service.

Stores successful upstream responses with a fixed TTL measured from the
moment they were cached. Expiry is lazy: stale entries are treated as
absent on read and only pruned when the cache grows past its bound.
"""

import logging
import time
from typing import Any, Dict, Optional

# Domain Layer Imports
from quotaguard.domain.interfaces.cache import CacheService
from quotaguard.domain.models.common import CacheEntry, CacheKey, Clock

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 500
DEFAULT_TTL_SECONDS = 5 * 60  # 5 minutes


class CachingServiceImpl(CacheService):
    """Bounded TTL cache with oldest-first eviction."""

    def __init__(
        self,
        max_items: int = DEFAULT_MAX_ITEMS,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Clock = time.monotonic,
    ):
        """Initializes the caching service.

        Args:
            max_items: Upper bound on stored entries.
            ttl_seconds: Lifetime of an entry from the moment it is stored.
            clock: Monotonic time source (injectable for tests).
        """
        if max_items <= 0:
            raise ValueError("max_items must be positive.")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive.")
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        logger.debug(f"CachingService initialized (ttl={ttl_seconds}s, max={max_items})")

    def _prune(self) -> None:
        """Removes expired items and evicts the oldest while over the limit."""
        now = self._clock()
        expired_keys = [k for k, v in self._entries.items() if not v.is_fresh(now, self.ttl_seconds)]
        for k in expired_keys:
            del self._entries[k]

        # Insertion order is cache order, since set() re-inserts on overwrite.
        while len(self._entries) > self.max_items:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            logger.debug(f"Evicted oldest cache entry: {oldest_key}")

    # --- CacheService Interface Implementation ---

    def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not entry.is_fresh(self._clock(), self.ttl_seconds):
            logger.debug(f"Cache entry expired for key: {key}")
            return None
        return entry.value

    def get_entry(self, key: CacheKey) -> Optional[CacheEntry]:
        """Returns the raw entry when it is still fresh."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock(), self.ttl_seconds):
            return entry
        return None

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, value=value, cached_at=self._clock())
        if len(self._entries) > self.max_items:
            self._prune()
        logger.debug(f"Stored item in cache: key={key}")

    def delete(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.debug(f"Cleared {count} cache entries")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self.get_entry(key) is not None  # type: ignore[arg-type]
