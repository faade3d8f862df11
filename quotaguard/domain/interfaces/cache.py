"""Interface for caching mechanisms.

Defines the contract for storing, retrieving, and invalidating cached
upstream responses with a time-to-live.
"""

import abc
from typing import Any, Optional

from ..models.common import CacheEntry, CacheKey

class CacheService(abc.ABC):
    """Abstract Base Class for caching operations."""

    @abc.abstractmethod
    def get(self, key: CacheKey) -> Optional[Any]:
        """Retrieves an item from the cache.

        Args:
            key: The cache key to retrieve.

        Returns:
            The cached item if found and not expired, otherwise None.
        """
        pass

    @abc.abstractmethod
    def get_entry(self, key: CacheKey) -> Optional[CacheEntry]:
        """Like `get`, but returns the stored entry so a cached None is distinguishable from a miss."""
        pass

    @abc.abstractmethod
    def set(self, key: CacheKey, value: Any) -> None:
        """Stores an item in the cache, stamping it with the current time.

        Args:
            key: The cache key to store the item under.
            value: The item to store.
        """
        pass

    @abc.abstractmethod
    def delete(self, key: CacheKey) -> None:
        """Deletes an item from the cache if present."""
        pass

    @abc.abstractmethod
    def clear(self) -> None:
        """Clears all items from the cache."""
        pass

    @abc.abstractmethod
    def __len__(self) -> int:
        pass
