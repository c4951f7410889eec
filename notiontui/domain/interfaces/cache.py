"""Interface for the local page cache.

Defines the contract for storing, retrieving, and managing cached Notion
data with per-entry TTLs and lifetime hit/miss accounting.
"""

import abc
from datetime import datetime
from typing import Any, Optional

from notiontui.domain.models.cache import CacheEntry, CacheStats
from notiontui.domain.models.common import CacheKey


class CacheService(abc.ABC):
    """Abstract Base Class for caching operations."""

    @abc.abstractmethod
    async def get(self, key: CacheKey) -> Any:
        """Retrieves an item from the cache asynchronously.

        Args:
            key: The cache key to retrieve.

        Returns:
            The cached value.

        Raises:
            CacheMissError: Nothing is stored under ``key``.
            CacheExpiredError: The stored entry's TTL has elapsed.
            CacheDeserializeError: The stored entry is corrupt.
        """
        pass

    @abc.abstractmethod
    async def set(self, key: CacheKey, value: Any, ttl: float) -> None:
        """Stores an item asynchronously.

        Args:
            key: The cache key to store the item under.
            value: A JSON-serializable value.
            ttl: Time-to-live in seconds; zero or negative never expires.
        """
        pass

    @abc.abstractmethod
    async def delete(self, key: CacheKey) -> None:
        """Deletes an item; a missing item is not an error."""
        pass

    @abc.abstractmethod
    async def clear(self) -> None:
        """Removes every stored item. Lifetime counters are kept."""
        pass

    @abc.abstractmethod
    def stats(self) -> CacheStats:
        """Returns a snapshot of hit/miss counters and current size."""
        pass

    @staticmethod
    def is_expired(entry: CacheEntry, now: Optional[datetime] = None) -> bool:
        """True when the entry has a positive TTL that has elapsed."""
        return entry.is_expired(now)
